# tgstage/transport/http_app.py
"""
HTTP application for webhook mode.

Routes:
- POST /webhooks/telegram  Telegram Updates (secret header checked)
- GET  /health             liveness probe
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tgstage.config import settings
from tgstage.infra.http_client import close_all_sessions
from tgstage.infra.logging_config import get_logger
from tgstage.transport.telegram_client import TelegramClient, TelegramSendError
from tgstage.transport.telegram_webhook import telegram_webhook_handler

logger = get_logger(__name__)


def create_app(
    client: TelegramClient,
    *,
    secret: str | None = None,
    webhook_url: str | None = None,
    register_webhook: bool = True,
) -> FastAPI:
    """
    Build the webhook app around ``client``.

    Args:
        client: Client whose event dispatcher receives the updates
        secret: Secret header token (defaults to settings.telegram_webhook_secret)
        webhook_url: Public URL to register with setWebhook on startup
            (defaults to settings.telegram_webhook_url)
        register_webhook: Call getMe/setWebhook on startup
    """
    secret = secret if secret is not None else settings.telegram_webhook_secret
    webhook_url = webhook_url or settings.telegram_webhook_url

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        # STARTUP
        if register_webhook:
            try:
                if client.bot is None:
                    await client.get_me()
                if webhook_url:
                    await client.set_webhook(webhook_url, secret_token=secret)
                    logger.info("Telegram webhook registered")
                else:
                    logger.warning("telegram_webhook_url is not set, webhook not registered")
            except TelegramSendError as exc:
                logger.critical(f"Telegram webhook setup failed: {exc}")
                raise

        yield

        # SHUTDOWN
        await close_all_sessions()
        logger.info("HTTP sessions closed")

    app = FastAPI(title="tgstage", lifespan=lifespan)
    app.state.client = client
    app.state.dispatch_lock = asyncio.Lock()

    @app.post("/webhooks/telegram")
    async def telegram_webhook(request: Request):
        return await telegram_webhook_handler(
            request,
            request.app.state.client,
            secret=secret,
            lock=request.app.state.dispatch_lock,
        )

    @app.get("/health")
    async def health():
        return JSONResponse({
            "status": "ok",
            "bot_id": client.bot_id,
            "subscriptions": len(client.events),
        })

    return app
