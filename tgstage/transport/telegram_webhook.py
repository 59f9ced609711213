# tgstage/transport/telegram_webhook.py
"""
Telegram Bot API webhook handler.

Handles:
- POST /webhooks/telegram: inbound Updates from Telegram

Security features:
- X-Telegram-Bot-Api-Secret-Token header validation (if configured)
- 200 on malformed payloads so Telegram does not retry them forever
"""
from __future__ import annotations

import asyncio
import hmac

from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from tgstage.infra.logging_config import get_logger
from tgstage.transport.schemas import Update
from tgstage.transport.telegram_client import TelegramClient

logger = get_logger(__name__)

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def _verify_secret_token(request: Request, secret: str | None) -> bool:
    """
    Verify X-Telegram-Bot-Api-Secret-Token header.
    Returns True if valid or if secret token verification is disabled.
    """
    if not secret:
        return True

    header_token = request.headers.get(SECRET_HEADER, "")
    if not header_token:
        logger.warning(f"Telegram webhook: missing {SECRET_HEADER} header")
        return False

    return hmac.compare_digest(header_token, secret)


async def telegram_webhook_handler(
    request: Request,
    client: TelegramClient,
    *,
    secret: str | None = None,
    lock: asyncio.Lock | None = None,
) -> JSONResponse:
    """
    Handle one Telegram webhook Update (POST).

    Args:
        request: FastAPI request
        client: Client whose event dispatcher receives the update
        secret: Expected secret header token (None disables the check)
        lock: Serializes dispatch across concurrent requests
    """
    if not _verify_secret_token(request, secret):
        logger.error("Telegram webhook: secret token verification failed")
        raise HTTPException(status_code=403, detail="Invalid secret token")

    # Parse JSON payload; always return 200 even on malformed input
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Telegram webhook: invalid JSON payload, returning 200 to suppress retries")
        return JSONResponse({"ok": True}, status_code=200)

    try:
        update = Update.model_validate(payload)
    except ValidationError as exc:
        logger.warning(f"Telegram webhook: malformed update ({exc.error_count()} error(s)), ignoring")
        return JSONResponse({"ok": True}, status_code=200)

    if lock is not None:
        async with lock:
            handled = await client.events.dispatch(update)
    else:
        handled = await client.events.dispatch(update)

    logger.debug(
        f"Telegram webhook update dispatched to {handled} handler(s)",
        extra={"update_id": update.update_id},
    )
    return JSONResponse({"ok": True}, status_code=200)
