# tgstage/runner.py
"""
Entry points for running a bot in polling or webhook mode.

    client = TelegramClient()
    client.events.subscribe(on_start_command, predicate=command("start"))
    run(client)
"""
from __future__ import annotations

import asyncio
import signal

import uvicorn

from tgstage.config import settings, validate_or_warn
from tgstage.infra.http_client import close_all_sessions
from tgstage.infra.logging_config import setup_logging, get_logger
from tgstage.transport.http_app import create_app
from tgstage.transport.telegram_client import TelegramClient
from tgstage.transport.telegram_polling import TelegramPoller

logger = get_logger(__name__)


async def run_polling(client: TelegramClient, stop_event: asyncio.Event | None = None) -> None:
    """Poll until ``stop_event`` is set (or SIGINT/SIGTERM when not given)."""
    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Windows event loops and non-main threads
            pass

    poller = TelegramPoller(client)
    await poller.start()
    try:
        await stop_event.wait()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        await poller.stop()
        await close_all_sessions()


def run(client: TelegramClient, *, host: str = "0.0.0.0", port: int = 8000) -> None:
    """Configure logging and run ``client`` in the configured telegram_mode."""
    setup_logging(level=settings.log_level, use_json=settings.use_json_logs)
    validate_or_warn(settings)

    logger.info(f"Starting bot: env={settings.app_env}, mode={settings.telegram_mode}")

    if settings.telegram_mode == "webhook":
        uvicorn.run(create_app(client), host=host, port=port, log_config=None)
    else:
        asyncio.run(run_polling(client))
