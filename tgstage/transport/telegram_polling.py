# tgstage/transport/telegram_polling.py
"""
Telegram Bot API long-polling handler.

Alternative to webhook mode. Calls getUpdates in a loop with long-polling.
Simpler ops (no public URL or SSL required).

Usage:
    poller = TelegramPoller(client)
    await poller.start()
    # ... on shutdown:
    await poller.stop()
"""
from __future__ import annotations

import asyncio

from pydantic import ValidationError

from tgstage.config import settings
from tgstage.infra.logging_config import get_logger
from tgstage.transport.schemas import Update
from tgstage.transport.telegram_client import TelegramClient, TelegramSendError

logger = get_logger(__name__)


class TelegramPoller:
    """
    Long-polling loop feeding updates into ``client.events``.

    Updates are dispatched one at a time, in ``update_id`` order; the next
    update is not dispatched until every subscriber has finished with the
    current one.

    Error handling:
    - On API errors: exponential backoff (1s → 2s → 4s → ... → max_backoff)
    - On malformed updates: log and skip (the offset still advances)
    - On cancellation: graceful shutdown
    """

    def __init__(
        self,
        client: TelegramClient,
        poll_timeout: int | None = None,
        *,
        max_backoff: int | None = None,
    ):
        self.client = client
        self.poll_timeout = poll_timeout if poll_timeout is not None else settings.telegram_poll_timeout
        self.max_backoff = max_backoff if max_backoff is not None else settings.telegram_poll_max_backoff
        self._task: asyncio.Task | None = None
        self._offset: int | None = None
        self._running = False
        self._backoff = 1  # seconds, doubles on error

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the polling loop as a background task."""
        if self._running:
            logger.warning("Telegram poller already running")
            return

        if self.client.bot is None:
            await self.client.get_me()

        # Remove any existing webhook so polling can work
        try:
            await self.client.delete_webhook()
            logger.info("Telegram webhook removed (switching to polling mode)")
        except TelegramSendError as e:
            logger.warning(f"Could not delete Telegram webhook: {e}")

        self._running = True
        self._task = asyncio.create_task(self._poll_loop(), name="tg_poller")
        logger.info(f"Telegram poller started (timeout={self.poll_timeout}s)")

    async def stop(self) -> None:
        """Stop the polling loop gracefully."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Telegram poller stopped")

    async def poll_once(self) -> int:
        """Fetch one batch of updates and dispatch it. Returns the batch size."""
        updates = await self.client.get_updates(offset=self._offset, timeout=self.poll_timeout)

        for raw in updates:
            # Advance offset to acknowledge this update
            self._offset = raw.get("update_id", 0) + 1
            await self.process_update(raw)

        return len(updates)

    async def process_update(self, raw: dict) -> None:
        """Validate one raw Update and dispatch it to subscribers."""
        try:
            update = Update.model_validate(raw)
        except ValidationError as exc:
            logger.warning(
                f"Telegram update {raw.get('update_id', '?')} is malformed, skipping: "
                f"{exc.error_count()} validation error(s)"
            )
            return

        handled = await self.client.events.dispatch(update)
        logger.debug(
            f"Telegram update dispatched to {handled} handler(s)",
            extra={"update_id": update.update_id},
        )

    async def _poll_loop(self) -> None:
        """Main polling loop."""
        while self._running:
            try:
                await self.poll_once()
                # Reset backoff on successful poll
                self._backoff = 1

            except asyncio.CancelledError:
                break

            except TelegramSendError as e:
                if not self._running:
                    break
                delay = max(self._backoff, e.retry_after or 0)
                logger.error(f"Telegram polling error: {e}, backing off {delay}s")
                await asyncio.sleep(delay)
                self._backoff = min(self._backoff * 2, self.max_backoff)

            except Exception as e:
                if not self._running:
                    break
                logger.error(f"Telegram polling unexpected error: {e}", exc_info=True)
                await asyncio.sleep(self._backoff)
                self._backoff = min(self._backoff * 2, self.max_backoff)
