# tests/test_polling.py
"""Tests for the long-polling loop"""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tgstage.core.stage import Stage
from tgstage.runner import run_polling
from tgstage.transport.dispatcher import EventDispatcher
from tgstage.transport.telegram_client import TelegramSendError
from tgstage.transport.telegram_polling import TelegramPoller


def raw_update(update_id, text="hi", chat=100, sender=42):
    return {
        "update_id": update_id,
        "message": {
            "message_id": update_id,
            "from": {"id": sender, "first_name": "T"},
            "chat": {"id": chat, "type": "private"},
            "text": text,
        },
    }


async def idle_updates(*args, **kwargs):
    await asyncio.sleep(0.01)
    return []


def make_client(*batches):
    client = MagicMock()
    client.events = EventDispatcher()
    client.bot = None
    client.bot_id = 999
    client.get_me = AsyncMock()
    client.delete_webhook = AsyncMock(return_value=True)
    client.get_updates = AsyncMock(side_effect=list(batches))
    return client


class TestPollOnce:
    @pytest.mark.asyncio
    async def test_dispatches_and_advances_offset(self):
        client = make_client([raw_update(10), raw_update(11)], [])
        received = []
        client.events.subscribe(received.append)
        poller = TelegramPoller(client, poll_timeout=5)

        assert await poller.poll_once() == 2
        assert [u.update_id for u in received] == [10, 11]

        await poller.poll_once()
        client.get_updates.assert_awaited_with(offset=12, timeout=5)

    @pytest.mark.asyncio
    async def test_malformed_update_is_skipped(self):
        client = make_client([{"update_id": 3, "message": {"text": "no chat"}}, raw_update(4)])
        received = []
        client.events.subscribe(received.append)
        poller = TelegramPoller(client)

        await poller.poll_once()

        assert [u.update_id for u in received] == [4]

    @pytest.mark.asyncio
    async def test_drives_a_stage(self):
        client = make_client([raw_update(1, "/start"), raw_update(2, "Alice")])
        stage = Stage(client, context={}, chat_id=100)

        @stage.on("name", initial=True)
        def ask(stage):
            stage.await_response(lambda u: stage.context.update(name=u.message.text))

        await stage.start()
        await TelegramPoller(client).poll_once()

        assert stage.context == {"name": "Alice"}
        assert len(stage.history) == 2


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_fetches_identity_and_stop(self):
        client = make_client()
        client.get_updates = AsyncMock(side_effect=idle_updates)
        poller = TelegramPoller(client, poll_timeout=0)

        await poller.start()
        assert poller.running
        await asyncio.sleep(0)
        await poller.stop()

        client.get_me.assert_awaited_once()
        client.delete_webhook.assert_awaited_once()
        assert not poller.running

    @pytest.mark.asyncio
    async def test_start_survives_webhook_delete_failure(self):
        client = make_client()
        client.get_updates = AsyncMock(side_effect=idle_updates)
        client.delete_webhook = AsyncMock(side_effect=TelegramSendError(500, None, "down"))
        poller = TelegramPoller(client, poll_timeout=0)

        await poller.start()
        assert poller.running
        await poller.stop()

    @pytest.mark.asyncio
    async def test_loop_backs_off_on_api_error(self):
        client = make_client()
        poller = TelegramPoller(client, poll_timeout=0, max_backoff=4)
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)
            if len(sleeps) >= 3:
                poller._running = False

        client.get_updates = AsyncMock(side_effect=TelegramSendError(502, None, "bad gateway", retryable=True))
        poller._running = True

        with patch("tgstage.transport.telegram_polling.asyncio.sleep", new=fake_sleep):
            await poller._poll_loop()

        assert sleeps == [1, 2, 4]


class TestRunPolling:
    @pytest.mark.asyncio
    async def test_runs_until_stop_event(self):
        client = make_client()
        client.get_updates = AsyncMock(side_effect=idle_updates)
        stop = asyncio.Event()

        with patch("tgstage.runner.close_all_sessions", new=AsyncMock()) as closer:
            task = asyncio.create_task(run_polling(client, stop))
            await asyncio.sleep(0.05)
            stop.set()
            await task

        client.delete_webhook.assert_awaited_once()
        closer.assert_awaited_once()
