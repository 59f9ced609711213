# tests/test_telegram_client.py
"""Tests for the Telegram Bot API client (no network)"""
import aiohttp
import pytest

from tgstage.transport.schemas import InlineQueryResultCachedVoice
from tgstage.transport.telegram_client import TelegramClient, TelegramSendError


class FakeResponse:
    def __init__(self, status=200, body=None):
        self.status = status
        self._body = body

    async def json(self, content_type=None):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Records POSTs and replays canned responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def ok(result):
    return FakeResponse(200, {"ok": True, "result": result})


def make_client(*responses):
    session = FakeSession(*responses)
    return TelegramClient("123:abc", api_base="https://api.test", session=session), session


class TestClientBasics:
    def test_requires_token(self, monkeypatch):
        monkeypatch.setattr("tgstage.transport.telegram_client.settings.telegram_bot_token", None)
        with pytest.raises(ValueError):
            TelegramClient()

    def test_bot_id_unknown_until_get_me(self):
        client, _ = make_client()
        assert client.bot_id is None

    @pytest.mark.asyncio
    async def test_get_me_caches_identity(self):
        client, session = make_client(ok({"id": 777, "is_bot": True, "first_name": "Bot", "username": "the_bot"}))
        bot = await client.get_me()

        assert bot.username == "the_bot"
        assert client.bot_id == 777
        assert session.calls[0][0] == "https://api.test/bot123:abc/getMe"


class TestRequests:
    @pytest.mark.asyncio
    async def test_send_message(self):
        client, session = make_client(ok({"message_id": 9, "chat": {"id": 100}, "text": "hi"}))
        message = await client.send_message(100, "hi", parse_mode="HTML")

        assert message.message_id == 9
        url, kwargs = session.calls[0]
        assert url.endswith("/sendMessage")
        assert kwargs["json"] == {"chat_id": 100, "text": "hi", "parse_mode": "HTML"}

    @pytest.mark.asyncio
    async def test_answer_callback_query(self):
        client, session = make_client(ok(True))
        assert await client.answer_callback_query("cb1", text="Done", show_alert=True) is True
        assert session.calls[0][1]["json"] == {
            "callback_query_id": "cb1", "text": "Done", "show_alert": True,
        }

    @pytest.mark.asyncio
    async def test_answer_inline_query_serializes_results(self):
        client, session = make_client(ok(True))
        results = [InlineQueryResultCachedVoice(id="v1", voice_file_id="f1", title="Hi")]
        await client.answer_inline_query("iq1", results, cache_time=0)

        payload = session.calls[0][1]["json"]
        assert payload["results"] == [{"type": "voice", "id": "v1", "voice_file_id": "f1", "title": "Hi"}]
        assert payload["cache_time"] == 0

    @pytest.mark.asyncio
    async def test_get_updates_passes_offset_and_timeout(self):
        client, session = make_client(ok([{"update_id": 5}]))
        updates = await client.get_updates(offset=5, timeout=10)

        assert updates == [{"update_id": 5}]
        kwargs = session.calls[0][1]
        assert kwargs["json"] == {"timeout": 10, "offset": 5}
        assert kwargs["timeout"].total == 20

    @pytest.mark.asyncio
    async def test_set_webhook_with_secret(self):
        client, session = make_client(ok(True))
        await client.set_webhook("https://bot.example.com/webhooks/telegram", secret_token="s3cret")
        assert session.calls[0][1]["json"]["secret_token"] == "s3cret"


class TestErrorClassification:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,retryable", [
        (400, False),
        (401, False),
        (403, False),
        (429, True),
        (500, True),
    ])
    async def test_status_codes(self, status, retryable):
        client, _ = make_client(FakeResponse(status, {"ok": False, "error_code": status, "description": "nope"}))
        with pytest.raises(TelegramSendError) as exc_info:
            await client.send_message(1, "x")
        assert exc_info.value.status == status
        assert exc_info.value.retryable is retryable

    @pytest.mark.asyncio
    async def test_rate_limit_retry_after(self):
        client, _ = make_client(FakeResponse(429, {
            "ok": False, "error_code": 429, "description": "Too Many Requests",
            "parameters": {"retry_after": 7},
        }))
        with pytest.raises(TelegramSendError) as exc_info:
            await client.delete_webhook()
        assert exc_info.value.retry_after == 7

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        client, _ = make_client(FakeResponse(502, ValueError("not json")))
        with pytest.raises(TelegramSendError) as exc_info:
            await client.get_me()
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_connection_error_is_retryable(self):
        client, _ = make_client(aiohttp.ClientConnectionError("refused"))
        with pytest.raises(TelegramSendError) as exc_info:
            await client.get_me()
        assert exc_info.value.status == 0
        assert exc_info.value.retryable
