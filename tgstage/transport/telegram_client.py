# tgstage/transport/telegram_client.py
"""
Telegram Bot API client.

One instance per bot token.  Stages, callback queries and inline queries are
handed the client explicitly; nothing reaches for a process-wide client.

Error classification (TelegramSendError.retryable):
- Token invalid / bot blocked  → NOT retryable (needs human intervention)
- Bad request (chat not found) → NOT retryable
- Rate limiting (429)          → retryable  (backoff then retry)
- Network / timeout            → retryable  (transient)
- Unknown server error         → retryable  (optimistic)

HTTP session lifecycle:
- Uses the shared sessions from tgstage.infra.http_client unless a session
  is passed in.  Call close_all_sessions() during application shutdown.
"""
from __future__ import annotations

import asyncio
from typing import Any, Iterable, Optional

import aiohttp

from tgstage.config import settings
from tgstage.infra.http_client import get_poller_session, get_sender_session
from tgstage.infra.logging_config import get_logger, mask_id
from tgstage.transport.dispatcher import EventDispatcher
from tgstage.transport.schemas import InlineKeyboardMarkup, Message, TelegramModel, User

logger = get_logger(__name__)


class TelegramSendError(Exception):
    """Error calling the Telegram Bot API.

    Attributes:
        status:     HTTP status code (0 for connection-level errors).
        error_code: Telegram-specific error code from the response body.
        retryable:  Whether the caller should schedule a retry.
        retry_after: Seconds Telegram asked us to wait (429 only).
    """

    def __init__(
        self,
        status: int,
        error_code: int | None,
        message: str,
        *,
        retryable: bool = False,
        retry_after: int | None = None,
    ):
        self.status = status
        self.error_code = error_code
        self.retryable = retryable
        self.retry_after = retry_after
        super().__init__(f"Telegram API error {status} (code={error_code}): {message}")


class TelegramClient:
    """
    Bot API client plus the event source that stages subscribe to.

    Args:
        token: Bot token (defaults to settings.telegram_bot_token)
        api_base: Bot API root URL
        session: aiohttp session to use instead of the shared ones
        events: Event dispatcher to use instead of a fresh one
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        api_base: str | None = None,
        session: aiohttp.ClientSession | None = None,
        events: EventDispatcher | None = None,
    ):
        self._token = token or settings.telegram_bot_token
        if not self._token:
            raise ValueError("Telegram bot token is not configured")
        self._api_base = (api_base or settings.telegram_api_base).rstrip("/")
        self._session = session
        self.events = events if events is not None else EventDispatcher()
        self.bot: User | None = None

    @property
    def bot_id(self) -> Optional[int]:
        """Id of this bot, known after get_me()."""
        return self.bot.id if self.bot else None

    def _bot_url(self, method: str) -> str:
        return f"{self._api_base}/bot{self._token}/{method}"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_me(self) -> User:
        """Fetch and cache the bot's own user."""
        result = await self._request("getMe", {})
        self.bot = User.model_validate(result)
        logger.info(f"Telegram bot identity: id={self.bot.id}, username={self.bot.username}")
        return self.bot

    async def send_message(
        self,
        chat_id: int | str,
        text: str,
        *,
        parse_mode: str | None = None,
        reply_markup: InlineKeyboardMarkup | None = None,
        reply_to_message_id: int | None = None,
    ) -> Message:
        """Send a text message and return the sent Message."""
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup.to_api()
        if reply_to_message_id is not None:
            payload["reply_to_message_id"] = reply_to_message_id

        result = await self._request("sendMessage", payload, chat_id=str(chat_id))
        logger.info(f"Telegram message sent: to={mask_id(chat_id)}, msg_id={result.get('message_id', 'unknown')}")
        return Message.model_validate(result)

    async def answer_callback_query(
        self,
        callback_query_id: str,
        *,
        text: str | None = None,
        show_alert: bool = False,
        url: str | None = None,
        cache_time: int | None = None,
    ) -> bool:
        payload: dict[str, Any] = {"callback_query_id": callback_query_id}
        if text is not None:
            payload["text"] = text
        if show_alert:
            payload["show_alert"] = True
        if url is not None:
            payload["url"] = url
        if cache_time is not None:
            payload["cache_time"] = cache_time
        return bool(await self._request("answerCallbackQuery", payload))

    async def answer_inline_query(
        self,
        inline_query_id: str,
        results: Iterable[TelegramModel],
        *,
        cache_time: int | None = None,
        is_personal: bool | None = None,
        next_offset: str | None = None,
    ) -> bool:
        payload: dict[str, Any] = {
            "inline_query_id": inline_query_id,
            "results": [r.to_api() for r in results],
        }
        if cache_time is not None:
            payload["cache_time"] = cache_time
        if is_personal is not None:
            payload["is_personal"] = is_personal
        if next_offset is not None:
            payload["next_offset"] = next_offset
        return bool(await self._request("answerInlineQuery", payload))

    async def get_updates(self, offset: int | None = None, timeout: int = 30) -> list[dict]:
        """Long-poll for raw Update dicts via getUpdates."""
        payload: dict[str, Any] = {"timeout": timeout}
        if offset is not None:
            payload["offset"] = offset

        result = await self._request(
            "getUpdates",
            payload,
            session=self._session or get_poller_session(),
            timeout=aiohttp.ClientTimeout(total=timeout + 10, connect=5),
        )
        return result or []

    async def delete_webhook(self) -> bool:
        """Remove webhook so polling can work."""
        return bool(await self._request("deleteWebhook", {}))

    async def set_webhook(self, webhook_url: str, secret_token: str | None = None) -> bool:
        """Point Telegram at ``webhook_url``, optionally with a secret header token."""
        payload: dict[str, Any] = {"url": webhook_url}
        if secret_token:
            payload["secret_token"] = secret_token
        return bool(await self._request("setWebhook", payload))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        payload: dict,
        *,
        chat_id: str = "system",
        session: aiohttp.ClientSession | None = None,
        timeout: aiohttp.ClientTimeout | None = None,
    ) -> Any:
        """Execute a Bot API call and return its ``result`` field."""
        session = session or self._session or get_sender_session()
        kwargs: dict[str, Any] = {"json": payload}
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            async with session.post(self._bot_url(method), **kwargs) as resp:
                body = await _safe_response_json(resp)

                if resp.status == 200 and body and body.get("ok"):
                    return body.get("result")

                raise _classify_error(method, resp.status, body, chat_id)

        except TelegramSendError:
            raise
        except aiohttp.ClientError as exc:
            logger.error(f"Telegram {method} connection error: {exc}", exc_info=True)
            raise TelegramSendError(0, None, str(exc), retryable=True) from exc
        except asyncio.TimeoutError as exc:
            logger.warning(f"Telegram {method} timed out")
            raise TelegramSendError(0, None, "timeout", retryable=True) from exc


def _classify_error(method: str, status: int, body: dict | None, chat_id: str) -> TelegramSendError:
    error_desc = (body or {}).get("description", "Unknown error")
    error_code = (body or {}).get("error_code")
    target = mask_id(chat_id)

    # -- Auth failure: token invalid (DO NOT retry) --------
    if status == 401 or error_code == 401:
        logger.error(f"Telegram {method} auth error (token invalid): {error_desc}")
        return TelegramSendError(status, error_code, error_desc, retryable=False)

    # -- Forbidden: bot blocked by user (DO NOT retry) --
    if status == 403:
        logger.warning(f"Telegram {method} forbidden for chat={target}: {error_desc}")
        return TelegramSendError(status, error_code, error_desc, retryable=False)

    # -- Bad request: chat not found, message too long, etc. (DO NOT retry) --
    if status == 400:
        logger.warning(f"Telegram {method} bad request for chat={target}: {error_desc}")
        return TelegramSendError(status, error_code, error_desc, retryable=False)

    # -- Rate limit: retry with backoff --------------
    if status == 429:
        retry_after = (body or {}).get("parameters", {}).get("retry_after", 30)
        logger.warning(f"Telegram {method} rate limit, retry_after={retry_after}s")
        return TelegramSendError(status, error_code, error_desc, retryable=True, retry_after=retry_after)

    # -- Anything else: optimistic retry ----------------------------
    logger.error(f"Telegram {method} error: status={status}, code={error_code}, msg={error_desc}")
    return TelegramSendError(status, error_code, error_desc, retryable=True)


async def _safe_response_json(resp: aiohttp.ClientResponse) -> dict | None:
    """Parse JSON from response, returning None if body is not valid JSON."""
    try:
        return await resp.json(content_type=None)
    except (aiohttp.ContentTypeError, ValueError):
        logger.warning(f"Telegram API returned non-JSON body: status={resp.status}")
        return None
