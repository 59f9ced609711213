# tgstage/transport/schemas.py
"""
Telegram Bot API objects used by the transport layer.

Only the fields this package reads or sends are declared; unknown fields in
inbound JSON are ignored.  ``Message.from_user`` maps to the ``from`` key.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from tgstage.core.stage.scope import extract_message

if TYPE_CHECKING:
    from tgstage.transport.telegram_client import TelegramClient


class TelegramModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_api(self) -> dict:
        """Serialize for a Bot API request body."""
        return self.model_dump(by_alias=True, exclude_none=True)


class User(TelegramModel):
    id: int
    is_bot: bool = False
    first_name: str = ""
    last_name: Optional[str] = None
    username: Optional[str] = None
    language_code: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.username:
            return f"@{self.username}"
        return " ".join(p for p in (self.first_name, self.last_name) if p)


class Chat(TelegramModel):
    id: int
    type: str = "private"
    title: Optional[str] = None
    username: Optional[str] = None


class PhotoSize(TelegramModel):
    file_id: str
    file_unique_id: Optional[str] = None
    width: int = 0
    height: int = 0
    file_size: Optional[int] = None


class Document(TelegramModel):
    file_id: str
    file_unique_id: Optional[str] = None
    thumb: Optional[PhotoSize] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None


class Message(TelegramModel):
    message_id: int
    from_user: Optional[User] = Field(default=None, alias="from")
    chat: Chat
    date: int = 0
    text: Optional[str] = None
    caption: Optional[str] = None
    document: Optional[Document] = None
    photo: list[PhotoSize] = Field(default_factory=list)
    reply_to_message: Optional[Message] = None

    @property
    def command(self) -> Optional[str]:
        """Bot command without the bot mention: ``/start@MyBot x`` -> ``/start``."""
        if not self.text or not self.text.startswith("/"):
            return None
        return self.text.split()[0].split("@")[0]


class InlineKeyboardButton(TelegramModel):
    text: str
    url: Optional[str] = None
    callback_data: Optional[str] = None


class InlineKeyboardMarkup(TelegramModel):
    inline_keyboard: list[list[InlineKeyboardButton]] = Field(default_factory=list)


class InputTextMessageContent(TelegramModel):
    message_text: str
    parse_mode: Optional[str] = None


class InlineQueryResultCachedDocument(TelegramModel):
    type: Literal["document"] = "document"
    id: str
    title: str
    document_file_id: str
    description: Optional[str] = None
    caption: Optional[str] = None
    reply_markup: Optional[InlineKeyboardMarkup] = None
    input_message_content: Optional[InputTextMessageContent] = None


class InlineQueryResultCachedVoice(TelegramModel):
    type: Literal["voice"] = "voice"
    id: str
    voice_file_id: str
    title: str
    reply_markup: Optional[InlineKeyboardMarkup] = None
    input_message_content: Optional[InputTextMessageContent] = None


class InlineQuery(TelegramModel):
    id: str
    from_user: User = Field(alias="from")
    query: str = ""
    offset: str = ""

    async def answer(
        self,
        client: "TelegramClient",
        results: list[InlineQueryResultCachedDocument | InlineQueryResultCachedVoice],
        **options,
    ) -> bool:
        return await client.answer_inline_query(self.id, results, **options)


class CallbackQuery(TelegramModel):
    id: str
    from_user: User = Field(alias="from")
    message: Optional[Message] = None
    inline_message_id: Optional[str] = None
    chat_instance: Optional[str] = None
    data: Optional[str] = None
    game_short_name: Optional[str] = None

    async def answer(self, client: "TelegramClient", **options) -> bool:
        """Answer this query through ``client`` (answerCallbackQuery)."""
        return await client.answer_callback_query(self.id, **options)


class Update(TelegramModel):
    update_id: int
    message: Optional[Message] = None
    edited_message: Optional[Message] = None
    channel_post: Optional[Message] = None
    edited_channel_post: Optional[Message] = None
    inline_query: Optional[InlineQuery] = None
    callback_query: Optional[CallbackQuery] = None

    @property
    def effective_message(self) -> Optional[Message]:
        """First message-like payload, in the order stages screen them."""
        return extract_message(self)
