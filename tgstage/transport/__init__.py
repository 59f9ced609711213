# tgstage/transport/__init__.py
"""
Telegram transport: models, event dispatcher, Bot API client, polling and webhook.

Canonical imports:
    from tgstage.transport import TelegramClient, EventDispatcher, command
    from tgstage.transport.schemas import Update, Message
"""
from tgstage.transport.dispatcher import EventDispatcher, Subscription, command  # noqa: F401
from tgstage.transport.telegram_client import TelegramClient, TelegramSendError  # noqa: F401
from tgstage.transport.telegram_polling import TelegramPoller  # noqa: F401
