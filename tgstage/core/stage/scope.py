# tgstage/core/stage/scope.py
"""
Scope filter: decides whether an update belongs to a stage.

Updates are read by attribute, so anything shaped like a Telegram Update
works (pydantic models from ``tgstage.transport.schemas``, SimpleNamespace
objects in tests, ...).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

# Fixed tie-break order when an update carries more than one payload.
PAYLOAD_FIELDS = ("channel_post", "edited_channel_post", "edited_message", "message")


def extract_message(update: Any) -> Any:
    """Return the first message-like payload of ``update`` or None."""
    for field_name in PAYLOAD_FIELDS:
        payload = getattr(update, field_name, None)
        if payload is not None:
            return payload
    return None


def sender_id(message: Any) -> Optional[int]:
    sender = getattr(message, "from_user", None)
    return getattr(sender, "id", None)


def chat_id_of(message: Any) -> Optional[int]:
    chat = getattr(message, "chat", None)
    return getattr(chat, "id", None)


@dataclass(frozen=True)
class ScopeFilter:
    """
    Matches updates for a configured chat and/or user.

    ``None`` for either id means "any".  Updates sent by the bot itself are
    always rejected.
    """
    chat_id: Optional[int] = None
    user_id: Optional[int] = None

    def matches(self, update: Any, self_id: Optional[int]) -> bool:
        message = extract_message(update)
        if message is None:
            return False

        from_id = sender_id(message)

        if self_id is not None and from_id == self_id:
            return False

        if self.chat_id is not None and chat_id_of(message) != self.chat_id:
            return False

        if self.user_id is not None and from_id != self.user_id:
            return False

        return True
