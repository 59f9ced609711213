# tests/conftest.py
"""Pytest configuration and fixtures"""
import pytest
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tgstage.transport.dispatcher import EventDispatcher
from tgstage.transport.schemas import Update

BOT_ID = 999


class FakeClient:
    """Stage client with a real dispatcher and a fixed bot id."""

    def __init__(self, bot_id=BOT_ID):
        self.events = EventDispatcher()
        self.bot_id = bot_id


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def chat_id():
    """Default chat ID for tests"""
    return 100


@pytest.fixture
def user_id():
    """Default user ID for tests"""
    return 42


@pytest.fixture
def make_update(chat_id, user_id):
    """Factory for Telegram Updates with a single message-like payload."""
    counter = {"next": 1}

    def _make(text="hello", *, chat=None, sender=None, kind="message", update_id=None):
        if update_id is None:
            update_id = counter["next"]
        counter["next"] = update_id + 1

        message = {
            "message_id": update_id,
            "chat": {"id": chat if chat is not None else chat_id, "type": "private"},
            "date": 1700000000,
            "text": text,
        }
        sender = user_id if sender is None else sender
        if sender is not False:
            message["from"] = {"id": sender, "is_bot": sender == BOT_ID, "first_name": "Test"}
        return Update.model_validate({"update_id": update_id, kind: message})

    return _make
