"""Conversation stages for Telegram bots."""

__version__ = "0.1.0"
