"""Chat history module."""

from muavin.session.history import ChatHistory, ChatMessage

__all__ = ["ChatHistory", "ChatMessage"]
