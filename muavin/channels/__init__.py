"""Outbound chat channels."""

from muavin.channels.markdown import sanitize, split_message
from muavin.channels.telegram import TelegramDelivery

__all__ = ["TelegramDelivery", "sanitize", "split_message"]
