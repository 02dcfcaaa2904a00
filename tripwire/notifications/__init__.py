"""Messaging channels."""

from .service import TelegramChannel, split_message

__all__ = ["TelegramChannel", "split_message"]
