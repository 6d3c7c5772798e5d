"""Chat notification senders and the chat command bot."""

from .telegram import TelegramMessageSender
from .telegram_bot import TelegramBotService

__all__ = ["TelegramBotService", "TelegramMessageSender"]
