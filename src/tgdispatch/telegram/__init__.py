"""Telegram Bot API transport: typed models, HTTP client and update poller."""

from .client import (
    TelegramAPIError,
    TelegramBotClient,
    TelegramPermanentError,
    TelegramTransientError,
)
from .constants import TELEGRAM_CALLBACK_DATA_LIMIT
from .models import (
    TelegramCallbackQuery,
    TelegramChat,
    TelegramMessage,
    TelegramUpdate,
    TelegramUser,
    next_update_offset,
    parse_update,
)
from .poller import TelegramUpdatePoller

__all__ = [
    "TELEGRAM_CALLBACK_DATA_LIMIT",
    "TelegramAPIError",
    "TelegramBotClient",
    "TelegramCallbackQuery",
    "TelegramChat",
    "TelegramMessage",
    "TelegramPermanentError",
    "TelegramTransientError",
    "TelegramUpdate",
    "TelegramUpdatePoller",
    "TelegramUser",
    "next_update_offset",
    "parse_update",
]
