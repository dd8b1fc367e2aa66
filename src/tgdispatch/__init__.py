"""Dispatch layer between Telegram updates and application handlers."""

from .core import BotConfig, ConfigError, TgDispatchError, load_bot_config
from .dispatch import (
    BotResponse,
    CallbackDataButton,
    CallbackDataProvider,
    CallbackQueryErrorResponseContext,
    CallbackQueryHandlerContext,
    ChatActionResponse,
    ImmediateMessageResponse,
    JsonCallbackDataProvider,
    JsonUserDataProvider,
    MessageErrorResponseContext,
    MessageHandlerContext,
    MultipleMessageResponse,
    NotificationResponse,
    StickerContent,
    TelegramBot,
    TelegramBotError,
    TelegramBotErrorCode,
    TextContent,
    UrlButton,
    UserDataProvider,
)

__version__ = "0.1.0"

__all__ = [
    "BotConfig",
    "BotResponse",
    "CallbackDataButton",
    "CallbackDataProvider",
    "CallbackQueryErrorResponseContext",
    "CallbackQueryHandlerContext",
    "ChatActionResponse",
    "ConfigError",
    "ImmediateMessageResponse",
    "JsonCallbackDataProvider",
    "JsonUserDataProvider",
    "MessageErrorResponseContext",
    "MessageHandlerContext",
    "MultipleMessageResponse",
    "NotificationResponse",
    "StickerContent",
    "TelegramBot",
    "TelegramBotError",
    "TelegramBotErrorCode",
    "TextContent",
    "TgDispatchError",
    "UrlButton",
    "UserDataProvider",
    "__version__",
    "load_bot_config",
]
