"""Event dispatch: routing, state/payload providers and responses."""

from .bot import TelegramBot
from .callback_data import CallbackDataProvider, JsonCallbackDataProvider
from .context import (
    CallbackQueryErrorResponseContext,
    CallbackQueryHandler,
    CallbackQueryHandlerContext,
    MessageErrorResponseContext,
    MessageHandler,
    MessageHandlerContext,
)
from .errors import TelegramBotError, TelegramBotErrorCode
from .queueing import UserEventQueue
from .responses import (
    BotResponse,
    CallbackDataButton,
    ChatActionResponse,
    ImmediateMessageResponse,
    MultipleMessageResponse,
    NotificationResponse,
    StickerContent,
    TextContent,
    UrlButton,
)
from .user_data import JsonUserDataProvider, UserDataProvider

__all__ = [
    "BotResponse",
    "CallbackDataButton",
    "CallbackDataProvider",
    "CallbackQueryErrorResponseContext",
    "CallbackQueryHandler",
    "CallbackQueryHandlerContext",
    "ChatActionResponse",
    "ImmediateMessageResponse",
    "JsonCallbackDataProvider",
    "JsonUserDataProvider",
    "MessageErrorResponseContext",
    "MessageHandler",
    "MessageHandlerContext",
    "MultipleMessageResponse",
    "NotificationResponse",
    "StickerContent",
    "TelegramBot",
    "TelegramBotError",
    "TelegramBotErrorCode",
    "TextContent",
    "UrlButton",
    "UserDataProvider",
    "UserEventQueue",
]
