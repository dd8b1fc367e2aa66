from __future__ import annotations

from enum import Enum
from typing import Optional

from ..core.exceptions import TgDispatchError


class TelegramBotErrorCode(str, Enum):
    UNSUPPORTED_CALLBACK_DATA = "unsupported_callback_data"
    CALLBACK_DATA_TOO_LONG = "callback_data_too_long"
    NO_CALLBACK_DATA_PROVIDER = "no_callback_data_provider"
    NO_CALLBACK_MESSAGE = "no_callback_message"


_DEFAULT_MESSAGES = {
    TelegramBotErrorCode.UNSUPPORTED_CALLBACK_DATA: "Unsupported callback data",
    TelegramBotErrorCode.CALLBACK_DATA_TOO_LONG: "Callback data exceeds Telegram limit",
    TelegramBotErrorCode.NO_CALLBACK_DATA_PROVIDER: "No callback data provider is bound",
    TelegramBotErrorCode.NO_CALLBACK_MESSAGE: "Callback query has no message",
}


class TelegramBotError(TgDispatchError):
    """Dispatcher-level error tagged with a machine-readable code."""

    def __init__(
        self,
        code: TelegramBotErrorCode,
        message: Optional[str] = None,
        *,
        user_message: Optional[str] = None,
    ) -> None:
        super().__init__(message or _DEFAULT_MESSAGES[code], user_message=user_message)
        self.code = code
