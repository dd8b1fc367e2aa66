"""Contexts passed to handlers and error-response resolvers."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

from ..telegram.models import TelegramCallbackQuery, TelegramMessage

if TYPE_CHECKING:
    from .responses import BotResponse

UserDataT = TypeVar("UserDataT")
CallbackDataT = TypeVar("CallbackDataT")
T = TypeVar("T")

MaybeAwaitable = Union[T, Awaitable[T]]


@dataclass(frozen=True)
class MessageHandlerContext(Generic[UserDataT]):
    message: TelegramMessage
    user_data: Optional[UserDataT] = None
    # Always empty for now: routing only matches whole-message commands.
    commands: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class CallbackQueryHandlerContext(Generic[CallbackDataT, UserDataT]):
    data: CallbackDataT
    message: TelegramMessage
    user_data: Optional[UserDataT] = None
    query: Optional[TelegramCallbackQuery] = None


@dataclass(frozen=True)
class MessageErrorResponseContext:
    err: BaseException
    message: TelegramMessage


@dataclass(frozen=True)
class CallbackQueryErrorResponseContext:
    err: BaseException
    message: TelegramMessage
    query: TelegramCallbackQuery


MessageHandler = Callable[
    [MessageHandlerContext[Any]], MaybeAwaitable[Optional["BotResponse"]]
]
CallbackQueryHandler = Callable[
    [CallbackQueryHandlerContext[Any, Any]], MaybeAwaitable[Optional["BotResponse"]]
]
GetMessageErrorResponse = Callable[
    [MessageErrorResponseContext], MaybeAwaitable[Optional["BotResponse"]]
]
GetCallbackQueryErrorResponse = Callable[
    [CallbackQueryErrorResponseContext], MaybeAwaitable[Optional["BotResponse"]]
]
ResponseErrorListener = Callable[[BaseException], None]


async def resolve_maybe_awaitable(value: MaybeAwaitable[T]) -> T:
    if inspect.isawaitable(value):
        return await value
    return value
