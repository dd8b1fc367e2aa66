"""Declarative handler responses and the delivery contract they implement."""

from __future__ import annotations

from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Iterable,
    Optional,
    Protocol,
    Sequence,
    Union,
    runtime_checkable,
)

from ..telegram.models import TelegramCallbackQuery, TelegramMessage, parse_message
from .context import MaybeAwaitable, resolve_maybe_awaitable
from .errors import TelegramBotError, TelegramBotErrorCode

if TYPE_CHECKING:
    from .bot import TelegramBot


@runtime_checkable
class BotResponse(Protocol):
    """Delivery contract every handler return value must satisfy."""

    async def respond_to_message(
        self, message: TelegramMessage, bot: "TelegramBot"
    ) -> None: ...

    async def respond_to_callback_query(
        self, query: TelegramCallbackQuery, bot: "TelegramBot"
    ) -> None: ...

    async def edit(
        self, message: TelegramMessage, bot: "TelegramBot"
    ) -> Optional[TelegramMessage]: ...

    async def send(
        self,
        chat_id: int,
        bot: "TelegramBot",
        *,
        reply_to_message_id: Optional[int] = None,
    ) -> Optional[TelegramMessage]: ...


@dataclass(frozen=True)
class CallbackDataButton:
    """Inline button whose payload is encoded by the bot's callback provider."""

    text: str
    callback_data: Any


@dataclass(frozen=True)
class UrlButton:
    text: str
    url: str


InlineButton = Union[CallbackDataButton, UrlButton]
InlineKeyboard = Sequence[Sequence[InlineButton]]


def build_reply_markup(
    keyboard: Optional[InlineKeyboard], bot: "TelegramBot"
) -> Optional[dict[str, Any]]:
    if not keyboard:
        return None
    rows: list[list[dict[str, str]]] = []
    for row in keyboard:
        buttons: list[dict[str, str]] = []
        for button in row:
            if isinstance(button, UrlButton):
                buttons.append({"text": button.text, "url": button.url})
                continue
            provider = bot.callback_data_provider
            if provider is None:
                raise TelegramBotError(TelegramBotErrorCode.NO_CALLBACK_DATA_PROVIDER)
            buttons.append(
                {
                    "text": button.text,
                    "callback_data": provider.stringify_callback_data(
                        button.callback_data
                    ),
                }
            )
        rows.append(buttons)
    return {"inline_keyboard": rows}


def _require_query_message(query: TelegramCallbackQuery) -> TelegramMessage:
    if query.message is None:
        raise TelegramBotError(TelegramBotErrorCode.NO_CALLBACK_MESSAGE)
    return query.message


@dataclass(frozen=True)
class TextContent:
    text: str
    parse_mode: Optional[str] = None


@dataclass(frozen=True)
class StickerContent:
    """Sticker referenced by file_id or HTTP URL."""

    sticker: str


MessageContent = Union[TextContent, StickerContent]


class ImmediateMessageResponse:
    """A single text or sticker message, optionally with an inline keyboard.

    A plain string is shorthand for ``TextContent``. On a callback query the
    query is answered with an empty answer and the message is sent to the chat
    the pressed button belongs to. Stickers cannot replace an existing message,
    so editing with sticker content sends a new sticker instead.
    """

    def __init__(
        self,
        content: Union[str, MessageContent],
        *,
        reply_markup: Optional[InlineKeyboard] = None,
        parse_mode: Optional[str] = None,
        reply: bool = False,
    ) -> None:
        if isinstance(content, str):
            content = TextContent(content, parse_mode=parse_mode)
        self.content: MessageContent = content
        self.reply_markup = reply_markup
        self.reply = reply

    async def send(
        self,
        chat_id: int,
        bot: "TelegramBot",
        *,
        reply_to_message_id: Optional[int] = None,
    ) -> Optional[TelegramMessage]:
        reply_markup = build_reply_markup(self.reply_markup, bot)
        if isinstance(self.content, StickerContent):
            result = await bot.api.send_sticker(
                chat_id,
                self.content.sticker,
                reply_to_message_id=reply_to_message_id,
                reply_markup=reply_markup,
            )
        else:
            result = await bot.api.send_message(
                chat_id,
                self.content.text,
                reply_to_message_id=reply_to_message_id,
                reply_markup=reply_markup,
                parse_mode=self.content.parse_mode,
            )
        return parse_message(result)

    async def respond_to_message(
        self, message: TelegramMessage, bot: "TelegramBot"
    ) -> None:
        await self.send(
            message.chat.id,
            bot,
            reply_to_message_id=message.message_id if self.reply else None,
        )

    async def respond_to_callback_query(
        self, query: TelegramCallbackQuery, bot: "TelegramBot"
    ) -> None:
        message = _require_query_message(query)
        await bot.api.answer_callback_query(query.id)
        await self.send(message.chat.id, bot)

    async def edit(
        self, message: TelegramMessage, bot: "TelegramBot"
    ) -> Optional[TelegramMessage]:
        if isinstance(self.content, StickerContent):
            return await self.send(message.chat.id, bot)
        result = await bot.api.edit_message_text(
            message.chat.id,
            message.message_id,
            self.content.text,
            reply_markup=build_reply_markup(self.reply_markup, bot),
            parse_mode=self.content.parse_mode,
        )
        # editMessageText returns True instead of the message for inline messages.
        return parse_message(result)


class NotificationResponse:
    """Answers a callback query with a toast (or alert) instead of a message."""

    def __init__(self, text: str, *, show_alert: bool = False) -> None:
        self.text = text
        self.show_alert = show_alert

    async def send(
        self,
        chat_id: int,
        bot: "TelegramBot",
        *,
        reply_to_message_id: Optional[int] = None,
    ) -> Optional[TelegramMessage]:
        result = await bot.api.send_message(
            chat_id, self.text, reply_to_message_id=reply_to_message_id
        )
        return parse_message(result)

    async def respond_to_message(
        self, message: TelegramMessage, bot: "TelegramBot"
    ) -> None:
        await self.send(message.chat.id, bot)

    async def respond_to_callback_query(
        self, query: TelegramCallbackQuery, bot: "TelegramBot"
    ) -> None:
        await bot.api.answer_callback_query(
            query.id, text=self.text, show_alert=self.show_alert or None
        )

    async def edit(
        self, message: TelegramMessage, bot: "TelegramBot"
    ) -> Optional[TelegramMessage]:
        result = await bot.api.edit_message_text(
            message.chat.id, message.message_id, self.text
        )
        return parse_message(result)


class MultipleMessageResponse:
    """Delivers several responses in order; ``None`` entries are skipped."""

    def __init__(self, responses: Iterable[Optional[BotResponse]]) -> None:
        self.responses: tuple[BotResponse, ...] = tuple(
            response for response in responses if response is not None
        )

    async def send(
        self,
        chat_id: int,
        bot: "TelegramBot",
        *,
        reply_to_message_id: Optional[int] = None,
    ) -> Optional[TelegramMessage]:
        last: Optional[TelegramMessage] = None
        for index, response in enumerate(self.responses):
            last = await response.send(
                chat_id,
                bot,
                reply_to_message_id=reply_to_message_id if index == 0 else None,
            )
        return last

    async def respond_to_message(
        self, message: TelegramMessage, bot: "TelegramBot"
    ) -> None:
        for response in self.responses:
            await response.respond_to_message(message, bot)

    async def respond_to_callback_query(
        self, query: TelegramCallbackQuery, bot: "TelegramBot"
    ) -> None:
        message = _require_query_message(query)
        await bot.api.answer_callback_query(query.id)
        await self.send(message.chat.id, bot)

    async def edit(
        self, message: TelegramMessage, bot: "TelegramBot"
    ) -> Optional[TelegramMessage]:
        if not self.responses:
            return None
        first, rest = self.responses[0], self.responses[1:]
        edited = await first.edit(message, bot)
        for response in rest:
            await response.send(message.chat.id, bot)
        return edited


GetDeferredResponse = Callable[[], MaybeAwaitable[Optional[BotResponse]]]


class ChatActionResponse:
    """Shows a chat action (``typing``, ``choose_sticker``, ...) while the real
    response is produced by ``get_response``, then delivers that response.

    On a callback query the deferred response answers the query; when it
    yields nothing the query gets an empty answer.
    """

    def __init__(self, action: str, get_response: GetDeferredResponse) -> None:
        self.action = action
        self._get_response = get_response

    async def _resolve(self, chat_id: int, bot: "TelegramBot") -> Optional[BotResponse]:
        await bot.api.send_chat_action(chat_id, self.action)
        return await resolve_maybe_awaitable(self._get_response())

    async def send(
        self,
        chat_id: int,
        bot: "TelegramBot",
        *,
        reply_to_message_id: Optional[int] = None,
    ) -> Optional[TelegramMessage]:
        response = await self._resolve(chat_id, bot)
        if response is None:
            return None
        return await response.send(
            chat_id, bot, reply_to_message_id=reply_to_message_id
        )

    async def respond_to_message(
        self, message: TelegramMessage, bot: "TelegramBot"
    ) -> None:
        response = await self._resolve(message.chat.id, bot)
        if response is not None:
            await response.respond_to_message(message, bot)

    async def respond_to_callback_query(
        self, query: TelegramCallbackQuery, bot: "TelegramBot"
    ) -> None:
        message = _require_query_message(query)
        response = await self._resolve(message.chat.id, bot)
        if response is not None:
            await response.respond_to_callback_query(query, bot)
        else:
            await bot.api.answer_callback_query(query.id)

    async def edit(
        self, message: TelegramMessage, bot: "TelegramBot"
    ) -> Optional[TelegramMessage]:
        response = await self._resolve(message.chat.id, bot)
        if response is None:
            return None
        return await response.edit(message, bot)
