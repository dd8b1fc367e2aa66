"""Telegram event dispatcher.

Routes each inbound message or callback query to exactly one application
handler, supplies it with the sender's persisted state and the decoded
callback payload, delivers the handler's response and contains every failure
behind a single error-recovery path. Nothing raised while handling an event
escapes ``handle_message`` / ``handle_callback_query``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import (
    Any,
    Coroutine,
    Dict,
    Generic,
    Iterable,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
)

from ..core.config import DEFAULT_ALLOWED_UPDATES, DEFAULT_POLL_TIMEOUT_SECONDS, BotConfig
from ..core.exceptions import TgDispatchError
from ..core.logging_utils import log_event
from ..telegram.client import TelegramBotClient, TelegramPermanentError
from ..telegram.models import (
    TelegramCallbackQuery,
    TelegramMessage,
    TelegramUpdate,
    TelegramUser,
)
from ..telegram.poller import TelegramUpdatePoller
from .callback_data import CallbackDataProvider
from .context import (
    CallbackQueryErrorResponseContext,
    CallbackQueryHandlerContext,
    GetCallbackQueryErrorResponse,
    GetMessageErrorResponse,
    MessageErrorResponseContext,
    MessageHandler,
    MessageHandlerContext,
    ResponseErrorListener,
    resolve_maybe_awaitable,
)
from .errors import TelegramBotError, TelegramBotErrorCode
from .queueing import EventJob, UserEventQueue
from .responses import BotResponse
from .user_data import UserDataProvider

CallbackDataT = TypeVar("CallbackDataT")
UserDataT = TypeVar("UserDataT")

POLL_ERROR_BACKOFF_SECONDS = 1.0


class TelegramBot(Generic[CallbackDataT, UserDataT]):
    """Dispatcher binding commands, state and callback providers to handlers."""

    def __init__(
        self,
        *,
        token: Optional[str] = None,
        api: Optional[TelegramBotClient] = None,
        commands: Optional[Mapping[str, str]] = None,
        callback_data_provider: Optional[CallbackDataProvider[CallbackDataT]] = None,
        user_data_provider: Optional[UserDataProvider[UserDataT]] = None,
        username_whitelist: Optional[Iterable[str]] = None,
        get_message_error_response: Optional[GetMessageErrorResponse] = None,
        get_callback_query_error_response: Optional[
            GetCallbackQueryErrorResponse
        ] = None,
        per_user_queue: bool = False,
        poll_timeout_seconds: int = DEFAULT_POLL_TIMEOUT_SECONDS,
        allowed_updates: Sequence[str] = DEFAULT_ALLOWED_UPDATES,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if api is None:
            if not token:
                raise ValueError("either token or api is required")
            api = TelegramBotClient(token)
        self.api = api
        self.commands: Optional[Dict[str, str]] = (
            dict(commands) if commands is not None else None
        )
        self.callback_data_provider = callback_data_provider
        self.user_data_provider = user_data_provider
        self.username_whitelist: Optional[frozenset[str]] = (
            frozenset(name.strip().lstrip("@") for name in username_whitelist)
            if username_whitelist is not None
            else None
        )
        self._get_message_error_response = get_message_error_response
        self._get_callback_query_error_response = get_callback_query_error_response
        self._logger = logger or logging.getLogger(__name__)
        self._command_handlers: Dict[str, MessageHandler] = {}
        self._response_error_listeners: list[ResponseErrorListener] = []
        self._queue = UserEventQueue(logger=self._logger) if per_user_queue else None
        self._poll_timeout_seconds = poll_timeout_seconds
        self._allowed_updates = tuple(allowed_updates)
        self._tasks: set[asyncio.Task[None]] = set()
        self._stop_event: Optional[asyncio.Event] = None
        self._poll_task: Optional[asyncio.Task[Any]] = None

    @classmethod
    def from_config(cls, config: BotConfig, **kwargs: Any) -> "TelegramBot[Any, Any]":
        """Build a bot from a loaded config; ``kwargs`` supply providers/resolvers."""

        config.validate()
        return cls(
            token=config.bot_token,
            commands=config.commands,
            username_whitelist=config.username_whitelist,
            per_user_queue=config.per_user_queue,
            poll_timeout_seconds=config.polling.timeout_seconds,
            allowed_updates=config.polling.allowed_updates,
            **kwargs,
        )

    def handle_command(
        self, command: str, handler: MessageHandler
    ) -> "TelegramBot[CallbackDataT, UserDataT]":
        if not command.startswith("/"):
            raise ValueError(f"command must start with '/': {command!r}")
        self._command_handlers[command] = handler
        return self

    def on_response_error(
        self, listener: ResponseErrorListener
    ) -> "TelegramBot[CallbackDataT, UserDataT]":
        self._response_error_listeners.append(listener)
        return self

    def off_response_error(self, listener: ResponseErrorListener) -> None:
        try:
            self._response_error_listeners.remove(listener)
        except ValueError:
            pass

    def is_user_allowed(self, user: TelegramUser) -> bool:
        return bool(
            user.username
            and (
                self.username_whitelist is None
                or user.username in self.username_whitelist
            )
        )

    async def edit_message(
        self, message: TelegramMessage, response: BotResponse
    ) -> Optional[TelegramMessage]:
        return await response.edit(message, self)

    async def send_message(
        self,
        chat_id: int,
        response: BotResponse,
        *,
        reply_to_message_id: Optional[int] = None,
    ) -> Optional[TelegramMessage]:
        return await response.send(
            chat_id, self, reply_to_message_id=reply_to_message_id
        )

    def _emit_response_error(self, err: BaseException) -> None:
        if not self._response_error_listeners:
            log_event(self._logger, logging.ERROR, "telegram.response_error", exc=err)
            return
        for listener in list(self._response_error_listeners):
            try:
                listener(err)
            except Exception as exc:
                log_event(
                    self._logger,
                    logging.ERROR,
                    "telegram.response_error.listener_failed",
                    original_error=str(err),
                    exc=exc,
                )

    async def _get_user_data(self, user_id: int) -> Optional[UserDataT]:
        if self.user_data_provider is None:
            return None
        return await self.user_data_provider.get_or_create_user_data(user_id)

    async def _answer_query(self, query: TelegramCallbackQuery) -> None:
        await self.api.answer_callback_query(query.id)
        log_event(
            self._logger,
            logging.DEBUG,
            "telegram.callback.answered",
            query_id=query.id,
        )

    async def handle_message(self, message: TelegramMessage) -> None:
        user = message.from_user
        log_event(
            self._logger,
            logging.DEBUG,
            "telegram.message.received",
            chat_id=message.chat.id,
            message_id=message.message_id,
            user_id=user.id if user else None,
        )
        try:
            if user is not None and not self.is_user_allowed(user):
                log_event(
                    self._logger,
                    logging.INFO,
                    "telegram.message.denied",
                    chat_id=message.chat.id,
                    user_id=user.id,
                    username=user.username,
                )
                return

            user_data = await self._get_user_data(user.id) if user else None

            handler: Optional[MessageHandler] = None
            if message.text is not None:
                handler = self._command_handlers.get(message.text)
            if handler is None and user_data is not None and self.user_data_provider:
                handler = self.user_data_provider.get_user_data_handler(user_data)
            if handler is None:
                log_event(
                    self._logger,
                    logging.DEBUG,
                    "telegram.message.unhandled",
                    chat_id=message.chat.id,
                    message_id=message.message_id,
                )
                return

            response = await resolve_maybe_awaitable(
                handler(MessageHandlerContext(message=message, user_data=user_data))
            )
            if response is not None:
                await response.respond_to_message(message, self)
        except Exception as err:
            self._emit_response_error(err)
            try:
                response = None
                if self._get_message_error_response is not None:
                    response = await resolve_maybe_awaitable(
                        self._get_message_error_response(
                            MessageErrorResponseContext(err=err, message=message)
                        )
                    )
                if response is not None:
                    await response.respond_to_message(message, self)
            except Exception as secondary:
                self._emit_response_error(secondary)

    async def handle_callback_query(self, query: TelegramCallbackQuery) -> None:
        user, message, data = query.from_user, query.message, query.data
        log_event(
            self._logger,
            logging.DEBUG,
            "telegram.callback.received",
            query_id=query.id,
            user_id=user.id,
            has_message=message is not None,
        )
        try:
            if message is None or not self.is_user_allowed(user):
                await self._answer_query(query)
                return

            if data is None:
                raise TelegramBotError(
                    TelegramBotErrorCode.UNSUPPORTED_CALLBACK_DATA,
                    "Unsupported callback data: query carries no data",
                )

            provider = self.callback_data_provider
            if provider is None:
                log_event(
                    self._logger,
                    logging.WARNING,
                    "telegram.callback.no_provider",
                    query_id=query.id,
                )
                await self._answer_query(query)
                return

            user_data, callback_data = await asyncio.gather(
                self._get_user_data(user.id),
                provider.parse_callback_data(data),
            )
            if callback_data is None:
                log_event(
                    self._logger,
                    logging.INFO,
                    "telegram.callback.undecodable",
                    query_id=query.id,
                )
                await self._answer_query(query)
                return

            handler = provider.get_callback_query_handler(callback_data)
            if handler is None:
                raise TelegramBotError(TelegramBotErrorCode.UNSUPPORTED_CALLBACK_DATA)

            response = await resolve_maybe_awaitable(
                handler(
                    CallbackQueryHandlerContext(
                        data=callback_data,
                        message=message,
                        user_data=user_data,
                        query=query,
                    )
                )
            )
            if response is not None:
                await response.respond_to_callback_query(query, self)
            else:
                await self._answer_query(query)
        except Exception as err:
            self._emit_response_error(err)
            try:
                if query.message is None:
                    await self._answer_query(query)
                    return
                response = None
                if self._get_callback_query_error_response is not None:
                    response = await resolve_maybe_awaitable(
                        self._get_callback_query_error_response(
                            CallbackQueryErrorResponseContext(
                                err=err, message=query.message, query=query
                            )
                        )
                    )
                if response is not None:
                    await response.respond_to_callback_query(query, self)
                else:
                    await self._answer_query(query)
            except Exception as secondary:
                self._emit_response_error(secondary)

    async def handle_update(self, update: TelegramUpdate) -> None:
        if update.message is not None:
            message = update.message
            key = message.from_user.id if message.from_user else None
            await self._run_for_user(key, lambda: self.handle_message(message))
        elif update.callback_query is not None:
            query = update.callback_query
            await self._run_for_user(
                query.from_user.id, lambda: self.handle_callback_query(query)
            )
        else:
            log_event(
                self._logger,
                logging.DEBUG,
                "telegram.update.ignored",
                update_id=update.update_id,
            )

    async def _run_for_user(self, user_id: Optional[int], job: EventJob) -> None:
        if self._queue is None or user_id is None:
            await job()
            return
        await self._queue.submit(user_id, job)

    async def register_commands(self) -> None:
        """Publish the command table so clients can offer it for discovery."""

        if not self.commands:
            return
        entries = [
            {"command": command.lstrip("/"), "description": description}
            for command, description in self.commands.items()
            if description
        ]
        await self.api.set_my_commands(entries)
        log_event(
            self._logger,
            logging.INFO,
            "telegram.commands.registered",
            count=len(entries),
        )

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def run_polling(self, poller: Optional[TelegramUpdatePoller] = None) -> None:
        """Poll for updates until ``stop()``; each update runs on its own task."""

        poller = poller or TelegramUpdatePoller(
            self.api, allowed_updates=self._allowed_updates
        )
        self._stop_event = asyncio.Event()
        try:
            await self.register_commands()
        except TgDispatchError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "telegram.commands.register_failed",
                exc=exc,
            )
        log_event(
            self._logger,
            logging.INFO,
            "telegram.bot.started",
            poll_timeout=self._poll_timeout_seconds,
            allowed_updates=list(self._allowed_updates),
            commands=len(self._command_handlers),
            whitelist=(
                len(self.username_whitelist)
                if self.username_whitelist is not None
                else None
            ),
            per_user_queue=self._queue is not None,
        )
        while not self._stop_event.is_set():
            self._poll_task = asyncio.create_task(
                poller.poll(timeout=self._poll_timeout_seconds)
            )
            try:
                updates = await self._poll_task
            except asyncio.CancelledError:
                if self._stop_event.is_set():
                    break
                raise
            except TelegramPermanentError as exc:
                log_event(self._logger, logging.ERROR, "telegram.poll.fatal", exc=exc)
                raise
            except TgDispatchError as exc:
                log_event(self._logger, logging.WARNING, "telegram.poll.failed", exc=exc)
                await asyncio.sleep(POLL_ERROR_BACKOFF_SECONDS)
                continue
            finally:
                self._poll_task = None
            for update in updates:
                self._spawn(self.handle_update(update))
        log_event(
            self._logger,
            logging.INFO,
            "telegram.bot.stopped",
            offset=poller.offset,
        )

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        if self._poll_task is not None:
            self._poll_task.cancel()

    async def wait_idle(self) -> None:
        """Wait for every in-flight update to finish processing."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        if self._queue is not None:
            await self._queue.wait_idle()

    async def close(self) -> None:
        self.stop()
        await self.wait_idle()
        await self.api.close()
