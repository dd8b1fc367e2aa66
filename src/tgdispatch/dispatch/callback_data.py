"""Callback payload codec and payload-keyed callback handler registry.

Telegram carries button payloads as opaque strings of at most 64 bytes. A
provider turns application payloads into that string and back; decoding never
raises for foreign or corrupted input, it yields ``None`` instead.
"""

from __future__ import annotations

import logging
from typing import (
    Any,
    Dict,
    Generic,
    Mapping,
    Optional,
    Protocol,
    TypeVar,
    runtime_checkable,
)

from pydantic import TypeAdapter, ValidationError

from ..core.logging_utils import log_event
from ..telegram.constants import TELEGRAM_CALLBACK_DATA_LIMIT
from .context import CallbackQueryHandler
from .errors import TelegramBotError, TelegramBotErrorCode

CallbackDataT = TypeVar("CallbackDataT")

DEFAULT_TYPE_FIELD = "type"


@runtime_checkable
class CallbackDataProvider(Protocol[CallbackDataT]):
    """Codec contract consumed by the dispatcher and inline keyboards."""

    def stringify_callback_data(self, data: CallbackDataT) -> str:
        """Encode ``data`` into a Telegram callback_data string."""

    async def parse_callback_data(self, raw: str) -> Optional[CallbackDataT]:
        """Decode a callback_data string; ``None`` when it is not a known payload."""

    def get_callback_query_handler(
        self, data: CallbackDataT
    ) -> Optional[CallbackQueryHandler]:
        """Return the handler registered for the payload's type, if any."""


class JsonCallbackDataProvider(Generic[CallbackDataT]):
    """Encodes payloads as compact JSON validated by a pydantic schema.

    ``schema`` is anything ``pydantic.TypeAdapter`` accepts, typically a model
    or a discriminated union of models / TypedDicts. Handlers are keyed by the
    payload's ``type_field`` value.
    """

    def __init__(
        self,
        schema: Any,
        *,
        type_field: str = DEFAULT_TYPE_FIELD,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._adapter: TypeAdapter[CallbackDataT] = TypeAdapter(schema)
        self._type_field = type_field
        self._logger = logger or logging.getLogger(__name__)
        self._handlers: Dict[str, CallbackQueryHandler] = {}

    def stringify_callback_data(self, data: CallbackDataT) -> str:
        encoded = self._adapter.dump_json(data)
        if len(encoded) > TELEGRAM_CALLBACK_DATA_LIMIT:
            raise TelegramBotError(
                TelegramBotErrorCode.CALLBACK_DATA_TOO_LONG,
                f"callback data is {len(encoded)} bytes; "
                f"limit is {TELEGRAM_CALLBACK_DATA_LIMIT}",
            )
        return encoded.decode("utf-8")

    async def parse_callback_data(self, raw: str) -> Optional[CallbackDataT]:
        try:
            return self._adapter.validate_json(raw)
        except (ValidationError, RecursionError) as exc:
            log_event(
                self._logger,
                logging.DEBUG,
                "telegram.callback_data.invalid",
                raw=raw[: TELEGRAM_CALLBACK_DATA_LIMIT * 2],
                exc=exc,
            )
            return None

    def handle(
        self, data_type: str, handler: CallbackQueryHandler
    ) -> "JsonCallbackDataProvider[CallbackDataT]":
        self._handlers[data_type] = handler
        return self

    def get_callback_query_handler(
        self, data: CallbackDataT
    ) -> Optional[CallbackQueryHandler]:
        if isinstance(data, Mapping):
            data_type = data.get(self._type_field)
        else:
            data_type = getattr(data, self._type_field, None)
        if not isinstance(data_type, str):
            return None
        return self._handlers.get(data_type)
