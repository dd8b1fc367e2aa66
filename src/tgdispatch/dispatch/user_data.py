"""Per-user persisted state and state-keyed message handler registry.

A provider resolves (creating on first contact) the state record for a user id
and maps the record's current state tag to the handler that should receive the
user's next plain message.
"""

from __future__ import annotations

from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    Iterable,
    Mapping,
    Optional,
    Protocol,
    TypeVar,
    Union,
    runtime_checkable,
)

from .context import MaybeAwaitable, MessageHandler, resolve_maybe_awaitable

UserDataT = TypeVar("UserDataT")

STATE_FIELD = "state"


@runtime_checkable
class UserDataProvider(Protocol[UserDataT]):
    """State contract consumed by the dispatcher."""

    async def get_or_create_user_data(self, user_id: int) -> UserDataT:
        """Return the user's record, creating it when absent."""

    async def set_user_data(self, user_id: int, data: UserDataT) -> None:
        """Persist ``data`` as the user's record."""

    def get_user_data_handler(self, user_data: UserDataT) -> Optional[MessageHandler]:
        """Return the handler for the record's current state, if any."""


def user_data_state(user_data: Any) -> Optional[str]:
    """Read the state tag from a mapping key or attribute; ``None`` if absent."""

    if isinstance(user_data, Mapping):
        state = user_data.get(STATE_FIELD)
    else:
        state = getattr(user_data, STATE_FIELD, None)
    return state if isinstance(state, str) else None


class JsonUserDataProvider(Generic[UserDataT]):
    """User data provider for records tagged with a string ``state`` field.

    Storage is delegated to the two callables, which may be plain functions or
    coroutine functions. Handlers are keyed by state tag; registering the same
    tag twice keeps the latest handler.
    """

    def __init__(
        self,
        *,
        get_or_create_user_data: Callable[[int], MaybeAwaitable[UserDataT]],
        set_user_data: Callable[[int, UserDataT], MaybeAwaitable[None]],
    ) -> None:
        self._get_or_create_user_data = get_or_create_user_data
        self._set_user_data = set_user_data
        self._handlers: Dict[str, MessageHandler] = {}

    async def get_or_create_user_data(self, user_id: int) -> UserDataT:
        return await resolve_maybe_awaitable(self._get_or_create_user_data(user_id))

    async def set_user_data(self, user_id: int, data: UserDataT) -> None:
        await resolve_maybe_awaitable(self._set_user_data(user_id, data))

    def handle(
        self, state: Union[str, Iterable[str]], handler: MessageHandler
    ) -> "JsonUserDataProvider[UserDataT]":
        states = [state] if isinstance(state, str) else list(state)
        for tag in states:
            if not isinstance(tag, str):
                raise TypeError("state tags must be strings")
            self._handlers[tag] = handler
        return self

    def get_user_data_handler(self, user_data: UserDataT) -> Optional[MessageHandler]:
        state = user_data_state(user_data)
        if state is None:
            return None
        return self._handlers.get(state)
