from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

from tgdispatch.dispatch.user_data import (
    JsonUserDataProvider,
    UserDataProvider,
    user_data_state,
)


def _memory_provider(store: dict[int, dict[str, Any]], created: list[int]):
    def get_or_create(user_id: int) -> dict[str, Any]:
        if user_id not in store:
            created.append(user_id)
            store[user_id] = {"state": "idle"}
        return store[user_id]

    def save(user_id: int, data: dict[str, Any]) -> None:
        store[user_id] = data

    return JsonUserDataProvider(get_or_create_user_data=get_or_create, set_user_data=save)


@pytest.mark.anyio
async def test_resolve_creates_one_record_and_reflects_last_persist() -> None:
    store: dict[int, dict[str, Any]] = {}
    created: list[int] = []
    provider = _memory_provider(store, created)

    assert await provider.get_or_create_user_data(1) == {"state": "idle"}
    await provider.set_user_data(1, {"state": "awaiting_name"})
    assert await provider.get_or_create_user_data(1) == {"state": "awaiting_name"}
    assert await provider.get_or_create_user_data(1) == {"state": "awaiting_name"}
    assert created == [1]


@pytest.mark.anyio
async def test_async_storage_callables_are_awaited() -> None:
    saved: dict[int, Any] = {}

    async def get_or_create(user_id: int) -> dict[str, Any]:
        return saved.get(user_id, {"state": "new"})

    async def save(user_id: int, data: dict[str, Any]) -> None:
        saved[user_id] = data

    provider = JsonUserDataProvider(
        get_or_create_user_data=get_or_create, set_user_data=save
    )
    await provider.set_user_data(5, {"state": "done"})
    assert await provider.get_or_create_user_data(5) == {"state": "done"}
    assert await provider.get_or_create_user_data(6) == {"state": "new"}
    assert isinstance(provider, UserDataProvider)


def test_handler_lookup_by_state_tag() -> None:
    provider = _memory_provider({}, [])

    def on_idle(ctx):
        return None

    def on_waiting(ctx):
        return None

    assert provider.handle("idle", on_idle).handle(["a", "b"], on_waiting) is provider
    assert provider.get_user_data_handler({"state": "idle"}) is on_idle
    assert provider.get_user_data_handler(SimpleNamespace(state="b")) is on_waiting
    assert provider.get_user_data_handler({"state": "unknown"}) is None
    assert provider.get_user_data_handler({"other": "idle"}) is None


def test_registering_same_state_twice_keeps_latest() -> None:
    provider = _memory_provider({}, [])

    def first(ctx):
        return None

    def second(ctx):
        return None

    provider.handle("idle", first)
    provider.handle("idle", second)
    assert provider.get_user_data_handler({"state": "idle"}) is second


def test_handle_rejects_non_string_tags() -> None:
    provider = _memory_provider({}, [])
    with pytest.raises(TypeError):
        provider.handle([1], lambda ctx: None)  # type: ignore[list-item]


def test_user_data_state_reads_mapping_or_attribute() -> None:
    assert user_data_state({"state": "x"}) == "x"
    assert user_data_state(SimpleNamespace(state="y")) == "y"
    assert user_data_state({"state": 3}) is None
    assert user_data_state(None) is None
