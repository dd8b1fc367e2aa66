"""Test harness configuration.

This repo uses a `src/` layout. Ensure tests always import the in-repo code
even when an older installed `tgdispatch` would shadow it.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Iterable, Optional

import httpx
import pytest

DEFAULT_NON_INTEGRATION_TIMEOUT_SECONDS = 60


def pytest_configure() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    src_path = str(repo_root / "src")
    if sys.path[:1] != [src_path] and src_path not in sys.path:
        sys.path.insert(0, src_path)


def pytest_collection_modifyitems(
    session: pytest.Session, config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Apply a default per-test timeout (via `pytest-timeout`) to non-integration tests."""
    _ = session, config
    for item in items:
        if item.get_closest_marker("integration") is not None:
            continue
        item.add_marker(pytest.mark.timeout(DEFAULT_NON_INTEGRATION_TIMEOUT_SECONDS))


class BotApiRecorder:
    """Fake Bot API endpoint recording every method call and its JSON body."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.failures: dict[str, httpx.Response] = {}
        self.update_batches: list[list[dict[str, Any]]] = []
        self._next_message_id = 100

    @property
    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    def payloads(self, method: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.calls if name == method]

    def fail(
        self,
        method: str,
        *,
        status_code: int = 400,
        description: str = "Bad Request: simulated failure",
    ) -> None:
        self.failures[method] = httpx.Response(
            status_code,
            json={"ok": False, "error_code": status_code, "description": description},
        )

    def queue_updates(self, updates: Iterable[dict[str, Any]]) -> None:
        self.update_batches.append(list(updates))

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        payload = json.loads(request.content.decode("utf-8")) if request.content else {}
        self.calls.append((method, payload))
        failure = self.failures.get(method)
        if failure is not None:
            return failure
        return httpx.Response(200, json={"ok": True, "result": self._result(method, payload)})

    def _result(self, method: str, payload: dict[str, Any]) -> Any:
        if method in ("sendMessage", "editMessageText", "sendSticker"):
            message_id: Optional[int] = payload.get("message_id")
            if message_id is None:
                self._next_message_id += 1
                message_id = self._next_message_id
            message = {
                "message_id": message_id,
                "chat": {"id": payload["chat_id"], "type": "private"},
                "date": 0,
            }
            if "text" in payload:
                message["text"] = payload["text"]
            if "sticker" in payload:
                message["sticker"] = {"file_id": payload["sticker"]}
            return message
        if method == "getUpdates":
            return self.update_batches.pop(0) if self.update_batches else []
        if method == "getMe":
            return {"id": 42, "is_bot": True, "first_name": "Test", "username": "test_bot"}
        return True


@pytest.fixture()
def bot_api() -> BotApiRecorder:
    return BotApiRecorder()


@pytest.fixture()
def telegram_client(bot_api: BotApiRecorder):
    from tgdispatch.telegram.client import TelegramBotClient

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(bot_api.handler))
    return TelegramBotClient("test-token", client=http_client)


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"
