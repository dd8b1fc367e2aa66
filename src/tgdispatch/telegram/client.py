from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import httpx

from ..core.exceptions import PermanentError, TgDispatchError, TransientError
from .constants import (
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    POLL_TIMEOUT_GRACE_SECONDS,
    TELEGRAM_API_BASE_URL,
)

logger = logging.getLogger(__name__)


class TelegramAPIError(TgDispatchError):
    """Bot API request failed or returned ``ok: false``."""

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[int] = None,
        retry_after: Optional[int] = None,
        user_message: Optional[str] = None,
    ) -> None:
        super().__init__(message, user_message=user_message)
        self.error_code = error_code
        self.retry_after = retry_after


class TelegramTransientError(TelegramAPIError, TransientError):
    """Retryable Bot API error (rate limits, server errors, network issues)."""


class TelegramPermanentError(TelegramAPIError, PermanentError):
    """Non-retryable Bot API error (bad token, forbidden)."""


class TelegramBotClient:
    """Minimal async Bot API client covering what the dispatcher uses."""

    def __init__(
        self,
        token: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = TELEGRAM_API_BASE_URL,
        timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        if not token:
            raise ValueError("token is required")
        self._base_url = f"{base_url.rstrip('/')}/bot{token}"
        self._timeout_seconds = timeout_seconds
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "TelegramBotClient":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        payload: Optional[dict[str, Any]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> Any:
        body = {key: value for key, value in (payload or {}).items() if value is not None}
        try:
            response = await self._client.post(
                f"{self._base_url}/{method}",
                json=body,
                timeout=timeout if timeout is not None else self._timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise TelegramTransientError(
                f"Telegram network error on {method}: {type(exc).__name__}: {exc}"
            ) from exc

        try:
            data = response.json()
        except ValueError as exc:
            if response.status_code >= 500:
                raise TelegramTransientError(
                    f"Telegram server error on {method}: status={response.status_code}",
                    error_code=response.status_code,
                ) from exc
            raise TelegramAPIError(
                f"Telegram returned non-JSON response for {method}: "
                f"status={response.status_code}",
                error_code=response.status_code,
            ) from exc

        if isinstance(data, dict) and data.get("ok") is True:
            return data.get("result")
        raise _error_from_payload(method, response.status_code, data)

    async def get_me(self) -> dict[str, Any]:
        result = await self._request("getMe")
        return result if isinstance(result, dict) else {}

    async def get_updates(
        self,
        *,
        offset: Optional[int] = None,
        timeout: int = 30,
        allowed_updates: Optional[Sequence[str]] = None,
    ) -> list[dict[str, Any]]:
        result = await self._request(
            "getUpdates",
            {
                "offset": offset,
                "timeout": timeout,
                "allowed_updates": list(allowed_updates) if allowed_updates else None,
            },
            timeout=timeout + POLL_TIMEOUT_GRACE_SECONDS,
        )
        if not isinstance(result, list):
            return []
        return [item for item in result if isinstance(item, dict)]

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        message_thread_id: Optional[int] = None,
        reply_to_message_id: Optional[int] = None,
        reply_markup: Optional[dict[str, Any]] = None,
        parse_mode: Optional[str] = None,
    ) -> dict[str, Any]:
        result = await self._request(
            "sendMessage",
            {
                "chat_id": chat_id,
                "text": text,
                "message_thread_id": message_thread_id,
                "reply_to_message_id": reply_to_message_id,
                "reply_markup": reply_markup,
                "parse_mode": parse_mode,
            },
        )
        return result if isinstance(result, dict) else {}

    async def send_sticker(
        self,
        chat_id: int,
        sticker: str,
        *,
        message_thread_id: Optional[int] = None,
        reply_to_message_id: Optional[int] = None,
        reply_markup: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Send a sticker by file_id or HTTP URL."""
        result = await self._request(
            "sendSticker",
            {
                "chat_id": chat_id,
                "sticker": sticker,
                "message_thread_id": message_thread_id,
                "reply_to_message_id": reply_to_message_id,
                "reply_markup": reply_markup,
            },
        )
        return result if isinstance(result, dict) else {}

    async def send_chat_action(
        self,
        chat_id: int,
        action: str,
        *,
        message_thread_id: Optional[int] = None,
    ) -> bool:
        result = await self._request(
            "sendChatAction",
            {
                "chat_id": chat_id,
                "action": action,
                "message_thread_id": message_thread_id,
            },
        )
        return bool(result)

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        *,
        reply_markup: Optional[dict[str, Any]] = None,
        parse_mode: Optional[str] = None,
    ) -> Any:
        return await self._request(
            "editMessageText",
            {
                "chat_id": chat_id,
                "message_id": message_id,
                "text": text,
                "reply_markup": reply_markup,
                "parse_mode": parse_mode,
            },
        )

    async def answer_callback_query(
        self,
        callback_query_id: str,
        *,
        text: Optional[str] = None,
        show_alert: Optional[bool] = None,
    ) -> bool:
        result = await self._request(
            "answerCallbackQuery",
            {
                "callback_query_id": callback_query_id,
                "text": text,
                "show_alert": show_alert,
            },
        )
        return bool(result)

    async def set_my_commands(self, commands: Sequence[dict[str, str]]) -> bool:
        result = await self._request("setMyCommands", {"commands": list(commands)})
        return bool(result)


def _error_from_payload(method: str, status_code: int, data: Any) -> TelegramAPIError:
    description = ""
    error_code: Optional[int] = status_code
    retry_after: Optional[int] = None
    if isinstance(data, dict):
        description = str(data.get("description") or "")
        if isinstance(data.get("error_code"), int):
            error_code = data["error_code"]
        parameters = data.get("parameters")
        if isinstance(parameters, dict) and isinstance(
            parameters.get("retry_after"), int
        ):
            retry_after = parameters["retry_after"]
    message = f"Telegram API {method} failed: status={error_code} {description}".strip()
    if error_code == 429 or (error_code is not None and error_code >= 500):
        return TelegramTransientError(
            message, error_code=error_code, retry_after=retry_after
        )
    if error_code in {401, 403, 404}:
        return TelegramPermanentError(message, error_code=error_code)
    return TelegramAPIError(message, error_code=error_code)
