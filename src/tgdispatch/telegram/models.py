"""Typed views over raw Telegram Bot API objects.

Only the fields the dispatcher routes on are lifted into attributes; the raw
mapping is kept on each object for handlers that need more.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional


@dataclass(frozen=True)
class TelegramUser:
    id: int
    is_bot: bool = False
    first_name: str = ""
    username: Optional[str] = None
    language_code: Optional[str] = None


@dataclass(frozen=True)
class TelegramChat:
    id: int
    type: str = "private"
    title: Optional[str] = None
    username: Optional[str] = None


@dataclass(frozen=True)
class TelegramMessage:
    message_id: int
    chat: TelegramChat
    from_user: Optional[TelegramUser] = None
    text: Optional[str] = None
    date: Optional[int] = None
    message_thread_id: Optional[int] = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class TelegramCallbackQuery:
    id: str
    from_user: TelegramUser
    message: Optional[TelegramMessage] = None
    data: Optional[str] = None
    chat_instance: Optional[str] = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class TelegramUpdate:
    update_id: int
    message: Optional[TelegramMessage] = None
    callback_query: Optional[TelegramCallbackQuery] = None


def _int_or_none(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _str_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def parse_user(raw: Any) -> Optional[TelegramUser]:
    if not isinstance(raw, Mapping):
        return None
    user_id = _int_or_none(raw.get("id"))
    if user_id is None:
        return None
    return TelegramUser(
        id=user_id,
        is_bot=bool(raw.get("is_bot", False)),
        first_name=_str_or_none(raw.get("first_name")) or "",
        username=_str_or_none(raw.get("username")),
        language_code=_str_or_none(raw.get("language_code")),
    )


def parse_chat(raw: Any) -> Optional[TelegramChat]:
    if not isinstance(raw, Mapping):
        return None
    chat_id = _int_or_none(raw.get("id"))
    if chat_id is None:
        return None
    return TelegramChat(
        id=chat_id,
        type=_str_or_none(raw.get("type")) or "private",
        title=_str_or_none(raw.get("title")),
        username=_str_or_none(raw.get("username")),
    )


def parse_message(raw: Any) -> Optional[TelegramMessage]:
    if not isinstance(raw, Mapping):
        return None
    message_id = _int_or_none(raw.get("message_id"))
    chat = parse_chat(raw.get("chat"))
    if message_id is None or chat is None:
        return None
    return TelegramMessage(
        message_id=message_id,
        chat=chat,
        from_user=parse_user(raw.get("from")),
        text=_str_or_none(raw.get("text")),
        date=_int_or_none(raw.get("date")),
        message_thread_id=_int_or_none(raw.get("message_thread_id")),
        raw=dict(raw),
    )


def parse_callback_query(raw: Any) -> Optional[TelegramCallbackQuery]:
    if not isinstance(raw, Mapping):
        return None
    query_id = _str_or_none(raw.get("id"))
    user = parse_user(raw.get("from"))
    if not query_id or user is None:
        return None
    return TelegramCallbackQuery(
        id=query_id,
        from_user=user,
        message=parse_message(raw.get("message")),
        data=_str_or_none(raw.get("data")),
        chat_instance=_str_or_none(raw.get("chat_instance")),
        raw=dict(raw),
    )


def parse_update(raw: Any) -> Optional[TelegramUpdate]:
    """Parse a raw ``getUpdates`` entry; ``None`` when it has no update id."""

    if not isinstance(raw, Mapping):
        return None
    update_id = _int_or_none(raw.get("update_id"))
    if update_id is None:
        return None
    return TelegramUpdate(
        update_id=update_id,
        message=parse_message(raw.get("message")),
        callback_query=parse_callback_query(raw.get("callback_query")),
    )


def next_update_offset(
    updates: Iterable[Mapping[str, Any]], current: Optional[int]
) -> Optional[int]:
    max_id: Optional[int] = None
    for update in updates:
        update_id = _int_or_none(update.get("update_id"))
        if update_id is None:
            continue
        if max_id is None or update_id > max_id:
            max_id = update_id
    if max_id is None:
        return current
    return max_id + 1
