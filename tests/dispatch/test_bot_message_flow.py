from __future__ import annotations

import json
import logging
from typing import Any, Optional

import pytest

from tgdispatch.dispatch.bot import TelegramBot
from tgdispatch.dispatch.context import MessageErrorResponseContext, MessageHandlerContext
from tgdispatch.dispatch.responses import ImmediateMessageResponse
from tgdispatch.dispatch.user_data import JsonUserDataProvider
from tgdispatch.telegram.client import TelegramAPIError
from tgdispatch.telegram.models import TelegramChat, TelegramMessage, TelegramUser


def _message(
    text: Optional[str] = "/start",
    *,
    user_id: Optional[int] = 1,
    username: Optional[str] = "a",
    chat_id: int = 10,
) -> TelegramMessage:
    user = (
        TelegramUser(id=user_id, username=username) if user_id is not None else None
    )
    return TelegramMessage(
        message_id=1, chat=TelegramChat(id=chat_id), from_user=user, text=text
    )


def _state_provider(states: dict[int, dict[str, Any]]) -> JsonUserDataProvider:
    return JsonUserDataProvider(
        get_or_create_user_data=lambda user_id: states.setdefault(
            user_id, {"state": "idle"}
        ),
        set_user_data=states.__setitem__,
    )


@pytest.mark.anyio
async def test_command_handler_response_is_delivered_once(bot_api, telegram_client) -> None:
    bot = TelegramBot(api=telegram_client, commands={"/start": "desc"})
    bot.handle_command("/start", lambda ctx: ImmediateMessageResponse("welcome"))

    await bot.handle_message(_message("/start"))

    assert bot_api.calls == [("sendMessage", {"chat_id": 10, "text": "welcome"})]


@pytest.mark.anyio
async def test_command_has_priority_over_state_handler(bot_api, telegram_client) -> None:
    provider = _state_provider({1: {"state": "idle"}})
    provider.handle("idle", lambda ctx: ImmediateMessageResponse("from state"))
    bot = TelegramBot(api=telegram_client, user_data_provider=provider)
    bot.handle_command("/start", lambda ctx: ImmediateMessageResponse("from command"))

    await bot.handle_message(_message("/start"))
    await bot.handle_message(_message("/start now"))

    assert [payload["text"] for payload in bot_api.payloads("sendMessage")] == [
        "from command",
        "from state",
    ]


@pytest.mark.anyio
async def test_state_handler_receives_user_data(bot_api, telegram_client) -> None:
    states: dict[int, dict[str, Any]] = {}
    provider = _state_provider(states)
    seen: list[MessageHandlerContext] = []

    async def on_idle(ctx: MessageHandlerContext) -> ImmediateMessageResponse:
        seen.append(ctx)
        await provider.set_user_data(ctx.message.from_user.id, {"state": "asked"})
        return ImmediateMessageResponse("noted", reply=True)

    provider.handle("idle", on_idle)
    bot = TelegramBot(api=telegram_client, user_data_provider=provider)

    await bot.handle_message(_message("hello"))
    await bot.handle_message(_message("again"))

    assert len(seen) == 1
    assert seen[0].user_data == {"state": "idle"}
    assert states == {1: {"state": "asked"}}
    assert bot_api.payloads("sendMessage") == [
        {"chat_id": 10, "text": "noted", "reply_to_message_id": 1}
    ]


@pytest.mark.anyio
@pytest.mark.parametrize("whitelist", [None, ["a", "b"]])
async def test_sender_without_username_never_reaches_a_handler(
    bot_api, telegram_client, whitelist
) -> None:
    calls: list[Any] = []
    bot = TelegramBot(api=telegram_client, username_whitelist=whitelist)
    bot.handle_command("/start", calls.append)

    await bot.handle_message(_message("/start", username=None))

    assert calls == []
    assert bot_api.calls == []


@pytest.mark.anyio
async def test_whitelist_filters_senders(bot_api, telegram_client) -> None:
    bot = TelegramBot(api=telegram_client, username_whitelist=["alice"])
    bot.handle_command("/start", lambda ctx: ImmediateMessageResponse("hi"))

    await bot.handle_message(_message("/start", username="mallory"))
    await bot.handle_message(_message("/start", username="alice", chat_id=11))

    assert bot_api.payloads("sendMessage") == [{"chat_id": 11, "text": "hi"}]


@pytest.mark.anyio
async def test_whitelist_entries_ignore_leading_at(bot_api, telegram_client) -> None:
    bot = TelegramBot(api=telegram_client, username_whitelist=["@alice", " bob "])
    bot.handle_command("/start", lambda ctx: ImmediateMessageResponse("hi"))

    await bot.handle_message(_message("/start", username="alice", chat_id=11))
    await bot.handle_message(_message("/start", username="bob", chat_id=12))

    assert bot.username_whitelist == frozenset({"alice", "bob"})
    assert [payload["chat_id"] for payload in bot_api.payloads("sendMessage")] == [
        11,
        12,
    ]


@pytest.mark.anyio
async def test_message_without_sender_is_routed(bot_api, telegram_client) -> None:
    lookups: list[int] = []
    provider = JsonUserDataProvider(
        get_or_create_user_data=lambda user_id: lookups.append(user_id),
        set_user_data=lambda user_id, data: None,
    )
    seen: list[MessageHandlerContext] = []
    bot = TelegramBot(
        api=telegram_client, user_data_provider=provider, username_whitelist=["a"]
    )
    bot.handle_command("/start", seen.append)

    await bot.handle_message(_message("/start", user_id=None))

    assert len(seen) == 1
    assert seen[0].user_data is None
    assert lookups == []
    assert bot_api.calls == []


@pytest.mark.anyio
async def test_unmatched_message_is_dropped(bot_api, telegram_client) -> None:
    provider = _state_provider({})
    bot = TelegramBot(api=telegram_client, user_data_provider=provider)
    bot.handle_command("/start", lambda ctx: ImmediateMessageResponse("hi"))

    await bot.handle_message(_message("just text"))
    await bot.handle_message(_message(None))

    assert bot_api.calls == []


@pytest.mark.anyio
async def test_handler_error_reports_then_delivers_fallback(
    bot_api, telegram_client
) -> None:
    events: list[Any] = []
    boom = RuntimeError("boom")

    def failing(ctx: MessageHandlerContext) -> None:
        raise boom

    def fallback(ctx: MessageErrorResponseContext) -> ImmediateMessageResponse:
        events.append(("resolver", ctx.err, ctx.message.message_id))
        return ImmediateMessageResponse("Something went wrong")

    bot = TelegramBot(api=telegram_client, get_message_error_response=fallback)
    bot.on_response_error(lambda err: events.append(("error", err, len(bot_api.calls))))
    bot.handle_command("/start", failing)

    await bot.handle_message(_message("/start"))

    assert events == [("error", boom, 0), ("resolver", boom, 1)]
    assert bot_api.payloads("sendMessage") == [
        {"chat_id": 10, "text": "Something went wrong"}
    ]


@pytest.mark.anyio
async def test_unreported_errors_go_to_fallback_log(
    bot_api, telegram_client, caplog: pytest.LogCaptureFixture
) -> None:
    bot = TelegramBot(api=telegram_client, logger=logging.getLogger("test.bot.fallback"))

    def failing(ctx: MessageHandlerContext) -> None:
        raise ValueError("kaput")

    bot.handle_command("/start", failing)
    with caplog.at_level(logging.ERROR, logger="test.bot.fallback"):
        await bot.handle_message(_message("/start"))

    payloads = [json.loads(record.getMessage()) for record in caplog.records]
    assert payloads == [
        {"event": "telegram.response_error", "error": "kaput", "error_type": "ValueError"}
    ]
    assert bot_api.calls == []


@pytest.mark.anyio
async def test_failed_fallback_emits_secondary_error(bot_api, telegram_client) -> None:
    errors: list[BaseException] = []
    bot_api.fail("sendMessage")
    bot = TelegramBot(
        api=telegram_client,
        get_message_error_response=lambda ctx: ImmediateMessageResponse("sorry"),
    )
    bot.on_response_error(errors.append)
    bot.handle_command("/start", lambda ctx: ImmediateMessageResponse("hi"))

    await bot.handle_message(_message("/start"))

    assert [type(err) for err in errors] == [TelegramAPIError, TelegramAPIError]
    assert [payload["text"] for payload in bot_api.payloads("sendMessage")] == [
        "hi",
        "sorry",
    ]


@pytest.mark.anyio
async def test_raising_resolver_is_reported_and_stops(bot_api, telegram_client) -> None:
    errors: list[BaseException] = []
    first, second = RuntimeError("handler"), RuntimeError("resolver")

    def failing(ctx):
        raise first

    def resolver(ctx):
        raise second

    bot = TelegramBot(api=telegram_client, get_message_error_response=resolver)
    bot.on_response_error(errors.append)
    bot.handle_command("/start", failing)

    await bot.handle_message(_message("/start"))

    assert errors == [first, second]
    assert bot_api.calls == []


@pytest.mark.anyio
async def test_listener_failures_are_contained(
    bot_api, telegram_client, caplog: pytest.LogCaptureFixture
) -> None:
    received: list[BaseException] = []

    def broken_listener(err: BaseException) -> None:
        raise RuntimeError("listener down")

    bot = TelegramBot(api=telegram_client, logger=logging.getLogger("test.bot.listeners"))
    bot.on_response_error(broken_listener).on_response_error(received.append)

    def failing(ctx):
        raise KeyError("x")

    bot.handle_command("/start", failing)
    with caplog.at_level(logging.ERROR, logger="test.bot.listeners"):
        await bot.handle_message(_message("/start"))

    assert len(received) == 1
    events = [json.loads(record.getMessage())["event"] for record in caplog.records]
    assert events == ["telegram.response_error.listener_failed"]

    bot.off_response_error(broken_listener)
    bot.off_response_error(broken_listener)
    caplog.clear()
    with caplog.at_level(logging.ERROR, logger="test.bot.listeners"):
        await bot.handle_message(_message("/start"))
    assert len(received) == 2
    assert caplog.records == []


@pytest.mark.anyio
async def test_handler_returning_none_sends_nothing(bot_api, telegram_client) -> None:
    async def quiet(ctx):
        return None

    bot = TelegramBot(api=telegram_client)
    bot.handle_command("/start", quiet)
    await bot.handle_message(_message("/start"))
    assert bot_api.calls == []


def test_handle_command_requires_slash(telegram_client) -> None:
    bot = TelegramBot(api=telegram_client)
    with pytest.raises(ValueError):
        bot.handle_command("start", lambda ctx: None)


def test_bot_requires_token_or_api() -> None:
    with pytest.raises(ValueError):
        TelegramBot()
