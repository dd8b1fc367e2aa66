"""Small note-taking bot: ``/note`` asks for text, buttons delete notes.

Run from the repo root with
``python -m tgdispatch.cli run examples.notes_bot:create_bot -c tgdispatch.yml``.
"""

from __future__ import annotations

import itertools
from typing import Literal, Optional, Union

from pydantic import BaseModel

from tgdispatch import (
    BotConfig,
    CallbackDataButton,
    CallbackQueryHandlerContext,
    ImmediateMessageResponse,
    JsonCallbackDataProvider,
    JsonUserDataProvider,
    MessageErrorResponseContext,
    MessageHandlerContext,
    NotificationResponse,
    TelegramBot,
)
from tgdispatch.telegram import TelegramBotClient


class IdleState(BaseModel):
    state: Literal["idle"] = "idle"
    notes: dict[str, str] = {}


class AwaitingNoteState(BaseModel):
    state: Literal["awaiting_note"] = "awaiting_note"
    notes: dict[str, str] = {}


UserState = Union[IdleState, AwaitingNoteState]


class DeleteNote(BaseModel):
    type: Literal["deleteNote"] = "deleteNote"
    id: str


def create_bot(
    config: BotConfig, *, api: Optional[TelegramBotClient] = None
) -> TelegramBot:
    states: dict[int, UserState] = {}
    ids = itertools.count(1)

    def get_or_create(user_id: int) -> UserState:
        return states.setdefault(user_id, IdleState())

    def save(user_id: int, data: UserState) -> None:
        states[user_id] = data

    user_data = JsonUserDataProvider(get_or_create_user_data=get_or_create, set_user_data=save)
    callback_data = JsonCallbackDataProvider(DeleteNote)

    def on_error(ctx: MessageErrorResponseContext) -> ImmediateMessageResponse:
        return ImmediateMessageResponse("Something went wrong, try again.")

    if api is not None:
        bot = TelegramBot(
            api=api,
            commands=config.commands,
            username_whitelist=config.username_whitelist,
            callback_data_provider=callback_data,
            user_data_provider=user_data,
            get_message_error_response=on_error,
        )
    else:
        bot = TelegramBot.from_config(
            config,
            callback_data_provider=callback_data,
            user_data_provider=user_data,
            get_message_error_response=on_error,
        )

    async def start_note(
        ctx: MessageHandlerContext[UserState],
    ) -> Optional[ImmediateMessageResponse]:
        user = ctx.message.from_user
        if user is None or ctx.user_data is None:
            return None
        await user_data.set_user_data(
            user.id, AwaitingNoteState(notes=ctx.user_data.notes)
        )
        return ImmediateMessageResponse("Send me the note text.")

    async def save_note(
        ctx: MessageHandlerContext[UserState],
    ) -> Optional[ImmediateMessageResponse]:
        user = ctx.message.from_user
        if user is None or ctx.user_data is None:
            return None
        note_id = str(next(ids))
        notes = {**ctx.user_data.notes, note_id: ctx.message.text or ""}
        await user_data.set_user_data(user.id, IdleState(notes=notes))
        return ImmediateMessageResponse(
            f"Saved note #{note_id}",
            reply_markup=[[CallbackDataButton("Delete", DeleteNote(id=note_id))]],
        )

    async def delete_note(
        ctx: CallbackQueryHandlerContext[DeleteNote, UserState]
    ) -> NotificationResponse:
        if ctx.query is not None and ctx.user_data is not None:
            notes = {
                note_id: text
                for note_id, text in ctx.user_data.notes.items()
                if note_id != ctx.data.id
            }
            await user_data.set_user_data(
                ctx.query.from_user.id, type(ctx.user_data)(notes=notes)
            )
        return NotificationResponse(f"Deleted note #{ctx.data.id}")

    bot.handle_command("/note", start_note)
    user_data.handle("awaiting_note", save_note)
    callback_data.handle("deleteNote", delete_note)
    return bot
