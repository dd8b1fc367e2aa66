"""Long-polling update source for the Telegram Bot API."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..core.retry import retry_transient
from .client import TelegramBotClient
from .models import TelegramUpdate, next_update_offset, parse_update

logger = logging.getLogger(__name__)


class TelegramUpdatePoller:
    """Fetches batches of updates and advances the confirmation offset."""

    def __init__(
        self,
        bot: TelegramBotClient,
        *,
        allowed_updates: Optional[Sequence[str]] = None,
        offset: Optional[int] = None,
        max_attempts: int = 5,
        base_wait: float = 1.0,
        max_wait: float = 60.0,
    ) -> None:
        self._allowed_updates = tuple(allowed_updates) if allowed_updates else None
        self._offset = offset
        self._get_updates = retry_transient(
            max_attempts=max_attempts, base_wait=base_wait, max_wait=max_wait
        )(bot.get_updates)

    @property
    def offset(self) -> Optional[int]:
        return self._offset

    async def poll(self, *, timeout: int = 30) -> list[TelegramUpdate]:
        raw_updates = await self._get_updates(
            offset=self._offset,
            timeout=timeout,
            allowed_updates=self._allowed_updates,
        )
        self._offset = next_update_offset(raw_updates, self._offset)
        updates: list[TelegramUpdate] = []
        for raw in raw_updates:
            parsed = parse_update(raw)
            if parsed is None:
                logger.debug("Skipping malformed update: %r", raw)
                continue
            updates.append(parsed)
        return updates
