"""Optional per-user serialization of event processing.

Events for one key run one at a time in arrival order; events for different
keys run concurrently. Used when the dispatcher is built with
``per_user_queue=True`` so a user's read-modify-write of state cannot
interleave with another event from the same user.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, Hashable, Optional

from ..core.logging_utils import log_event

EventJob = Callable[[], Awaitable[None]]


class UserEventQueue:
    def __init__(self, *, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._lock = asyncio.Lock()
        self._queues: Dict[Hashable, Deque[EventJob]] = {}
        self._workers: Dict[Hashable, asyncio.Task[None]] = {}
        self._idle_event = asyncio.Event()
        self._idle_event.set()

    async def submit(self, key: Hashable, job: EventJob) -> None:
        async with self._lock:
            queue = self._queues.get(key)
            if queue is None:
                queue = deque()
                self._queues[key] = queue
            queue.append(job)
            self._idle_event.clear()
            if key not in self._workers:
                self._workers[key] = asyncio.create_task(self._drain(key))
            pending = len(queue)
        log_event(
            self._logger,
            logging.DEBUG,
            "telegram.queue.enqueued",
            key=key,
            pending=pending,
        )

    async def wait_idle(self) -> None:
        """Wait until every submitted job has finished."""

        await self._idle_event.wait()

    async def _drain(self, key: Hashable) -> None:
        try:
            while True:
                async with self._lock:
                    queue = self._queues.get(key)
                    if not queue:
                        self._queues.pop(key, None)
                        self._workers.pop(key, None)
                        if not self._workers:
                            self._idle_event.set()
                        return
                    job = queue.popleft()
                try:
                    await job()
                except Exception as exc:
                    log_event(
                        self._logger,
                        logging.WARNING,
                        "telegram.queue.job_failed",
                        key=key,
                        exc=exc,
                    )
        finally:
            async with self._lock:
                self._workers.pop(key, None)
                if not self._workers:
                    self._queues.clear()
                    self._idle_event.set()
