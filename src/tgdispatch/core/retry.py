"""Retry policy for transient transport failures."""

from __future__ import annotations

import logging
from functools import wraps
from typing import Awaitable, Callable, ParamSpec, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from .exceptions import TransientError
from .logging_utils import log_event

P = ParamSpec("P")
T = TypeVar("T")

logger = logging.getLogger(__name__)


def _log_before_sleep(name: str) -> Callable[[RetryCallState], None]:
    def _log(state: RetryCallState) -> None:
        outcome = state.outcome
        log_event(
            logger,
            logging.WARNING,
            "retry.transient",
            function=name,
            attempt=state.attempt_number,
            sleep_seconds=state.next_action.sleep if state.next_action else None,
            exc=outcome.exception() if outcome is not None else None,
        )

    return _log


def retry_transient(
    max_attempts: int = 5,
    base_wait: float = 1.0,
    max_wait: float = 60.0,
    jitter: float = 0.1,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """
    Decorator retrying an async callable on ``TransientError``.

    Waits grow exponentially from ``base_wait`` up to ``max_wait`` with up to
    ``jitter * base_wait`` seconds of random spread. Any other exception is
    raised immediately; once ``max_attempts`` is reached the last transient
    error is re-raised.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        name = getattr(func, "__qualname__", repr(func))

        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait_exponential(multiplier=base_wait, max=max_wait, exp_base=2)
                + wait_random(0, base_wait * jitter),
                retry=retry_if_exception_type(TransientError),
                before_sleep=_log_before_sleep(name),
                reraise=True,
            ):
                with attempt:
                    return await func(*args, **kwargs)
            raise RuntimeError(f"{name}: retry loop ended without a result")

        return wrapper

    return decorator
