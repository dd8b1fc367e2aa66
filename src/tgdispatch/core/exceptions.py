"""Base error hierarchy for tgdispatch."""

from __future__ import annotations

from typing import Optional


class TgDispatchError(Exception):
    """Base error for the package."""

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message


class TransientError(TgDispatchError):
    """Failure that may succeed if retried (network, rate limits)."""

    recoverable = True
    severity = "warning"


class PermanentError(TgDispatchError):
    """Failure that retrying will not fix (validation, auth, config)."""

    recoverable = False
    severity = "error"


class ConfigError(PermanentError):
    """Invalid or missing configuration."""
