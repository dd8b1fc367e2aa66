"""Shared infrastructure: configuration, logging and base errors."""

from .config import BotConfig, LogConfig, PollingConfig, load_bot_config
from .exceptions import ConfigError, PermanentError, TgDispatchError, TransientError
from .logging_utils import log_event, setup_rotating_logger

__all__ = [
    "BotConfig",
    "ConfigError",
    "LogConfig",
    "PermanentError",
    "PollingConfig",
    "TgDispatchError",
    "TransientError",
    "load_bot_config",
    "log_event",
    "setup_rotating_logger",
]
