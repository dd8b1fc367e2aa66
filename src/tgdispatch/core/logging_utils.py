"""Structured logging helpers shared by the dispatcher and transport."""

from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .config import LogConfig

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _coerce_field(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_coerce_field(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _coerce_field(item) for key, item in value.items()}
    return str(value)


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    *,
    exc: Optional[BaseException] = None,
    **fields: Any,
) -> None:
    """Emit one JSON line describing ``event`` with its fields."""

    if not logger.isEnabledFor(level):
        return
    payload: dict[str, Any] = {"event": event}
    for key, value in fields.items():
        payload[key] = _coerce_field(value)
    if exc is not None:
        payload["error"] = str(exc)
        payload["error_type"] = type(exc).__name__
    logger.log(
        level,
        json.dumps(payload, ensure_ascii=True, default=str),
        exc_info=exc if exc is not None and level >= logging.ERROR else None,
    )


def setup_rotating_logger(name: str, config: "LogConfig") -> logging.Logger:
    """Configure ``name`` to write to a rotating file or, without a path, stderr."""

    logger = logging.getLogger(name)
    logger.setLevel(config.level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handler: logging.Handler
    if config.path is not None:
        path = Path(config.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            path,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
