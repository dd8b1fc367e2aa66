import dataclasses
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, cast

import yaml
from dotenv import dotenv_values

from .exceptions import ConfigError

logger = logging.getLogger("tgdispatch.core.config")

DEFAULT_BOT_TOKEN_ENV = "TGDISPATCH_BOT_TOKEN"
DEFAULT_POLL_TIMEOUT_SECONDS = 30
DEFAULT_ALLOWED_UPDATES = ("message", "callback_query")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _default_config() -> Dict[str, Any]:
    """Build the default config mapping."""
    return {
        "bot_token_env": DEFAULT_BOT_TOKEN_ENV,
        "commands": {},
        "username_whitelist": None,
        "per_user_queue": False,
        "polling": {
            "timeout_seconds": DEFAULT_POLL_TIMEOUT_SECONDS,
            "allowed_updates": list(DEFAULT_ALLOWED_UPDATES),
        },
        "log": {
            "path": None,
            "level": "INFO",
            "max_bytes": 10_000_000,
            "backup_count": 3,
        },
    }


@dataclasses.dataclass(frozen=True)
class LogConfig:
    path: Optional[Path]
    level: str
    max_bytes: int
    backup_count: int


@dataclasses.dataclass(frozen=True)
class PollingConfig:
    timeout_seconds: int
    allowed_updates: tuple[str, ...]


@dataclasses.dataclass(frozen=True)
class BotConfig:
    root: Path
    bot_token_env: str
    bot_token: Optional[str]
    commands: Dict[str, str]
    username_whitelist: Optional[List[str]]
    per_user_queue: bool
    polling: PollingConfig
    log: LogConfig
    raw: Dict[str, Any]

    def validate(self) -> None:
        if not self.bot_token:
            raise ConfigError(
                f"Missing bot token; set {self.bot_token_env} in the environment "
                "or in a .env file next to the config"
            )

    @classmethod
    def from_raw(
        cls,
        raw: Optional[Mapping[str, Any]],
        *,
        root: Path,
        env: Optional[Mapping[str, str]] = None,
    ) -> "BotConfig":
        data = _merge_defaults(_default_config(), dict(raw or {}))
        source_env = env if env is not None else os.environ
        token_env = data.get("bot_token_env")
        if not isinstance(token_env, str) or not token_env.strip():
            raise ConfigError("bot_token_env must be a non-empty string")
        token = source_env.get(token_env)
        return cls(
            root=root,
            bot_token_env=token_env,
            bot_token=token.strip() if isinstance(token, str) and token.strip() else None,
            commands=_parse_commands(data.get("commands")),
            username_whitelist=_parse_whitelist(data.get("username_whitelist")),
            per_user_queue=_parse_bool(data.get("per_user_queue"), "per_user_queue"),
            polling=_parse_polling_config(data.get("polling")),
            log=_parse_log_config(data.get("log"), root=root),
            raw=data,
        )


def _merge_defaults(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = cast(Dict[str, Any], json.loads(json.dumps(base)))
    for key, value in overrides.items():
        if isinstance(value, dict) and key in merged and isinstance(merged[key], dict):
            merged[key] = _merge_defaults(merged[key], value)
        else:
            merged[key] = value
    return merged


def _parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ConfigError(f"{name} must be a boolean")


def _parse_commands(raw: Any) -> Dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError("commands must be a mapping of command to description")
    commands: Dict[str, str] = {}
    for command, description in raw.items():
        if not isinstance(command, str) or not command.startswith("/"):
            raise ConfigError(f"command {command!r} must be a string starting with '/'")
        if description is None:
            description = ""
        if not isinstance(description, str):
            raise ConfigError(f"description for {command} must be a string")
        commands[command] = description
    return commands


def _parse_whitelist(raw: Any) -> Optional[List[str]]:
    if raw is None:
        return None
    if isinstance(raw, str) or not isinstance(raw, list):
        raise ConfigError("username_whitelist must be a list of usernames")
    usernames: List[str] = []
    for item in raw:
        if not isinstance(item, str) or not item.strip():
            raise ConfigError("username_whitelist entries must be non-empty strings")
        usernames.append(item.strip().lstrip("@"))
    return usernames


def _parse_polling_config(raw: Any) -> PollingConfig:
    if not isinstance(raw, dict):
        raise ConfigError("polling must be a mapping")
    timeout = raw.get("timeout_seconds")
    if isinstance(timeout, bool) or not isinstance(timeout, int) or timeout < 0:
        raise ConfigError("polling.timeout_seconds must be a non-negative integer")
    updates = raw.get("allowed_updates")
    if not isinstance(updates, list) or not all(
        isinstance(item, str) for item in updates
    ):
        raise ConfigError("polling.allowed_updates must be a list of strings")
    return PollingConfig(timeout_seconds=timeout, allowed_updates=tuple(updates))


def _parse_log_config(raw: Any, *, root: Path) -> LogConfig:
    if not isinstance(raw, dict):
        raise ConfigError("log must be a mapping")
    path_raw = raw.get("path")
    path: Optional[Path] = None
    if path_raw is not None:
        if not isinstance(path_raw, str):
            raise ConfigError("log.path must be a string")
        path = Path(path_raw).expanduser()
        if not path.is_absolute():
            path = root / path
    level = str(raw.get("level") or "INFO").upper()
    if level not in _LOG_LEVELS:
        raise ConfigError(f"log.level must be one of {', '.join(_LOG_LEVELS)}")
    max_bytes = raw.get("max_bytes")
    backup_count = raw.get("backup_count")
    for name, value in (("max_bytes", max_bytes), ("backup_count", backup_count)):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ConfigError(f"log.{name} must be a non-negative integer")
    return LogConfig(
        path=path,
        level=level,
        max_bytes=cast(int, max_bytes),
        backup_count=cast(int, backup_count),
    )


def _load_yaml_dict(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must be a mapping: {path}")
    return data


def resolve_env_for_root(
    root: Path, base_env: Optional[Mapping[str, str]] = None
) -> Dict[str, str]:
    """
    Return the process env merged with ``root/.env`` without mutating os.environ.

    Values from the .env file win over inherited ones.
    """
    env = dict(base_env) if base_env is not None else dict(os.environ)
    candidate = root / ".env"
    if candidate.exists():
        for key, value in dotenv_values(candidate).items():
            if key and value is not None:
                env[str(key)] = str(value)
    return env


def load_bot_config(
    config_path: Path, *, env: Optional[Mapping[str, str]] = None
) -> BotConfig:
    """Load a bot config file, resolving the token from env and a sibling .env."""
    config_path = config_path.expanduser().resolve()
    root = config_path.parent
    raw = _load_yaml_dict(config_path)
    merged_env = resolve_env_for_root(root, env)
    config = BotConfig.from_raw(raw, root=root, env=merged_env)
    logger.debug("Loaded bot config from %s", config_path)
    return config
