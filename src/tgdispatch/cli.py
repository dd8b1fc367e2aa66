import asyncio
import importlib
import logging
from pathlib import Path
from typing import Any, Callable, NoReturn, Optional

import typer

from .core.config import BotConfig, load_bot_config
from .core.exceptions import ConfigError
from .core.logging_utils import log_event, setup_rotating_logger
from .dispatch.bot import TelegramBot
from .telegram.client import TelegramAPIError, TelegramBotClient

DEFAULT_CONFIG_PATH = Path("tgdispatch.yml")

app = typer.Typer(add_completion=False, help="Run and inspect tgdispatch bots.")


def raise_exit(message: str, *, cause: Optional[BaseException] = None) -> NoReturn:
    typer.echo(message, err=True)
    if cause is not None:
        raise typer.Exit(code=1) from cause
    raise typer.Exit(code=1)


def _require_config(path: Path) -> BotConfig:
    try:
        config = load_bot_config(path)
        config.validate()
    except ConfigError as exc:
        raise_exit(str(exc), cause=exc)
    return config


def load_bot_factory(target: str) -> Callable[[BotConfig], Any]:
    """Resolve ``package.module:factory`` to a callable."""

    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"expected 'module:factory', got {target!r}")
    module = importlib.import_module(module_name)
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ValueError(f"{target!r} is not callable")
    return factory


@app.command("run")
def run(
    target: str = typer.Argument(..., help="Bot factory as 'module:function'"),
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to the bot config file"
    ),
) -> None:
    """Build the bot from FACTORY(config) and poll for updates until interrupted."""

    config = _require_config(config_path)
    logger = setup_rotating_logger("tgdispatch", config.log)
    try:
        factory = load_bot_factory(target)
    except (ImportError, ValueError) as exc:
        raise_exit(f"Cannot load bot factory: {exc}", cause=exc)
    bot = factory(config)
    if not isinstance(bot, TelegramBot):
        raise_exit(f"{target} returned {type(bot).__name__}, expected TelegramBot")
    log_event(
        logger,
        logging.INFO,
        "telegram.bot.starting",
        root=str(config.root),
        factory=target,
    )

    async def _run() -> None:
        try:
            await bot.run_polling()
        finally:
            await bot.close()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        log_event(logger, logging.INFO, "telegram.bot.interrupted")
    except TelegramAPIError as exc:
        raise_exit(f"Telegram polling failed: {exc}", cause=exc)


@app.command("health")
def health(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to the bot config file"
    ),
    timeout: float = typer.Option(5.0, "--timeout", help="Timeout (seconds)"),
) -> None:
    """Check that the configured token is accepted by the Bot API."""

    config = _require_config(config_path)
    token = config.bot_token or ""
    timeout_seconds = max(float(timeout), 0.1)

    async def _run() -> dict[str, Any]:
        async with TelegramBotClient(token) as client:
            return await asyncio.wait_for(client.get_me(), timeout=timeout_seconds)

    try:
        me = asyncio.run(_run())
    except (TelegramAPIError, asyncio.TimeoutError) as exc:
        raise_exit(f"Telegram health check failed: {exc}", cause=exc)
    typer.echo(f"ok: @{me.get('username', '?')} (id={me.get('id', '?')})")


@app.command("commands")
def commands(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to the bot config file"
    ),
) -> None:
    """Publish the configured command table to Telegram."""

    config = _require_config(config_path)
    if not config.commands:
        raise_exit("No commands configured")

    async def _run() -> None:
        bot = TelegramBot.from_config(config)
        try:
            await bot.register_commands()
        finally:
            await bot.close()

    try:
        asyncio.run(_run())
    except TelegramAPIError as exc:
        raise_exit(f"Command registration failed: {exc}", cause=exc)
    typer.echo(f"Registered {len(config.commands)} command(s)")


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
