"""Listener entrypoint. Opens the accessibility bus, registers cache events, prints what arrives."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from atspi_watch import __version__
from atspi_watch.config import Config, load_config_with_env
from atspi_watch.connection import setup_connection
from atspi_watch.core.errors import ConnectionSetupError, WatchConfigurationError
from atspi_watch.listener import EventDispatcher

# dbus_next logs through stdlib logging: message handler exceptions and unmarshalling errors
_DBUS_LOGGERS = ["dbus_next", "dbus_next.aio.message_bus"]

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class DBusLogHandler(logging.Handler):
    """Forward dbus_next's stdlib log records to loguru, keeping their origin."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        # Signatures like a{sv} would otherwise be read as loguru format fields
        text = record.getMessage().replace("{", "{{").replace("}", "}}")
        logger.patch(
            lambda r: r.update(name=record.name, function=record.funcName, line=record.lineno),
        ).opt(exception=record.exc_info).log(level, text)


def _intercept_dbus_logging(level: str) -> None:
    """Send dbus_next logs (and anything else on the root logger) through loguru at ``level``."""
    logging.basicConfig(handlers=[DBusLogHandler()], level=0, force=True)
    for name in _DBUS_LOGGERS:
        dbus_logger = logging.getLogger(name)
        dbus_logger.handlers = [DBusLogHandler()]
        dbus_logger.propagate = False
        dbus_logger.setLevel(level)


def _escape_markup(record: Any) -> bool:
    """Escape braces and angle brackets: introspection XML and signatures end up in messages."""
    if isinstance(record.get("message"), str):
        record["message"] = record["message"].replace("{", "{{").replace("}", "}}").replace("<", "\\<")
    return True


def _resolve_level(verbose: bool, default: str) -> str:
    if verbose:
        return "DEBUG"
    env_level = (os.environ.get("LOG_LEVEL") or "").upper()
    if env_level in _LEVELS:
        return env_level
    default = default.upper()
    return default if default in _LEVELS else "INFO"


def setup_logging(verbose: bool = False, default_level: str = "INFO") -> None:
    """Configure loguru on stderr; stdout carries only event lines.
    Level: verbose=True → DEBUG, else LOG_LEVEL env, else ``default_level``."""
    level = _resolve_level(verbose, default_level)

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=("<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> | {message}"),
        filter=_escape_markup,
    )
    _intercept_dbus_logging(level)


async def _run(config: Config) -> None:
    """Open the bus and consume messages until the connection closes."""
    connection = await setup_connection(config.bus_address)
    dispatcher = EventDispatcher(connection.bus, show_event_details=config.show_event_details)
    logger.info("Listening for accessibility cache events")
    try:
        await dispatcher.run(connection.messages())
    finally:
        connection.close()


def _run_loop(config: Config) -> None:
    # uvloop when available
    try:
        import uvloop
    except ImportError:
        asyncio.run(_run(config))
    else:
        uvloop.run(_run(config))


def main() -> None:
    """Main entrypoint."""
    parser = argparse.ArgumentParser(description="Print AT-SPI accessible add/remove events")
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        help="Optional YAML config file",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    args = parser.parse_args()

    try:
        config = Config(load_config_with_env(args.config))
    except WatchConfigurationError as exc:
        setup_logging(args.verbose)
        logger.error("{}", exc)
        sys.exit(1)

    setup_logging(args.verbose, config.log_level)

    try:
        _run_loop(config)
    except ConnectionSetupError as exc:
        logger.error("Startup failed: {}", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
