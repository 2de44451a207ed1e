"""Logging setup for the driver and its command line."""

from __future__ import annotations

import sys
from typing import Literal

from loguru import logger
from rich import get_console
from rich.logging import RichHandler

from gremlin_driver.config import DriverSettings, get_settings

LogProfile = Literal["default", "cli"]

# Driver events are already `area.event key=value` strings, so only a timestamp is added.
_DEFAULT_FORMAT = "{time:HH:mm:ss.SSS} {level: <7} gremlin_driver {message}"

_handler_id: int | None = None


def resolve_level(level: str | None = None, settings: DriverSettings | None = None) -> str:
    """An explicit level wins; otherwise `DriverSettings.log_level` applies."""
    if level:
        return level.upper()
    return (settings or get_settings()).log_level.upper()


def configure_logging(
    *,
    profile: LogProfile = "default",
    level: str | None = None,
    settings: DriverSettings | None = None,
) -> str:
    """Route driver logs to stderr, or to the rich console for the CLI.

    Calling it again replaces the sink installed by the previous call. Returns
    the level that was applied.
    """
    global _handler_id
    resolved = resolve_level(level, settings)
    if _handler_id is None:
        logger.remove()
    else:
        logger.remove(_handler_id)

    match profile:
        case "cli":
            sink = RichHandler(console=get_console(), show_time=False, show_path=False, markup=False)
            _handler_id = logger.add(sink, level=resolved, format="{message}", backtrace=False, diagnose=False)
        case _:
            _handler_id = logger.add(sys.stderr, level=resolved, format=_DEFAULT_FORMAT, backtrace=False, diagnose=False)
    return resolved
