from __future__ import annotations

import pytest
from loguru import logger

from gremlin_driver import logging_utils
from gremlin_driver.config import DriverSettings
from gremlin_driver.logging_utils import configure_logging, resolve_level


@pytest.fixture(autouse=True)
def _fresh_handlers(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(logging_utils, "_handler_id", None)
    yield
    logger.remove()


def test_explicit_level_wins_over_settings() -> None:
    assert resolve_level("debug", DriverSettings(log_level="ERROR")) == "DEBUG"


def test_level_falls_back_to_settings() -> None:
    assert resolve_level(None, DriverSettings(log_level="warning")) == "WARNING"


def test_level_is_read_from_the_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GREMLIN_DRIVER_LOG_LEVEL", "error")
    assert configure_logging() == "ERROR"


def test_reconfiguring_replaces_the_previous_sink() -> None:
    configure_logging(settings=DriverSettings(log_level="INFO"))
    first = logging_utils._handler_id
    configure_logging(profile="cli", level="WARNING")

    assert logging_utils._handler_id != first
    with pytest.raises(ValueError):
        logger.remove(first)
