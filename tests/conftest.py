from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable

import pytest

from gremlin_driver.config import DriverSettings
from gremlin_driver.connection import Connection


def _id_sequence(ids: Iterable[str]) -> Callable[[], str]:
    iterator = iter(ids)
    return lambda: next(iterator)


async def _settle(connection: Connection) -> None:
    for _ in range(5):
        await asyncio.sleep(0)
    await connection.tasks.join()


@pytest.fixture
def id_sequence() -> Callable[[Iterable[str]], Callable[[], str]]:
    return _id_sequence


@pytest.fixture
def settle() -> Callable[[Connection], Awaitable[None]]:
    """Let the reader and any spawned send tasks run until nothing is left to do."""
    return _settle


@pytest.fixture
def fast_settings() -> DriverSettings:
    return DriverSettings(
        rate_limit_base_delay=0.0,
        conflict_base_delay=0.0,
        jitter=0.0,
        request_timeout_seconds=None,
    )
