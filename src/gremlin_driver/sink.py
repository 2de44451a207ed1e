"""Awaitable result handle returned to callers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Generator
from typing import Any

from gremlin_driver.errors import ResponseError


class ResultSink:
    """Resolve-once handle for one logical request.

    The sink survives retries: `request_id` follows the request to whatever id
    it currently runs under. Awaiting the sink yields the ordered list of
    results or raises the `ResponseError` the request failed with.
    """

    def __init__(self, request_id: str, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._future: asyncio.Future[list[Any]] = self._loop.create_future()
        self.request_id = request_id
        self.original_request_id = request_id
        self.attempts = 1

    def __await__(self) -> Generator[Any, None, list[Any]]:
        return self._future.__await__()

    async def result(self) -> list[Any]:
        return await self._future

    def results_nowait(self) -> list[Any]:
        """Return the delivered results of a finished sink, raising its error if it failed."""
        return self._future.result()

    def done(self) -> bool:
        return self._future.done()

    def cancelled(self) -> bool:
        return self._future.cancelled()

    def exception(self) -> BaseException | None:
        if not self._future.done() or self._future.cancelled():
            return None
        return self._future.exception()

    def resolve(self, results: list[Any]) -> bool:
        """Deliver results; returns False if the sink was already finalized."""
        if self._future.done():
            return False
        self._future.set_result(list(results))
        return True

    def reject(self, error: ResponseError) -> bool:
        """Deliver a failure; returns False if the sink was already finalized."""
        if self._future.done():
            return False
        self._future.set_exception(error)
        return True

    def add_done_callback(self, callback: Callable[[ResultSink], None]) -> None:
        self._future.add_done_callback(lambda _: callback(self))

    def cancel(self) -> bool:
        """Cancel the underlying future; the owning connection drops the request."""
        return self._future.cancel()

    def __repr__(self) -> str:
        if self._future.cancelled():
            state = "cancelled"
        elif self._future.done():
            state = "failed" if self._future.exception() is not None else "resolved"
        else:
            state = "pending"
        return f"ResultSink(request_id={self.request_id!r}, attempts={self.attempts}, state={state})"
