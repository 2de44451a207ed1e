"""Transport contract and an in-memory loopback transport."""

from __future__ import annotations

import asyncio
from typing import Protocol

from gremlin_driver.messages import RequestMessage, ResponseFrame


class Transport(Protocol):
    """Minimal async contract the driver needs from a connection.

    `receive` yields frames in arrival order and returns None once the stream
    has ended.
    """

    async def send(self, message: RequestMessage) -> None: ...

    async def receive(self) -> ResponseFrame | None: ...


class LoopbackTransport:
    """Queue-backed transport; the test or tool plays the server side."""

    def __init__(self) -> None:
        self._frames: asyncio.Queue[ResponseFrame | None] = asyncio.Queue()
        self._sent: asyncio.Queue[RequestMessage] = asyncio.Queue()
        self.sent: list[RequestMessage] = []
        self._closed = False

    async def send(self, message: RequestMessage) -> None:
        if self._closed:
            raise ConnectionError("transport is closed")
        self.sent.append(message)
        await self._sent.put(message)

    async def receive(self) -> ResponseFrame | None:
        return await self._frames.get()

    def push(self, frame: ResponseFrame) -> None:
        """Queue a frame as if the server had sent it."""
        self._frames.put_nowait(frame)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._frames.put_nowait(None)

    async def next_sent(self, timeout_seconds: float | None = None) -> RequestMessage | None:
        if timeout_seconds is None:
            return await self._sent.get()
        try:
            return await asyncio.wait_for(self._sent.get(), timeout=timeout_seconds)
        except TimeoutError:
            return None
