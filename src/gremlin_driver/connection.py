"""Caller-facing connection: submit requests and consume the frame stream."""

from __future__ import annotations

import asyncio
import concurrent.futures
import random
from collections.abc import Callable, Mapping
from typing import Any

from loguru import logger

from gremlin_driver.auth import AuthChallengeHandler
from gremlin_driver.config import DriverSettings
from gremlin_driver.dispatcher import ResponseDispatcher
from gremlin_driver.errors import ProtocolError, RequestCancelledError
from gremlin_driver.messages import RequestMessage, new_request_id
from gremlin_driver.pending import PendingRequest, PendingRequestTable, RetiredReason
from gremlin_driver.retry import RetryCoordinator
from gremlin_driver.sink import ResultSink
from gremlin_driver.tasks import BackgroundTasks
from gremlin_driver.timeouts import RequestTimeouts
from gremlin_driver.transport import Transport


class Connection:
    """Multiplex many requests over one transport.

    Usage::

        async with Connection(transport) as connection:
            sink = await connection.submit({"gremlin": "g.V().count()"})
            results = await sink
    """

    def __init__(
        self,
        transport: Transport,
        settings: DriverSettings | None = None,
        *,
        id_factory: Callable[[], str] = new_request_id,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = settings or DriverSettings()
        self.transport = transport
        self._id_factory = id_factory
        self.table = PendingRequestTable(retired_capacity=self.settings.retired_id_capacity)
        self.tasks = BackgroundTasks()
        self.timeouts = RequestTimeouts(self.table, self.settings.request_timeout_seconds)
        self.retries = RetryCoordinator(
            self.settings.retry_policy(),
            table=self.table,
            transport=transport,
            tasks=self.tasks,
            timeouts=self.timeouts,
            id_factory=id_factory,
            rng=rng,
        )
        self.auth = AuthChallengeHandler(
            self.settings.credentials(),
            table=self.table,
            transport=transport,
            tasks=self.tasks,
        )
        self.dispatcher = ResponseDispatcher(
            self.table,
            retries=self.retries,
            auth=self.auth,
            timeouts=self.timeouts,
        )
        self._reader: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._closed = False

    async def __aenter__(self) -> Connection:
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def pending_count(self) -> int:
        return len(self.table)

    def start(self) -> None:
        """Start consuming frames in a background task."""
        self._loop = asyncio.get_running_loop()
        if self._reader is None or self._reader.done():
            self._reader = self._loop.create_task(self.run(), name="gremlin_driver.reader")

    async def run(self) -> None:
        """Feed every frame from the transport to the dispatcher until the stream ends."""
        logger.debug("connection.reader.start")
        try:
            while True:
                frame = await self.transport.receive()
                if frame is None:
                    break
                self.dispatcher.on_frame(frame)
        except Exception:
            logger.exception("connection.reader.error")
        logger.debug("connection.reader.stopped pending={}", len(self.table))
        for entry in self.table.drain(RetiredReason.CLOSED):
            entry.sink.reject(
                ProtocolError("Response stream ended before the request completed", request_id=entry.request_id)
            )

    async def submit(
        self,
        request: RequestMessage | Mapping[str, Any],
        *,
        op: str = "eval",
        processor: str = "",
    ) -> ResultSink:
        """Send a request and return the sink its results will arrive on.

        A `RequestMessage` keeps its own request id; a mapping is sent as the
        `args` of a new message under a fresh id.
        """
        if self._closed:
            raise RuntimeError("connection is closed")
        if isinstance(request, RequestMessage):
            message = request
        else:
            message = RequestMessage(request_id=self._id_factory(), op=op, processor=processor, args=dict(request))

        sink = ResultSink(message.request_id)
        entry = PendingRequest(message=message, sink=sink)
        self.table.register(entry)
        sink.add_done_callback(self._on_sink_done)
        self.timeouts.arm(entry)
        logger.debug("connection.submit request_id={} op={}", message.request_id, message.op)
        try:
            await self.transport.send(message)
        except Exception as error:
            logger.opt(exception=True).warning("connection.send_failed request_id={}", message.request_id)
            self.table.fail(message.request_id, ProtocolError(f"Failed to send request: {error}"))
        return sink

    def cancel(self, target: str | ResultSink) -> bool:
        """Cancel a pending request by id or by its sink.

        The id may be the one the request was submitted under even after
        retries moved it to a new id. Returns False if the request is no
        longer pending.

        Must be called on the connection's event loop thread: the sink wraps an
        `asyncio.Future` and the idle timer is a loop `TimerHandle`. Other
        threads use `cancel_threadsafe`.
        """
        request_id = target.original_request_id if isinstance(target, ResultSink) else target
        entry = self.table.fail_submitted(
            request_id,
            RequestCancelledError(f"Request {request_id} was cancelled"),
            RetiredReason.CANCELLED,
        )
        if entry is None:
            return False
        logger.info("connection.cancel request_id={} current_id={}", request_id, entry.request_id)
        return True

    def cancel_threadsafe(self, target: str | ResultSink) -> concurrent.futures.Future[bool]:
        """Schedule `cancel` on the connection's loop from any thread."""
        if self._loop is None:
            raise RuntimeError("connection is not started")
        return asyncio.run_coroutine_threadsafe(self._cancel_on_loop(target), self._loop)

    async def _cancel_on_loop(self, target: str | ResultSink) -> bool:
        return self.cancel(target)

    def _on_sink_done(self, sink: ResultSink) -> None:
        if sink.cancelled():
            self.cancel(sink.request_id)

    async def close(self) -> None:
        """Stop reading, cancel background work and fail whatever is still pending."""
        if self._closed:
            return
        self._closed = True
        if self._reader is not None and not self._reader.done():
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
        await self.tasks.cancel_all()
        for entry in self.table.drain(RetiredReason.CLOSED):
            entry.sink.reject(
                RequestCancelledError("Connection closed before the request completed", request_id=entry.request_id)
            )
