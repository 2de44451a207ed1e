from __future__ import annotations

import asyncio
import random

import pytest

from gremlin_driver.config import DriverSettings
from gremlin_driver.connection import Connection
from gremlin_driver.errors import (
    DuplicateRequestIdError,
    ErrorCategory,
    ProtocolError,
    RequestCancelledError,
    RequestTimeoutError,
)
from gremlin_driver.messages import RequestMessage, ResponseFrame
from gremlin_driver.pending import RetiredReason
from gremlin_driver.transport import LoopbackTransport


class _BrokenTransport(LoopbackTransport):
    async def send(self, message: RequestMessage) -> None:
        raise ConnectionError("socket closed")


def _interleave(streams: dict[str, list[ResponseFrame]], rng: random.Random) -> list[ResponseFrame]:
    """Merge per-request frame lists in random order, keeping each request's own order."""
    queues = {request_id: list(frames) for request_id, frames in streams.items()}
    merged: list[ResponseFrame] = []
    while queues:
        request_id = rng.choice(sorted(queues))
        merged.append(queues[request_id].pop(0))
        if not queues[request_id]:
            del queues[request_id]
    return merged


@pytest.mark.asyncio
async def test_reader_dispatches_pushed_frames(fast_settings, id_sequence) -> None:
    transport = LoopbackTransport()
    async with Connection(transport, fast_settings, id_factory=id_sequence(["r1"])) as connection:
        sink = await connection.submit({"gremlin": "g.V().count()"})
        sent = await transport.next_sent(timeout_seconds=1)
        assert sent is not None
        assert sent.request_id == "r1"
        transport.push(ResponseFrame("r1", 206, [1]))
        transport.push(ResponseFrame("r1", 200, [2]))
        assert await asyncio.wait_for(sink.result(), timeout=1) == [1, 2]


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", range(10))
async def test_interleaved_frames_reach_their_own_callers(seed: int, fast_settings, id_sequence) -> None:
    request_ids = [f"r{index}" for index in range(6)]
    transport = LoopbackTransport()
    connection = Connection(transport, fast_settings, id_factory=id_sequence(request_ids))
    connection.start()
    sinks = await asyncio.gather(*(connection.submit({"n": index}) for index in range(len(request_ids))))

    streams: dict[str, list[ResponseFrame]] = {}
    expected: dict[str, list[str]] = {}
    for index, request_id in enumerate(request_ids):
        parts = [[f"{request_id}-{part}"] for part in range(index % 3 + 1)]
        frames = [ResponseFrame(request_id, 206, chunk) for chunk in parts]
        if index == 0:
            frames = [ResponseFrame(request_id, 204)]
            expected[request_id] = []
        else:
            frames.append(ResponseFrame(request_id, 200))
            expected[request_id] = [item for chunk in parts for item in chunk]
        streams[request_id] = frames

    for frame in _interleave(streams, random.Random(seed)):
        transport.push(frame)

    results = await asyncio.wait_for(asyncio.gather(*(sink.result() for sink in sinks)), timeout=2)
    for sink, result in zip(sinks, results, strict=True):
        assert result == expected[sink.request_id]
    assert connection.pending_count == 0
    await connection.close()


@pytest.mark.asyncio
async def test_cancel_rejects_sink_and_late_frames_become_anomalies(fast_settings, id_sequence) -> None:
    connection = Connection(LoopbackTransport(), fast_settings, id_factory=id_sequence(["r1"]))
    sink = await connection.submit({"gremlin": "g.V()"})

    assert connection.cancel(sink) is True
    assert connection.cancel("r1") is False
    with pytest.raises(RequestCancelledError) as excinfo:
        await sink
    assert excinfo.value.category is ErrorCategory.CANCELLED

    connection.dispatcher.on_frame(ResponseFrame("r1", 200, ["late"]))
    assert connection.dispatcher.anomaly_count == 1
    assert connection.table.retired_reason("r1") is RetiredReason.CANCELLED


@pytest.mark.asyncio
async def test_cancel_by_submitted_id_after_retry(fast_settings, id_sequence, settle) -> None:
    connection = Connection(LoopbackTransport(), fast_settings, id_factory=id_sequence(["r1", "r2"]))
    anomalies = []
    connection.dispatcher.anomaly.connect(lambda _sender, *, anomaly: anomalies.append(anomaly), weak=False)
    sink = await connection.submit({"gremlin": "g.V()"})

    connection.dispatcher.on_frame(ResponseFrame("r1", 596))
    await settle(connection)
    assert connection.table.request_ids() == ["r2"]

    assert connection.cancel("r1") is True
    with pytest.raises(RequestCancelledError):
        await sink
    assert connection.pending_count == 0

    connection.dispatcher.on_frame(ResponseFrame("r2", 200, ["x"]))
    assert [(a.request_id, a.reason, a.detail) for a in anomalies] == [("r2", "late_frame", "request cancelled")]


@pytest.mark.asyncio
async def test_cancel_threadsafe_runs_on_the_loop(fast_settings, id_sequence) -> None:
    async with Connection(LoopbackTransport(), fast_settings, id_factory=id_sequence(["r1"])) as connection:
        sink = await connection.submit({"gremlin": "g.V()"})

        cancelled = await asyncio.to_thread(lambda: connection.cancel_threadsafe("r1").result(timeout=1))

        assert cancelled is True
        with pytest.raises(RequestCancelledError):
            await sink


def test_cancel_threadsafe_needs_a_started_connection(fast_settings) -> None:
    connection = Connection(LoopbackTransport(), fast_settings)
    with pytest.raises(RuntimeError):
        connection.cancel_threadsafe("r1")


@pytest.mark.asyncio
async def test_cancelling_the_sink_future_drops_the_request(fast_settings, id_sequence) -> None:
    connection = Connection(LoopbackTransport(), fast_settings, id_factory=id_sequence(["r1"]))
    sink = await connection.submit({"gremlin": "g.V()"})

    sink.cancel()
    await asyncio.sleep(0)

    assert "r1" not in connection.table
    assert sink.cancelled()


@pytest.mark.asyncio
async def test_request_times_out_without_frames(id_sequence) -> None:
    settings = DriverSettings(request_timeout_seconds=0.05)
    connection = Connection(LoopbackTransport(), settings, id_factory=id_sequence(["r1"]))
    sink = await connection.submit({"gremlin": "g.V()"})

    with pytest.raises(RequestTimeoutError) as excinfo:
        await asyncio.wait_for(sink.result(), timeout=1)
    assert excinfo.value.category is ErrorCategory.TIMEOUT
    assert connection.table.retired_reason("r1") is RetiredReason.TIMED_OUT


@pytest.mark.asyncio
async def test_partial_frames_rearm_the_timeout(id_sequence) -> None:
    settings = DriverSettings(request_timeout_seconds=0.3)
    connection = Connection(LoopbackTransport(), settings, id_factory=id_sequence(["r1"]))
    sink = await connection.submit({"gremlin": "g.V()"})

    await asyncio.sleep(0.2)
    connection.dispatcher.on_frame(ResponseFrame("r1", 206, [1]))
    await asyncio.sleep(0.2)
    assert not sink.done()
    connection.dispatcher.on_frame(ResponseFrame("r1", 200, [2]))

    assert await sink == [1, 2]


@pytest.mark.asyncio
async def test_completed_request_timer_is_cancelled(id_sequence) -> None:
    settings = DriverSettings(request_timeout_seconds=0.05)
    connection = Connection(LoopbackTransport(), settings, id_factory=id_sequence(["r1"]))
    sink = await connection.submit({"gremlin": "g.V()"})
    connection.dispatcher.on_frame(ResponseFrame("r1", 204))

    await asyncio.sleep(0.1)

    assert await sink == []
    assert connection.table.retired_reason("r1") is RetiredReason.COMPLETED


@pytest.mark.asyncio
async def test_send_failure_fails_the_request(fast_settings, id_sequence) -> None:
    connection = Connection(_BrokenTransport(), fast_settings, id_factory=id_sequence(["r1"]))
    sink = await connection.submit({"gremlin": "g.V()"})

    with pytest.raises(ProtocolError, match="socket closed"):
        await sink
    assert connection.pending_count == 0


@pytest.mark.asyncio
async def test_submit_with_message_keeps_its_id(fast_settings) -> None:
    transport = LoopbackTransport()
    connection = Connection(transport, fast_settings)
    message = RequestMessage("fixed", op="bytecode", processor="traversal", args={"gremlin": "g.V()"})

    sink = await connection.submit(message)

    assert sink.request_id == "fixed"
    assert transport.sent == [message]
    with pytest.raises(DuplicateRequestIdError):
        await connection.submit(message)


@pytest.mark.asyncio
async def test_stream_end_fails_pending_requests(fast_settings, id_sequence) -> None:
    transport = LoopbackTransport()
    connection = Connection(transport, fast_settings, id_factory=id_sequence(["r1"]))
    connection.start()
    sink = await connection.submit({"gremlin": "g.V()"})

    transport.close()

    with pytest.raises(ProtocolError, match="stream ended"):
        await asyncio.wait_for(sink.result(), timeout=1)
    await connection.close()


@pytest.mark.asyncio
async def test_close_cancels_pending_requests(fast_settings, id_sequence) -> None:
    connection = Connection(LoopbackTransport(), fast_settings, id_factory=id_sequence(["r1"]))
    connection.start()
    sink = await connection.submit({"gremlin": "g.V()"})

    await connection.close()

    with pytest.raises(RequestCancelledError):
        await sink
    with pytest.raises(RuntimeError):
        await connection.submit({"gremlin": "g.V()"})


@pytest.mark.asyncio
async def test_close_during_backoff_skips_resubmission(id_sequence) -> None:
    settings = DriverSettings(conflict_base_delay=5.0, rate_limit_base_delay=5.0, request_timeout_seconds=None)
    transport = LoopbackTransport()
    connection = Connection(transport, settings, id_factory=id_sequence(["r1", "r2"]))
    sink = await connection.submit({"gremlin": "g.V()"})

    connection.dispatcher.on_frame(ResponseFrame("r1", 596))
    await asyncio.sleep(0)
    assert len(connection.tasks) == 1
    await connection.close()

    with pytest.raises(RequestCancelledError):
        await sink
    assert [message.request_id for message in transport.sent] == ["r1"]
