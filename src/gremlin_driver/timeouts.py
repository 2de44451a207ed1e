"""Per-request idle deadlines."""

from __future__ import annotations

import asyncio

from loguru import logger

from gremlin_driver.errors import RequestTimeoutError
from gremlin_driver.pending import PendingRequest, PendingRequestTable, RetiredReason


class RequestTimeouts:
    """Fail requests that see no frame within `timeout_seconds`.

    Deadlines are loop timers owned by each entry, so they fire even when the
    frame stream is idle. A non-positive or missing timeout disables them.
    """

    def __init__(self, table: PendingRequestTable, timeout_seconds: float | None) -> None:
        self._table = table
        self.timeout_seconds = timeout_seconds

    @property
    def enabled(self) -> bool:
        return self.timeout_seconds is not None and self.timeout_seconds > 0

    def arm(self, entry: PendingRequest) -> None:
        entry.cancel_timer()
        if not self.enabled:
            return
        loop = asyncio.get_running_loop()
        entry.timer = loop.call_later(self.timeout_seconds, self._expire, entry)

    def disarm(self, entry: PendingRequest) -> None:
        entry.cancel_timer()

    def _expire(self, entry: PendingRequest) -> None:
        entry.timer = None
        request_id = entry.request_id
        if self._table.lookup(request_id) is not entry:
            return
        logger.warning("request.timeout request_id={} after={}s", request_id, self.timeout_seconds)
        self._table.fail(
            request_id,
            RequestTimeoutError(
                f"No response for request {request_id} within {self.timeout_seconds}s",
                status_code=entry.retry.last_status_code,
            ),
            RetiredReason.TIMED_OUT,
        )
