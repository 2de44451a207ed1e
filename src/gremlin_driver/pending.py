"""In-flight request bookkeeping."""

from __future__ import annotations

import asyncio
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from gremlin_driver.errors import DuplicateRequestIdError, ResponseError
from gremlin_driver.messages import RequestMessage
from gremlin_driver.sink import ResultSink

DEFAULT_RETIRED_CAPACITY = 1024


class RequestState(StrEnum):
    AWAITING = "awaiting"
    ACCUMULATING = "accumulating"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestState.COMPLETED, RequestState.FAILED)


class RetiredReason(StrEnum):
    """Why a request id left the table."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"
    SUPERSEDED = "superseded"
    CLOSED = "closed"


@dataclass
class RetryState:
    attempt: int = 1
    next_delay: float = 0.0
    total_wait: float = 0.0
    last_status_code: int | None = None


@dataclass
class PendingRequest:
    """State of one logical request while the server is answering it."""

    message: RequestMessage
    sink: ResultSink
    results: list[Any] = field(default_factory=list)
    state: RequestState = RequestState.AWAITING
    retry: RetryState = field(default_factory=RetryState)
    challenged: bool = False
    timer: asyncio.TimerHandle | None = None

    @property
    def request_id(self) -> str:
        return self.message.request_id

    def accumulate(self, items: list[Any]) -> None:
        self.results.extend(items)
        self.state = RequestState.ACCUMULATING

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class PendingRequestTable:
    """Lock-guarded map from request id to pending request.

    This is the only structure shared between submitting callers and the frame
    dispatcher. An entry leaves the table exactly once, through `finalize`,
    `remove`, `rekey` or `drain`; whoever receives the entry back owns the
    right to settle its sink.

    Retries move an entry to a new id. The id it was submitted under stays
    resolvable through `current_id` and `fail_submitted` until the entry leaves.
    """

    def __init__(self, *, retired_capacity: int = DEFAULT_RETIRED_CAPACITY) -> None:
        self._entries: dict[str, PendingRequest] = {}
        self._origins: dict[str, str] = {}
        self._retired: OrderedDict[str, RetiredReason] = OrderedDict()
        self._retired_capacity = max(0, retired_capacity)
        self._lock = threading.Lock()

    def register(self, entry: PendingRequest) -> None:
        request_id = entry.request_id
        with self._lock:
            if request_id in self._entries:
                raise DuplicateRequestIdError(request_id)
            self._entries[request_id] = entry
            self._origins[entry.sink.original_request_id] = request_id
            self._retired.pop(request_id, None)

    def lookup(self, request_id: str) -> PendingRequest | None:
        with self._lock:
            return self._entries.get(request_id)

    def current_id(self, request_id: str) -> str | None:
        """Map a submitted or current id to the id the request is pending under now."""
        with self._lock:
            return self._resolve(request_id)

    def remove(self, request_id: str, reason: RetiredReason = RetiredReason.CANCELLED) -> PendingRequest | None:
        with self._lock:
            entry = self._entries.pop(request_id, None)
            if entry is not None:
                self._forget_origin(entry)
                self._retire(request_id, reason)
            return entry

    def finalize(self, request_id: str, state: RequestState, reason: RetiredReason) -> PendingRequest | None:
        """Move a live entry to a terminal state and drop it from the table.

        Returns None when the id is not pending, in which case the caller must
        not touch any sink.
        """
        if not state.is_terminal:
            raise ValueError(f"finalize needs a terminal state, got {state}")
        with self._lock:
            entry = self._take(request_id, state, reason)
        if entry is not None:
            entry.cancel_timer()
        return entry

    def complete(self, request_id: str) -> PendingRequest | None:
        """Finalize as completed and resolve the sink with the accumulated results."""
        entry = self.finalize(request_id, RequestState.COMPLETED, RetiredReason.COMPLETED)
        if entry is not None:
            entry.sink.resolve(entry.results)
        return entry

    def fail(
        self,
        request_id: str,
        error: ResponseError,
        reason: RetiredReason = RetiredReason.FAILED,
    ) -> PendingRequest | None:
        """Finalize as failed and reject the sink with `error`."""
        entry = self.finalize(request_id, RequestState.FAILED, reason)
        if entry is not None:
            self._reject(entry, error)
        return entry

    def fail_submitted(
        self,
        request_id: str,
        error: ResponseError,
        reason: RetiredReason = RetiredReason.CANCELLED,
    ) -> PendingRequest | None:
        """Like `fail`, but `request_id` may also be the id the request was submitted under.

        Frames must keep using `fail`: a stale frame on a superseded id never
        reaches the retried request.
        """
        with self._lock:
            current = self._resolve(request_id)
            entry = None if current is None else self._take(current, RequestState.FAILED, reason)
        if entry is not None:
            entry.cancel_timer()
            self._reject(entry, error)
        return entry

    def rekey(self, old_id: str, new_id: str) -> PendingRequest | None:
        """Move an entry, with its sink and retry state, to a new id.

        The old id is retired as superseded so late frames on it are reported
        as stale instead of being applied.
        """
        with self._lock:
            if new_id in self._entries:
                raise DuplicateRequestIdError(new_id)
            entry = self._entries.pop(old_id, None)
            if entry is None:
                return None
            entry.message = entry.message.with_request_id(new_id)
            entry.sink.request_id = new_id
            entry.state = RequestState.AWAITING
            entry.challenged = False
            # The resend restarts the stream from the beginning.
            entry.results.clear()
            self._entries[new_id] = entry
            self._origins[entry.sink.original_request_id] = new_id
            self._retire(old_id, RetiredReason.SUPERSEDED)
            return entry

    def drain(self, reason: RetiredReason = RetiredReason.CLOSED) -> list[PendingRequest]:
        with self._lock:
            entries = list(self._entries.values())
            for request_id in list(self._entries):
                self._retire(request_id, reason)
            self._entries.clear()
            self._origins.clear()
        for entry in entries:
            entry.state = RequestState.FAILED
            entry.cancel_timer()
        return entries

    def retired_reason(self, request_id: str) -> RetiredReason | None:
        with self._lock:
            return self._retired.get(request_id)

    def request_ids(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __contains__(self, request_id: object) -> bool:
        with self._lock:
            return request_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _retire(self, request_id: str, reason: RetiredReason) -> None:
        if self._retired_capacity == 0:
            return
        self._retired[request_id] = reason
        self._retired.move_to_end(request_id)
        while len(self._retired) > self._retired_capacity:
            self._retired.popitem(last=False)

    def _resolve(self, request_id: str) -> str | None:
        if request_id in self._entries:
            return request_id
        current = self._origins.get(request_id)
        return current if current in self._entries else None

    def _take(self, request_id: str, state: RequestState, reason: RetiredReason) -> PendingRequest | None:
        entry = self._entries.get(request_id)
        if entry is None or entry.state.is_terminal:
            return None
        entry.state = state
        del self._entries[request_id]
        self._forget_origin(entry)
        self._retire(request_id, reason)
        return entry

    def _forget_origin(self, entry: PendingRequest) -> None:
        # A newer request may have reused the submitted id; leave its mapping alone.
        origin = entry.sink.original_request_id
        if self._origins.get(origin) == entry.request_id:
            del self._origins[origin]

    @staticmethod
    def _reject(entry: PendingRequest, error: ResponseError) -> None:
        if error.request_id is None:
            error.request_id = entry.request_id
        entry.sink.reject(error)
