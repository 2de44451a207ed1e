"""Frame-by-frame state machine for in-flight requests."""

from __future__ import annotations

from dataclasses import dataclass

from blinker import Signal
from loguru import logger

from gremlin_driver.auth import AuthChallengeHandler
from gremlin_driver.errors import ProtocolError, RetriesExhaustedError, ServerError, UnknownStatusCodeError
from gremlin_driver.messages import ResponseFrame
from gremlin_driver.pending import PendingRequest, PendingRequestTable
from gremlin_driver.retry import GiveUp, Resubmit, RetryCoordinator
from gremlin_driver.status import ResponseKind, ResponseStatusCode, classify
from gremlin_driver.timeouts import RequestTimeouts


@dataclass(frozen=True)
class ProtocolAnomaly:
    """A frame the dispatcher could not apply to any live request."""

    request_id: str
    status_code: int
    reason: str
    detail: str = ""


class ResponseDispatcher:
    """Apply response frames to the pending requests they belong to.

    Frames are handled strictly one at a time and nothing here awaits, so the
    frame loop never stalls on a single request. Problems with one frame are
    contained to the request that owns it; everything else is reported through
    the `anomaly` signal.
    """

    def __init__(
        self,
        table: PendingRequestTable,
        *,
        retries: RetryCoordinator,
        auth: AuthChallengeHandler,
        timeouts: RequestTimeouts,
    ) -> None:
        self._table = table
        self._retries = retries
        self._auth = auth
        self._timeouts = timeouts
        self.anomaly = Signal("gremlin_driver.anomaly")
        self.anomaly_count = 0

    def on_frame(self, frame: ResponseFrame) -> None:
        try:
            self._dispatch(frame)
        except Exception as error:
            logger.exception("dispatch.error request_id={} status={}", frame.request_id, frame.status_code)
            self._report(frame, "dispatch_error", repr(error))
            self._table.fail(
                frame.request_id,
                ProtocolError(f"Failed to process response frame: {error}", status_code=frame.status_code),
            )

    def _dispatch(self, frame: ResponseFrame) -> None:
        try:
            classification = classify(frame.status_code, has_payload=frame.has_payload)
        except UnknownStatusCodeError as error:
            error.request_id = frame.request_id
            error.server_message = frame.status_message or None
            error.status_attributes = dict(frame.status_attributes)
            if self._table.fail(frame.request_id, error) is None:
                self._report_late(frame, "unknown_status")
            else:
                self._report(frame, "unknown_status", str(error))
            return

        pending = self._table.lookup(frame.request_id)
        if pending is None:
            self._report_late(frame, "late_frame")
            return

        match classification.kind:
            case ResponseKind.PARTIAL_SUCCESS:
                pending.accumulate(frame.payload_items())
                self._timeouts.arm(pending)
            case ResponseKind.TERMINAL_SUCCESS_WITH_DATA | ResponseKind.TERMINAL_SUCCESS_EMPTY:
                pending.results.extend(frame.payload_items())
                self._table.complete(frame.request_id)
                logger.debug(
                    "dispatch.completed request_id={} results={}", frame.request_id, len(pending.results)
                )
            case ResponseKind.AUTH_CHALLENGE:
                self._timeouts.arm(pending)
                self._auth.on_challenge(pending, server_message=frame.status_message)
            case ResponseKind.RETRYABLE_ERROR:
                self._on_retryable(pending, frame)
            case ResponseKind.FATAL_ERROR:
                self._on_fatal(frame)

    def _on_retryable(self, pending: PendingRequest, frame: ResponseFrame) -> None:
        decision = self._retries.on_retryable(pending, frame.status_code)
        match decision:
            case Resubmit(request_id=new_id):
                if self._table.rekey(frame.request_id, new_id) is None:
                    return
                self._retries.resubmit(pending, decision)
            case GiveUp(status_code=status_code, attempts=attempts, reason=reason):
                logger.warning(
                    "dispatch.retries_exhausted request_id={} status={} attempts={}",
                    frame.request_id,
                    status_code,
                    attempts,
                )
                self._table.fail(
                    frame.request_id,
                    RetriesExhaustedError(
                        f"Retries exhausted: {reason}",
                        attempts=attempts,
                        status_code=status_code,
                        server_message=frame.status_message or None,
                        status_attributes=frame.status_attributes,
                    ),
                )

    def _on_fatal(self, frame: ResponseFrame) -> None:
        name = ResponseStatusCode(frame.status_code).name
        server_message = frame.status_message or None
        logger.info(
            "dispatch.server_error request_id={} status={} message={}",
            frame.request_id,
            frame.status_code,
            server_message,
        )
        self._table.fail(
            frame.request_id,
            ServerError(
                f"{frame.status_code} {name}: {server_message or 'no message'}",
                status_code=frame.status_code,
                server_message=server_message,
                status_attributes=frame.status_attributes,
            ),
        )

    def _report_late(self, frame: ResponseFrame, reason: str) -> None:
        retired = self._table.retired_reason(frame.request_id)
        detail = f"request {retired.value}" if retired is not None else "unknown request id"
        self._report(frame, reason, detail)

    def _report(self, frame: ResponseFrame, reason: str, detail: str = "") -> None:
        self.anomaly_count += 1
        anomaly = ProtocolAnomaly(frame.request_id, frame.status_code, reason, detail)
        logger.warning(
            "dispatch.anomaly request_id={} status={} reason={} detail={}",
            frame.request_id,
            frame.status_code,
            reason,
            detail,
        )
        try:
            self.anomaly.send(self, anomaly=anomaly)
        except Exception:
            logger.opt(exception=True).warning("dispatch.anomaly_receiver_failed request_id={}", frame.request_id)
