"""Retry decisions for transient server failures.

Usage example:
    from gremlin_driver.retry import RetryPolicy

    policy = RetryPolicy(max_attempts=5, rate_limit_base_delay=2.0)
    delay = policy.compute_backoff(attempt=2, status_code=429)
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeAlias

from loguru import logger

from gremlin_driver.errors import ProtocolError
from gremlin_driver.messages import new_request_id
from gremlin_driver.pending import PendingRequest, PendingRequestTable
from gremlin_driver.status import ResponseStatusCode
from gremlin_driver.tasks import BackgroundTasks
from gremlin_driver.timeouts import RequestTimeouts
from gremlin_driver.transport import Transport


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with additive jitter.

    `max_attempts` counts every send of a logical request, the first one
    included. Rate-limit responses back off from a longer base delay than
    transient lock conflicts.
    """

    max_attempts: int = 3
    rate_limit_base_delay: float = 1.0
    conflict_base_delay: float = 0.1
    backoff_factor: float = 2.0
    max_delay: float = 30.0
    max_total_wait: float = 60.0
    jitter: float = 0.1

    def base_delay(self, status_code: int) -> float:
        if status_code == ResponseStatusCode.TOO_MANY_REQUESTS:
            return self.rate_limit_base_delay
        return self.conflict_base_delay

    def compute_backoff(self, attempt: int, status_code: int, rng: random.Random | None = None) -> float:
        """Delay before the send following `attempt` (1-based)."""
        exponent = max(0, attempt - 1)
        delay = min(self.max_delay, self.base_delay(status_code) * (self.backoff_factor**exponent))
        if self.jitter > 0:
            delay += (rng or random).uniform(0.0, self.jitter)
        return float(delay)


@dataclass(frozen=True)
class Resubmit:
    request_id: str
    delay: float


@dataclass(frozen=True)
class GiveUp:
    status_code: int
    attempts: int
    reason: str


RetryDecision: TypeAlias = Resubmit | GiveUp


class RetryCoordinator:
    """Decide on and carry out resubmission of retryable requests."""

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        table: PendingRequestTable,
        transport: Transport,
        tasks: BackgroundTasks,
        timeouts: RequestTimeouts,
        id_factory: Callable[[], str] = new_request_id,
        rng: random.Random | None = None,
    ) -> None:
        self.policy = policy
        self._table = table
        self._transport = transport
        self._tasks = tasks
        self._timeouts = timeouts
        self._id_factory = id_factory
        self._rng = rng or random.Random()

    def on_retryable(self, pending: PendingRequest, status_code: int) -> RetryDecision:
        """Record the failed attempt and choose what happens next.

        Only mutates `pending.retry`; moving the entry to the new id is left to
        the caller.
        """
        retry = pending.retry
        retry.last_status_code = status_code
        if retry.attempt >= self.policy.max_attempts:
            return GiveUp(status_code, retry.attempt, f"gave up after {retry.attempt} attempts")
        delay = self.policy.compute_backoff(retry.attempt, status_code, self._rng)
        if retry.total_wait + delay > self.policy.max_total_wait:
            return GiveUp(
                status_code,
                retry.attempt,
                f"next delay {delay:.3f}s would exceed total wait budget {self.policy.max_total_wait}s",
            )
        retry.attempt += 1
        retry.next_delay = delay
        retry.total_wait += delay
        return Resubmit(self._id_factory(), delay)

    def resubmit(self, pending: PendingRequest, decision: Resubmit) -> None:
        """Schedule the verbatim resend without blocking the caller."""
        pending.sink.attempts = pending.retry.attempt
        self._timeouts.disarm(pending)
        self._tasks.spawn(self._resend(pending, decision), name=f"resubmit:{decision.request_id}")

    async def _resend(self, pending: PendingRequest, decision: Resubmit) -> None:
        if decision.delay > 0:
            await asyncio.sleep(decision.delay)
        if self._table.lookup(decision.request_id) is not pending:
            logger.debug("retry.skip request_id={} reason=no_longer_pending", decision.request_id)
            return
        logger.info(
            "retry.resubmit request_id={} origin={} attempt={} delay={:.3f}",
            decision.request_id,
            pending.sink.original_request_id,
            pending.retry.attempt,
            decision.delay,
        )
        try:
            await self._transport.send(pending.message)
        except Exception as error:
            logger.opt(exception=True).warning("retry.send_failed request_id={}", decision.request_id)
            self._table.fail(
                decision.request_id,
                ProtocolError(f"Failed to resubmit request: {error}", status_code=pending.retry.last_status_code),
            )
            return
        if self._table.lookup(decision.request_id) is pending:
            self._timeouts.arm(pending)
