"""Retry loop with exponential backoff and a time budget."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

from prerender_relay.fetch.metrics import RelayMetrics
from prerender_relay.fetch.models import AttemptOutcome, AttemptResult, RetryPolicy


logger = structlog.get_logger()

Operation = Callable[[], Awaitable[AttemptResult]]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class RetryState:
    """Progress of one retry loop.

    Attributes:
        started_ns: perf_counter_ns value when the loop started.
        attempts: Number of attempts made so far.
        interval_ms: Delay before the upcoming attempt.
        last_result: Result of the most recent attempt.
    """

    started_ns: int
    attempts: int = 0
    interval_ms: int = 0
    last_result: AttemptResult | None = None

    @property
    def elapsed_seconds(self) -> float:
        """Seconds since the loop started."""
        return (time.perf_counter_ns() - self.started_ns) / 1_000_000_000

    def is_exhausted(self, budget_seconds: float) -> bool:
        """Check if waiting for the next attempt would exceed the budget.

        Args:
            budget_seconds: Overall budget, 0 for unbounded.

        Returns:
            True if no further attempt fits into the budget.
        """
        if budget_seconds <= 0:
            return False
        return self.elapsed_seconds + self.interval_ms / 1000.0 > budget_seconds


async def run_with_retry(
    operation: Operation,
    policy: RetryPolicy,
    budget_seconds: float,
    log: structlog.stdlib.BoundLogger | None = None,
    sleep: Sleep = asyncio.sleep,
) -> AttemptResult:
    """Run an operation until it succeeds, fails permanently, or runs out of time.

    Args:
        operation: Coroutine factory performing one attempt.
        policy: Backoff shape between attempts.
        budget_seconds: Overall time budget, 0 retries forever.
        log: Bound logger.
        sleep: Awaitable sleep, replaceable in tests.

    Returns:
        The terminal AttemptResult. When the budget runs out this is the
        last transient failure.
    """
    log = log or logger.bind(component="retry")
    metrics = RelayMetrics.get_instance()
    state = RetryState(started_ns=time.perf_counter_ns())

    while True:
        result = await operation()
        state.attempts += 1
        state.last_result = result

        if result.outcome is not AttemptOutcome.TRANSIENT:
            return result

        state.interval_ms = policy.get_delay_ms(state.attempts - 1)
        if state.is_exhausted(budget_seconds):
            log.info(
                "retry_exhausted",
                attempts=state.attempts,
                elapsed_ms=round(state.elapsed_seconds * 1000, 2),
                budget_seconds=budget_seconds,
            )
            return result

        metrics.record_retry()
        log.debug(
            "retry_attempt",
            attempt=state.attempts,
            delay_ms=state.interval_ms,
            error_class=result.error.error_class.value if result.error else None,
        )
        await sleep(state.interval_ms / 1000.0)
