"""Retry coordinator: the public entry point of the engine.

Wraps a fallible async operation with admission control, per-attempt
timeouts, failure classification, adaptive backoff, remediation and
telemetry, and always answers with a RetryOutcome instead of raising.

STATE MACHINE (per call)
────────────────────────
::

    Admitting ──rejected──────────────────────────────▶ return (rejected)
        │
        ▼
    Attempting ──success──────────────────────────────▶ return (success)
        │ failure
        ▼
    Classifying ──not retryable / last attempt──▶ Exhausted ─▶ emergency ─▶ return
        │ retryable
        ▼
    Delaying/Recovering ──▶ Attempting (loop)

Admission is checked once per call.  Operation failures never escape;
progress-callback and remediation failures are logged and suppressed.
Cancellation of the call itself is never converted into an outcome.

Example::

    coordinator = RetryCoordinator(RetryConfiguration(max_attempts=3))
    outcome = await coordinator.execute_with_retry(
        lambda: client.get(url),
        OperationContext.for_url(url, strategy="static_html"),
    )
    if not outcome.success:
        print(outcome.error, coordinator.recommendations())
"""

from __future__ import annotations

import asyncio
import inspect
import random
import time
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any, TypeVar

from scrapeguard.core.errors import CircuitOpenError, error_text
from scrapeguard.core.logging import LogContext, get_logger
from scrapeguard.execution.backoff import DelayCalculator
from scrapeguard.execution.circuit_breaker import CircuitBreakerRegistry, CircuitBreakerState
from scrapeguard.execution.classifier import ErrorClassifier
from scrapeguard.execution.journal import AttemptJournal, MetricsCollector
from scrapeguard.execution.models import (
    AggregateMetrics,
    AttemptRecord,
    ErrorClassification,
    OperationContext,
    RetryConfiguration,
    RetryOutcome,
    utcnow,
)
from scrapeguard.execution.recovery import RecoveryActionExecutor, Sleeper
from scrapeguard.execution.timeout import Operation, run_attempt

if TYPE_CHECKING:
    from scrapeguard.core.settings import RetrySettings

logger = get_logger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[int, Any, BaseException | None], Any]


class RetryCoordinator:
    """Orchestrates breaker, classifier, backoff, recovery and journal.

    One coordinator is meant to be shared by many concurrent calls; breaker
    and journal state are synchronised, and every call waits independently.

    Parameters
    ----------
    config : RetryConfiguration
        Immutable policy (defaults to the built-in policy).
    classifier : ErrorClassifier
        Failure classifier; substitute to change the retry policy.
    clock : callable
        UTC clock for breaker cooldowns and journal timestamps.
    sleep : callable
        Async sleep taking seconds (tests inject a recorder).
    rng : random.Random
        Jitter source.
    """

    def __init__(
        self,
        config: RetryConfiguration | None = None,
        *,
        classifier: ErrorClassifier | None = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Sleeper = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or RetryConfiguration()
        self.classifier = classifier or ErrorClassifier()
        self.breakers = CircuitBreakerRegistry(
            failure_threshold=self.config.circuit_breaker_threshold,
            cooldown_ms=self.config.breaker_cooldown_ms,
            clock=clock,
        )
        self.journal = AttemptJournal(self.config.journal_capacity)
        self.collector = MetricsCollector(self.journal, self.breakers)
        self.delays = DelayCalculator(self.config, self.journal, self.breakers, rng=rng)
        self.recovery = RecoveryActionExecutor(sleep=sleep)
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: RetrySettings | None = None, **kwargs: Any) -> RetryCoordinator:
        """Build a coordinator from environment-driven settings."""
        from scrapeguard.core.settings import RetrySettings

        settings = settings or RetrySettings()
        return cls(settings.to_configuration(), **kwargs)

    # ── Execution ────────────────────────────────────────────────────

    async def execute_with_retry(
        self,
        operation: Operation[T],
        context: OperationContext,
        on_progress: ProgressCallback | None = None,
    ) -> RetryOutcome[T]:
        """Run ``operation`` with retries and return the final outcome.

        Args:
            operation: Zero-argument callable returning an awaitable
            context: Destination, strategy and kind of the operation
            on_progress: Optional ``(attempt, result, error)`` callback,
                called after every attempt; may be sync or async

        Returns:
            RetryOutcome with a metrics snapshot taken at return
        """
        key = context.destination_key

        async with LogContext(destination=key, strategy=context.strategy):
            if not self.breakers.admit(key):
                retry_at = self.breakers.next_attempt_time(key)
                logger.warning("retry.rejected", retry_at=retry_at.isoformat() if retry_at else None)
                return RetryOutcome(
                    success=False,
                    error=CircuitOpenError(key, retry_at),
                    metrics=self.metrics(),
                    rejected=True,
                )

            logger.info(
                "retry.start",
                operation_kind=context.operation_kind.value,
                max_attempts=self.config.max_attempts,
            )

            last_error: BaseException | None = None
            classification: ErrorClassification | None = None
            actions: list[str] = []
            total_delay_ms = 0
            attempt = 0

            for attempt in range(1, self.config.max_attempts + 1):
                started = time.monotonic()
                try:
                    result = await run_attempt(operation, self.config.attempt_timeout_ms)
                except Exception as e:
                    elapsed_ms = int((time.monotonic() - started) * 1000)
                    last_error = e
                    classification = self.classifier.classify_exception(e)
                    self._record_failure(context, attempt, e, classification, total_delay_ms, elapsed_ms)

                    logger.warning(
                        "retry.attempt_failed",
                        attempt=attempt,
                        error=error_text(e),
                        category=classification.category.value,
                        retryable=classification.is_retryable,
                    )

                    if not classification.is_retryable or attempt >= self.config.max_attempts:
                        break

                    delay_ms = self.delays.delay_ms(attempt, classification, key)
                    total_delay_ms += delay_ms
                    logger.info("retry.waiting", delay_ms=delay_ms, category=classification.category.value)

                    actions.extend(await self.recovery.run(context, classification))
                    await self._sleep(delay_ms / 1000)
                    await self._notify(on_progress, attempt, None, e)
                    continue

                elapsed_ms = int((time.monotonic() - started) * 1000)
                self._record_success(context, attempt, total_delay_ms, elapsed_ms)
                logger.info("retry.succeeded", attempt=attempt, elapsed_ms=elapsed_ms)
                await self._notify(on_progress, attempt, result, None)
                return RetryOutcome(
                    success=True,
                    result=result,
                    metrics=self.metrics(),
                    attempts=attempt,
                    classification=classification,
                    recovery_actions=actions,
                )

            logger.error("retry.exhausted", attempts=attempt, error=str(last_error))
            actions.extend(await self.recovery.run_emergency(context, classification))
            return RetryOutcome(
                success=False,
                error=last_error,
                metrics=self.metrics(),
                attempts=attempt,
                classification=classification,
                recovery_actions=actions,
            )

    def _record_success(
        self, context: OperationContext, attempt: int, total_delay_ms: int, elapsed_ms: int
    ) -> None:
        self.collector.record_success(
            AttemptRecord(
                timestamp=self._clock(),
                attempt=attempt,
                destination_key=context.destination_key,
                strategy=context.strategy,
                operation_kind=context.operation_kind,
                success=True,
                elapsed_ms=elapsed_ms,
                cumulative_delay_ms=total_delay_ms,
            )
        )
        self.breakers.record_success(context.destination_key)

    def _record_failure(
        self,
        context: OperationContext,
        attempt: int,
        error: BaseException,
        classification: ErrorClassification,
        total_delay_ms: int,
        elapsed_ms: int,
    ) -> None:
        self.collector.record_failure(
            AttemptRecord(
                timestamp=self._clock(),
                attempt=attempt,
                destination_key=context.destination_key,
                strategy=context.strategy,
                operation_kind=context.operation_kind,
                success=False,
                elapsed_ms=elapsed_ms,
                cumulative_delay_ms=total_delay_ms,
                error=error_text(error),
                error_category=classification.category.value,
            )
        )
        self.breakers.record_failure(context.destination_key)

    async def _notify(
        self,
        on_progress: ProgressCallback | None,
        attempt: int,
        result: Any,
        error: BaseException | None,
    ) -> None:
        if on_progress is None:
            return
        try:
            returned = on_progress(attempt, result, error)
            if inspect.isawaitable(returned):
                await returned
        except Exception as e:
            logger.warning("retry.progress_callback_failed", attempt=attempt, error=str(e))

    # ── Introspection ────────────────────────────────────────────────

    def metrics(self) -> AggregateMetrics:
        """Current aggregate metrics."""
        return self.collector.snapshot()

    def recent_attempts(self, limit: int = 50) -> list[AttemptRecord]:
        """Most recent journal entries, oldest first."""
        return self.journal.recent(limit)

    def circuit_breaker_status(self) -> dict[str, CircuitBreakerState]:
        """Breaker snapshot per destination."""
        return self.breakers.snapshot()

    def recommendations(self) -> list[str]:
        return self.collector.recommendations()

    def reset(self) -> None:
        """Clear breakers, journal and every counter."""
        self.breakers.reset()
        self.collector.reset()
        logger.info("retry.reset")


__all__ = ["RetryCoordinator", "ProgressCallback"]
