"""Tests for RetryCoordinator.

Time is faked throughout: the ``sleeper`` fixture records every requested
wait and returns immediately, the ``clock`` fixture drives breaker cooldowns.
"""

import asyncio

import pytest

from scrapeguard.core.errors import AttemptTimeoutError, CircuitOpenError
from scrapeguard.core.settings import RetrySettings
from scrapeguard.execution.circuit_breaker import CircuitState
from scrapeguard.execution.coordinator import RetryCoordinator
from scrapeguard.execution.models import OperationContext, OperationKind
from scrapeguard.execution.recovery import EMERGENCY_ACTIONS, SWITCH_STRATEGY, WAIT_FOR_SERVER


class TestSuccessPath:
    """Operations that eventually succeed."""

    @pytest.mark.asyncio
    async def test_first_attempt_success(self, make_coordinator, context, flaky, sleeper):
        coordinator = make_coordinator()
        operation = flaky(0)

        outcome = await coordinator.execute_with_retry(operation, context)

        assert outcome.success is True
        assert outcome.result == "ok-1"
        assert outcome.error is None
        assert outcome.attempts == 1
        assert outcome.rejected is False
        assert outcome.metrics.total_attempts == 1
        assert outcome.metrics.recovery_successes == 0
        assert sleeper.calls == []

    @pytest.mark.asyncio
    async def test_success_on_second_attempt_counts_recovery(self, make_coordinator, context, flaky):
        coordinator = make_coordinator()

        outcome = await coordinator.execute_with_retry(flaky(1), context)

        assert outcome.success is True
        assert outcome.result == "ok-2"
        assert outcome.attempts == 2
        assert outcome.metrics.recovery_successes == 1
        assert outcome.metrics.successful_attempts == 1
        assert outcome.metrics.failed_attempts == 1

    @pytest.mark.asyncio
    async def test_server_errors_wait_and_back_off(self, make_coordinator, context, flaky, sleeper):
        """503 waits for server recovery (5s) then backs off 5s, 10s."""
        coordinator = make_coordinator()

        outcome = await coordinator.execute_with_retry(flaky(2), context)

        assert outcome.success is True
        assert outcome.attempts == 3
        assert outcome.recovery_actions == [WAIT_FOR_SERVER, WAIT_FOR_SERVER]
        assert sleeper.calls == [5.0, 5.0, 5.0, 10.0]

    @pytest.mark.asyncio
    async def test_journal_records_cumulative_delay(self, make_coordinator, context, flaky):
        coordinator = make_coordinator()

        await coordinator.execute_with_retry(flaky(2), context)

        records = coordinator.recent_attempts()
        assert [r.success for r in records] == [False, False, True]
        assert [r.attempt for r in records] == [1, 2, 3]
        assert [r.cumulative_delay_ms for r in records] == [0, 5000, 15000]
        assert records[0].error == "503 Service Unavailable"
        assert records[0].error_category == "server_overload"
        assert records[2].error_category == "none"
        assert coordinator.metrics().average_delay_ms == pytest.approx(20000 / 3)

    @pytest.mark.asyncio
    async def test_result_returned_unchanged(self, make_coordinator, context):
        coordinator = make_coordinator()

        async def fetch():
            return {"status": 200}

        outcome = await coordinator.execute_with_retry(fetch, context)

        assert outcome.result == {"status": 200}


class TestFailurePath:
    """Operations that never succeed."""

    @pytest.mark.asyncio
    async def test_exhaustion_journals_every_attempt(self, make_coordinator, context, flaky):
        coordinator = make_coordinator(max_attempts=3)
        operation = flaky(10)

        outcome = await coordinator.execute_with_retry(operation, context)

        assert outcome.success is False
        assert operation.calls == 3
        assert outcome.attempts == 3
        assert str(outcome.error) == "503 Service Unavailable"
        assert len(coordinator.recent_attempts()) == 3
        assert all(not r.success for r in coordinator.recent_attempts())
        assert outcome.metrics.error_categories == {"server_overload": 3}
        assert outcome.metrics.strategy_success_rates == {"static_html": 0.0}

    @pytest.mark.asyncio
    async def test_exhaustion_runs_emergency_recovery(self, make_coordinator, context, flaky, sleeper):
        coordinator = make_coordinator(max_attempts=3)

        outcome = await coordinator.execute_with_retry(flaky(10), context)

        assert outcome.recovery_actions == [WAIT_FOR_SERVER, WAIT_FOR_SERVER, *EMERGENCY_ACTIONS]
        # recovery 5s + backoff 5s, recovery 5s + backoff 10s, emergency 5s
        assert sleeper.calls == [5.0, 5.0, 5.0, 10.0, 5.0]

    @pytest.mark.asyncio
    async def test_authentication_failure_is_not_retried(self, make_coordinator, context, flaky):
        coordinator = make_coordinator(max_attempts=5)
        operation = flaky(10, error="401 Unauthorized")

        outcome = await coordinator.execute_with_retry(operation, context)

        assert outcome.success is False
        assert operation.calls == 1
        assert outcome.attempts == 1
        assert outcome.classification.is_retryable is False
        assert outcome.recovery_actions == list(EMERGENCY_ACTIONS)
        assert len(coordinator.recent_attempts()) == 1

    @pytest.mark.asyncio
    async def test_not_found_is_not_retried(self, make_coordinator, context, flaky):
        coordinator = make_coordinator()
        operation = flaky(10, error="404 Not Found")

        outcome = await coordinator.execute_with_retry(operation, context)

        assert operation.calls == 1
        assert outcome.metrics.error_categories == {"permanent": 1}

    @pytest.mark.asyncio
    async def test_single_attempt_configuration(self, make_coordinator, context, flaky, sleeper):
        coordinator = make_coordinator(max_attempts=1)

        outcome = await coordinator.execute_with_retry(flaky(10), context)

        assert outcome.attempts == 1
        # only the emergency pause, no backoff
        assert sleeper.calls == [5.0]

    @pytest.mark.asyncio
    async def test_unknown_failure_suggests_strategy_switch(self, make_coordinator, context, flaky):
        coordinator = make_coordinator(max_attempts=2)

        outcome = await coordinator.execute_with_retry(flaky(1, error="parser exploded"), context)

        assert outcome.success is True
        assert outcome.recovery_actions == [SWITCH_STRATEGY]

    @pytest.mark.asyncio
    async def test_very_long_retry_run_returns_outcome(self, make_coordinator, context, flaky, sleeper):
        """Backoff growth past float range is clamped, never raised."""
        coordinator = make_coordinator(max_attempts=1100, circuit_breaker_threshold=100_000)
        operation = flaky(10_000)

        outcome = await coordinator.execute_with_retry(operation, context)

        assert outcome.success is False
        assert outcome.attempts == 1100
        assert operation.calls == 1100
        assert max(sleeper.calls) == 30.0

    @pytest.mark.asyncio
    async def test_attempt_timeout(self, make_coordinator, context):
        coordinator = make_coordinator(max_attempts=2, attempt_timeout_ms=20)

        async def hang():
            await asyncio.sleep(5)

        outcome = await coordinator.execute_with_retry(hang, context)

        assert outcome.success is False
        assert isinstance(outcome.error, AttemptTimeoutError)
        assert outcome.error.timeout_ms == 20
        assert outcome.attempts == 2
        assert coordinator.metrics().error_categories == {"temporary": 2}


class TestCircuitBreaking:
    """Admission control through the per-destination breaker."""

    @pytest.mark.asyncio
    async def test_open_breaker_rejects_without_invoking(self, make_coordinator, context, flaky):
        coordinator = make_coordinator(max_attempts=2, circuit_breaker_threshold=2)
        await coordinator.execute_with_retry(flaky(10), context)
        assert coordinator.circuit_breaker_status()["example.com"].state == CircuitState.OPEN

        operation = flaky(0)
        outcome = await coordinator.execute_with_retry(operation, context)

        assert outcome.success is False
        assert outcome.rejected is True
        assert outcome.attempts == 0
        assert operation.calls == 0
        assert isinstance(outcome.error, CircuitOpenError)
        assert str(outcome.error) == "Circuit breaker is open for example.com"
        assert outcome.error.retry_at is not None
        assert len(coordinator.recent_attempts()) == 2
        assert outcome.metrics.circuit_breaker_trips == 1

    @pytest.mark.asyncio
    async def test_other_destinations_unaffected(self, make_coordinator, context, flaky):
        coordinator = make_coordinator(max_attempts=2, circuit_breaker_threshold=2)
        await coordinator.execute_with_retry(flaky(10), context)

        other = OperationContext("other.example", "static_html")
        outcome = await coordinator.execute_with_retry(flaky(0), other)

        assert outcome.success is True

    @pytest.mark.asyncio
    async def test_cooldown_then_half_open_then_closed(self, make_coordinator, context, flaky, clock):
        coordinator = make_coordinator(max_attempts=2, circuit_breaker_threshold=2)
        await coordinator.execute_with_retry(flaky(10), context)

        clock.advance(seconds=59)
        assert (await coordinator.execute_with_retry(flaky(0), context)).rejected is True

        clock.advance(seconds=1)
        outcome = await coordinator.execute_with_retry(flaky(0), context)
        assert outcome.success is True
        assert coordinator.circuit_breaker_status()["example.com"].state == CircuitState.HALF_OPEN

        await coordinator.execute_with_retry(flaky(0), context)
        status = coordinator.circuit_breaker_status()["example.com"]
        assert status.state == CircuitState.CLOSED
        assert status.failure_count == 0

    @pytest.mark.asyncio
    async def test_open_breaker_stretches_delay(self, make_coordinator, context, flaky, sleeper):
        """Once the breaker trips mid-call, backoff uses the 5x multiplier."""
        coordinator = make_coordinator(max_attempts=3, circuit_breaker_threshold=1, max_delay_ms=60_000)

        await coordinator.execute_with_retry(flaky(1), context)

        # recovery pause 5s, then 5000 * 5
        assert sleeper.calls == [5.0, 25.0]


class TestProgressCallback:
    """The optional on_progress hook."""

    @pytest.mark.asyncio
    async def test_called_after_retryable_failure_and_success(self, make_coordinator, context, flaky):
        coordinator = make_coordinator()
        events = []

        await coordinator.execute_with_retry(
            flaky(1), context, on_progress=lambda attempt, result, error: events.append((attempt, result, error))
        )

        assert len(events) == 2
        assert events[0][0] == 1
        assert events[0][1] is None
        assert str(events[0][2]) == "503 Service Unavailable"
        assert events[1] == (2, "ok-2", None)

    @pytest.mark.asyncio
    async def test_async_callback_awaited(self, make_coordinator, context, flaky):
        coordinator = make_coordinator()
        seen = []

        async def on_progress(attempt, result, error):
            seen.append(attempt)

        await coordinator.execute_with_retry(flaky(1), context, on_progress=on_progress)

        assert seen == [1, 2]

    @pytest.mark.asyncio
    async def test_not_called_after_final_failure(self, make_coordinator, context, flaky):
        coordinator = make_coordinator(max_attempts=2)
        seen = []

        await coordinator.execute_with_retry(
            flaky(10), context, on_progress=lambda attempt, result, error: seen.append(attempt)
        )

        assert seen == [1]

    @pytest.mark.asyncio
    async def test_callback_errors_are_suppressed(self, make_coordinator, context, flaky):
        coordinator = make_coordinator()

        def explode(attempt, result, error):
            raise RuntimeError("callback broke")

        outcome = await coordinator.execute_with_retry(flaky(1), context, on_progress=explode)

        assert outcome.success is True
        assert outcome.result == "ok-2"


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_call_stops_retrying(self, make_coordinator, context):
        coordinator = make_coordinator(max_attempts=5)
        calls = 0
        started = asyncio.Event()

        async def hang():
            nonlocal calls
            calls += 1
            started.set()
            await asyncio.sleep(60)

        task = asyncio.create_task(coordinator.execute_with_retry(hang, context))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert calls == 1
        assert coordinator.recent_attempts() == []


class TestIntrospection:
    @pytest.mark.asyncio
    async def test_recommendations(self, make_coordinator, context, flaky):
        coordinator = make_coordinator(max_attempts=6)

        await coordinator.execute_with_retry(flaky(10), context)

        assert coordinator.recommendations() == [
            "Address frequent server_overload errors - consider implementing specific recovery strategy",
            "Consider disabling underperforming strategies: static_html",
        ]

    @pytest.mark.asyncio
    async def test_no_recommendations_when_healthy(self, make_coordinator, context, flaky):
        coordinator = make_coordinator()

        await coordinator.execute_with_retry(flaky(0), context)

        assert coordinator.recommendations() == []

    @pytest.mark.asyncio
    async def test_recent_attempts_limit(self, make_coordinator, context, flaky):
        coordinator = make_coordinator(max_attempts=3)
        await coordinator.execute_with_retry(flaky(10), context)

        assert [r.attempt for r in coordinator.recent_attempts(2)] == [2, 3]
        assert coordinator.recent_attempts(0) == []

    @pytest.mark.asyncio
    async def test_records_carry_operation_kind(self, make_coordinator, flaky):
        coordinator = make_coordinator()
        context = OperationContext.for_url("https://Shop.Example.com/items", "api", OperationKind.EXTRACT)

        await coordinator.execute_with_retry(flaky(0), context)

        record = coordinator.recent_attempts()[0]
        assert record.destination_key == "shop.example.com"
        assert record.operation_kind == OperationKind.EXTRACT

    @pytest.mark.asyncio
    async def test_reset_clears_everything(self, make_coordinator, context, flaky):
        coordinator = make_coordinator(max_attempts=2, circuit_breaker_threshold=2)
        await coordinator.execute_with_retry(flaky(10), context)

        coordinator.reset()

        metrics = coordinator.metrics()
        assert metrics.total_attempts == 0
        assert metrics.failed_attempts == 0
        assert metrics.error_categories == {}
        assert metrics.strategy_success_rates == {}
        assert metrics.circuit_breaker_trips == 0
        assert coordinator.recent_attempts() == []
        assert coordinator.circuit_breaker_status() == {}
        assert (await coordinator.execute_with_retry(flaky(0), context)).success is True


class TestConstruction:
    def test_defaults(self):
        coordinator = RetryCoordinator()

        assert coordinator.config.max_attempts == 3
        assert coordinator.journal.capacity == 1000
        assert coordinator.breakers.failure_threshold == 5

    def test_from_settings(self):
        settings = RetrySettings(max_attempts=7, circuit_breaker_threshold=2, journal_capacity=10)

        coordinator = RetryCoordinator.from_settings(settings)

        assert coordinator.config.max_attempts == 7
        assert coordinator.breakers.failure_threshold == 2
        assert coordinator.journal.capacity == 10

    @pytest.mark.asyncio
    async def test_records_use_injected_clock(self, make_coordinator, context, flaky, clock):
        coordinator = make_coordinator()

        await coordinator.execute_with_retry(flaky(0), context)

        assert coordinator.recent_attempts()[0].timestamp == clock.now
