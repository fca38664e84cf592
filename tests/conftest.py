"""
Shared pytest fixtures and configuration for scrapeguard tests.

This module provides:
- A controllable UTC clock for circuit breaker cooldowns
- A recording async sleep so retries never wait on real timers
- Factories for coordinators and operations that fail a set number of times

Usage:
    Fixtures are auto-discovered by pytest. Use them as function arguments.

    @pytest.mark.asyncio
    async def test_something(make_coordinator, flaky):
        coordinator = make_coordinator(max_attempts=2)
        ...
"""

from __future__ import annotations

import random
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from scrapeguard.execution.coordinator import RetryCoordinator
from scrapeguard.execution.models import OperationContext, RetryConfiguration


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Time Fixtures
# =============================================================================


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingSleep:
    """Async sleep replacement that records requested durations (seconds)."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def total_ms(self) -> int:
        return round(sum(self.calls) * 1000)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


# =============================================================================
# Coordinator Fixtures
# =============================================================================


@pytest.fixture
def make_coordinator(clock: FakeClock, sleeper: RecordingSleep) -> Callable[..., RetryCoordinator]:
    """Build a coordinator with fake time; kwargs become RetryConfiguration fields."""

    def _make(**config: Any) -> RetryCoordinator:
        config.setdefault("jitter", False)
        return RetryCoordinator(
            RetryConfiguration(**config),
            clock=clock,
            sleep=sleeper,
            rng=random.Random(42),
        )

    return _make


@pytest.fixture
def context() -> OperationContext:
    return OperationContext(destination_key="example.com", strategy="static_html")


class Flaky:
    """Async operation that raises ``error`` for the first ``failures`` calls."""

    def __init__(self, failures: int, error: str = "503 Service Unavailable", result: Any = "ok"):
        self.failures = failures
        self.error = error
        self.result = result
        self.calls = 0

    async def __call__(self) -> Any:
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(self.error)
        return f"{self.result}-{self.calls}"


@pytest.fixture
def flaky() -> Callable[..., Flaky]:
    return Flaky
