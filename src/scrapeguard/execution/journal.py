"""Attempt journal and aggregate metrics.

The journal is an append-only, bounded history of attempts (the most
recent 1000 by default, oldest evicted first).  MetricsCollector keeps the
running counters next to it and derives everything else (average delay,
per-strategy success rates, per-destination failure windows) by scanning
the retained records, so derived values always agree with what
``recent()`` returns.

ARCHITECTURE
────────────
::

    RetryCoordinator
      ├── MetricsCollector.record_success / record_failure
      │     ├── counters (attempts, categories, recoveries)
      │     └── AttemptJournal.append  ─ deque(maxlen=capacity)
      ├── MetricsCollector.snapshot()   ─ AggregateMetrics
      └── MetricsCollector.recommendations()
"""

from __future__ import annotations

import threading
from collections import Counter, deque

from scrapeguard.core.logging import get_logger
from scrapeguard.execution.circuit_breaker import CircuitBreakerRegistry
from scrapeguard.execution.models import JOURNAL_CAPACITY, AggregateMetrics, AttemptRecord

logger = get_logger(__name__)

FREQUENT_CATEGORY_THRESHOLD = 5
UNDERPERFORMING_RATE = 0.3
TRIP_WARNING_THRESHOLD = 3
FAILURE_WINDOW = 10


class AttemptJournal:
    """Bounded, thread-safe attempt log."""

    def __init__(self, capacity: int = JOURNAL_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._records: deque[AttemptRecord] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, record: AttemptRecord) -> None:
        with self._lock:
            self._records.append(record)

    def recent(self, limit: int = 50) -> list[AttemptRecord]:
        """Most recent ``limit`` records, oldest first."""
        if limit <= 0:
            return []
        with self._lock:
            records = list(self._records)
        return records[-limit:]

    def recent_for(self, destination_key: str, limit: int = FAILURE_WINDOW) -> list[AttemptRecord]:
        """Most recent ``limit`` records for one destination, oldest first."""
        with self._lock:
            matching = [r for r in self._records if r.destination_key == destination_key]
        return matching[-limit:] if limit > 0 else []

    def failure_rate(self, destination_key: str, window: int = FAILURE_WINDOW) -> tuple[float, int]:
        """Failure fraction over the last ``window`` records for a destination.

        Returns:
            (rate, sample_size); rate is 0.0 when there are no samples
        """
        records = self.recent_for(destination_key, window)
        if not records:
            return 0.0, 0
        failures = sum(1 for r in records if not r.success)
        return failures / len(records), len(records)

    def all(self) -> list[AttemptRecord]:
        with self._lock:
            return list(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class MetricsCollector:
    """Running counters plus journal-derived aggregates."""

    def __init__(self, journal: AttemptJournal, breakers: CircuitBreakerRegistry):
        self.journal = journal
        self.breakers = breakers
        self._lock = threading.RLock()
        self._reset_counters()

    def _reset_counters(self) -> None:
        self._total = 0
        self._successful = 0
        self._failed = 0
        self._categories: Counter[str] = Counter()
        self._recoveries = 0

    def record_success(self, record: AttemptRecord) -> None:
        """Append a successful attempt; attempts after the first count as recoveries."""
        with self._lock:
            self.journal.append(record)
            self._total += 1
            self._successful += 1
            if record.attempt > 1:
                self._recoveries += 1

    def record_failure(self, record: AttemptRecord) -> None:
        with self._lock:
            self.journal.append(record)
            self._total += 1
            self._failed += 1
            self._categories[record.error_category] += 1

    def strategy_success_rates(self) -> dict[str, float]:
        """Successes / attempts per strategy over the retained journal."""
        attempts: Counter[str] = Counter()
        successes: Counter[str] = Counter()
        for record in self.journal.all():
            attempts[record.strategy] += 1
            if record.success:
                successes[record.strategy] += 1
        return {strategy: successes[strategy] / count for strategy, count in attempts.items()}

    def snapshot(self) -> AggregateMetrics:
        """Consistent copy of every aggregate."""
        with self._lock:
            records = self.journal.all()
            average = (
                sum(r.cumulative_delay_ms for r in records) / len(records) if records else 0.0
            )
            return AggregateMetrics(
                total_attempts=self._total,
                successful_attempts=self._successful,
                failed_attempts=self._failed,
                average_delay_ms=average,
                error_categories=dict(self._categories),
                strategy_success_rates=self.strategy_success_rates(),
                circuit_breaker_trips=self.breakers.trip_count,
                recovery_successes=self._recoveries,
            )

    def recommendations(self) -> list[str]:
        """Human-readable advice derived from the current aggregates."""
        metrics = self.snapshot()
        recommendations: list[str] = []

        if metrics.error_categories:
            # on a tie the category that first appeared later wins
            category, count = None, 0
            for name, seen in metrics.error_categories.items():
                if seen >= count:
                    category, count = name, seen
            if count > FREQUENT_CATEGORY_THRESHOLD:
                recommendations.append(
                    f"Address frequent {category} errors - consider implementing specific recovery strategy"
                )

        underperforming = [
            strategy
            for strategy, rate in metrics.strategy_success_rates.items()
            if rate < UNDERPERFORMING_RATE
        ]
        if underperforming:
            recommendations.append(
                f"Consider disabling underperforming strategies: {', '.join(underperforming)}"
            )

        if metrics.circuit_breaker_trips > TRIP_WARNING_THRESHOLD:
            recommendations.append(
                "High circuit breaker trips - consider implementing more conservative retry policies"
            )

        return recommendations

    def reset(self) -> None:
        """Clear the journal and all counters."""
        with self._lock:
            self.journal.clear()
            self._reset_counters()
        logger.info("metrics.reset")


__all__ = [
    "AttemptJournal",
    "MetricsCollector",
    "FREQUENT_CATEGORY_THRESHOLD",
    "UNDERPERFORMING_RATE",
    "TRIP_WARNING_THRESHOLD",
    "FAILURE_WINDOW",
]
