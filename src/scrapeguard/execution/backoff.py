"""Adaptive backoff delays.

Delay = clamp(base * multiplier ** (attempt - 1) * domain_multiplier * jitter,
              1000, max_delay_ms)

- ``base`` is the classification's suggested delay, or the configured base
  delay when the classification suggests none.
- ``domain_multiplier`` biases delays upward for destinations that keep
  failing: 5x while the destination's breaker is open, otherwise 3x / 2x
  when more than 70% / 40% of its last 10 journal entries failed (needs at
  least 3 entries), else 1x.
- ``jitter`` scales by 1 + U(-0.05, 0.05) when enabled.

The result is floored to whole milliseconds and is never below one second.
Growth that overflows a float is treated as unbounded and clamps to the max.

Example:
    >>> calc = DelayCalculator(RetryConfiguration(jitter=False), journal, breakers)
    >>> calc.delay_ms(2, classify_error("503 Service Unavailable"), "example.com")
    10000
"""

from __future__ import annotations

import math
import random

from scrapeguard.execution.circuit_breaker import CircuitBreakerRegistry
from scrapeguard.execution.journal import FAILURE_WINDOW, AttemptJournal
from scrapeguard.execution.models import ErrorClassification, RetryConfiguration

MIN_DELAY_MS = 1000
JITTER_RANGE = 0.05
OPEN_BREAKER_MULTIPLIER = 5.0
MIN_DOMAIN_SAMPLES = 3


class DelayCalculator:
    """Computes the wait before the next attempt."""

    def __init__(
        self,
        config: RetryConfiguration,
        journal: AttemptJournal,
        breakers: CircuitBreakerRegistry,
        rng: random.Random | None = None,
    ):
        self.config = config
        self.journal = journal
        self.breakers = breakers
        self._rng = rng or random.Random()

    def domain_multiplier(self, destination_key: str) -> float:
        """Multiplier from the destination's breaker state and recent history."""
        if self.breakers.is_open(destination_key):
            return OPEN_BREAKER_MULTIPLIER

        rate, samples = self.journal.failure_rate(destination_key, FAILURE_WINDOW)
        if samples < MIN_DOMAIN_SAMPLES:
            return 1.0
        if rate > 0.7:
            return 3.0
        if rate > 0.4:
            return 2.0
        return 1.0

    def jitter_factor(self) -> float:
        if not self.config.jitter:
            return 1.0
        return 1.0 + self._rng.uniform(-JITTER_RANGE, JITTER_RANGE)

    def delay_ms(self, attempt: int, classification: ErrorClassification, destination_key: str) -> int:
        """Delay in milliseconds after failed attempt number ``attempt`` (1-based)."""
        base = classification.suggested_delay_ms or self.config.base_delay_ms
        try:
            growth = self.config.backoff_multiplier ** (attempt - 1)
        except OverflowError:
            growth = math.inf
        # 0 * inf is nan; a zero base stays zero and is lifted by the floor
        exponential = base * growth if base else 0.0
        raw = exponential * self.domain_multiplier(destination_key) * self.jitter_factor()
        return math.floor(min(max(raw, MIN_DELAY_MS), self.config.max_delay_ms))


__all__ = ["DelayCalculator", "MIN_DELAY_MS", "JITTER_RANGE"]
