"""Per-destination circuit breakers.

Stops dispatching attempts to a destination that keeps failing, then lets
a probe through once a cooldown has passed.

States:
    CLOSED: Normal operation, calls are admitted
    OPEN: Failing fast, calls rejected until the cooldown elapses
    HALF_OPEN: Cooldown elapsed, calls admitted while the destination proves itself

Transitions:
    admit     OPEN and now >= next_attempt_time  -> HALF_OPEN
    success   failure_count -= 1 (floor 0); HALF_OPEN and failure_count == 0 -> CLOSED
    failure   failure_count += 1; CLOSED and failure_count >= threshold -> OPEN

A failure recorded while HALF_OPEN only raises the failure count; the
breaker stays half-open until successes drain the count back to zero.

Example:
    >>> registry = CircuitBreakerRegistry(failure_threshold=5)
    >>> if registry.admit("example.com"):
    ...     try:
    ...         result = await fetch()
    ...         registry.record_success("example.com")
    ...     except Exception:
    ...         registry.record_failure("example.com")
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum

from scrapeguard.core.logging import get_logger
from scrapeguard.execution.models import BREAKER_COOLDOWN_MS, utcnow

logger = get_logger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerState:
    """Point-in-time copy of one breaker, safe to hand to collaborators."""

    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_time: datetime | None = None
    next_attempt_time: datetime | None = None


@dataclass
class CircuitBreaker:
    """Breaker for a single destination key.

    Every read-check-then-write sequence runs under the breaker's own lock.

    Attributes:
        name: Destination key this breaker guards
        failure_threshold: Failures before opening
        cooldown: How long the breaker stays open
    """

    name: str
    failure_threshold: int = 5
    cooldown: timedelta = field(default_factory=lambda: timedelta(milliseconds=BREAKER_COOLDOWN_MS))
    clock: Callable[[], datetime] = field(default=utcnow, repr=False)

    _state: CircuitBreakerState = field(default_factory=CircuitBreakerState, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    @property
    def state(self) -> CircuitState:
        """Current state, without applying any transition."""
        with self._lock:
            return self._state.state

    def snapshot(self) -> CircuitBreakerState:
        with self._lock:
            return self._state

    def admit(self) -> bool:
        """Admission check before a call.

        Returns:
            False while open and cooling down; True otherwise, moving an
            open breaker whose cooldown has elapsed to half-open
        """
        with self._lock:
            current = self._state
            if current.state != CircuitState.OPEN:
                return True

            now = self.clock()
            if current.next_attempt_time is not None and now < current.next_attempt_time:
                return False

            self._state = replace(current, state=CircuitState.HALF_OPEN)
            logger.info("circuit.half_open", destination=self.name)
            return True

    def record_success(self) -> None:
        """Record a successful call."""
        with self._lock:
            current = self._state
            failures = max(0, current.failure_count - 1)
            state = current.state
            if state == CircuitState.HALF_OPEN and failures == 0:
                state = CircuitState.CLOSED
                logger.info("circuit.closed", destination=self.name)
            self._state = replace(
                current,
                state=state,
                failure_count=failures,
                success_count=current.success_count + 1,
            )

    def record_failure(self) -> bool:
        """Record a failed call.

        Returns:
            True if this failure tripped the breaker open
        """
        with self._lock:
            current = self._state
            failures = current.failure_count + 1

            if current.state == CircuitState.CLOSED and failures >= self.failure_threshold:
                now = self.clock()
                self._state = replace(
                    current,
                    state=CircuitState.OPEN,
                    failure_count=failures,
                    last_failure_time=now,
                    next_attempt_time=now + self.cooldown,
                )
                logger.warning(
                    "circuit.opened",
                    destination=self.name,
                    failures=failures,
                    retry_at=self._state.next_attempt_time.isoformat(),
                )
                return True

            self._state = replace(current, failure_count=failures)
            return False


class CircuitBreakerRegistry:
    """Registry of breakers keyed by destination, created lazily.

    Breakers persist for the lifetime of the registry; only :meth:`reset`
    removes them.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown_ms: int = BREAKER_COOLDOWN_MS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.failure_threshold = failure_threshold
        self.cooldown = timedelta(milliseconds=cooldown_ms)
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        self._trips = 0
        self._lock = threading.RLock()

    def get_or_create(self, key: str) -> CircuitBreaker:
        """Get or create the breaker for ``key``."""
        with self._lock:
            breaker = self._breakers.get(key)
            if breaker is None:
                breaker = CircuitBreaker(
                    name=key,
                    failure_threshold=self.failure_threshold,
                    cooldown=self.cooldown,
                    clock=self._clock,
                )
                self._breakers[key] = breaker
            return breaker

    def get(self, key: str) -> CircuitBreaker | None:
        """Get a breaker by key, returns None if never referenced."""
        with self._lock:
            return self._breakers.get(key)

    def admit(self, key: str) -> bool:
        return self.get_or_create(key).admit()

    def record_success(self, key: str) -> None:
        self.get_or_create(key).record_success()

    def record_failure(self, key: str) -> bool:
        """Record a failure; counts a trip when the breaker opens."""
        tripped = self.get_or_create(key).record_failure()
        if tripped:
            with self._lock:
                self._trips += 1
        return tripped

    def state_of(self, key: str) -> CircuitBreakerState:
        """Snapshot for ``key``; a never-seen key reports a fresh closed breaker."""
        breaker = self.get(key)
        return breaker.snapshot() if breaker is not None else CircuitBreakerState()

    def is_open(self, key: str) -> bool:
        breaker = self.get(key)
        return breaker is not None and breaker.state == CircuitState.OPEN

    def next_attempt_time(self, key: str) -> datetime | None:
        breaker = self.get(key)
        return breaker.snapshot().next_attempt_time if breaker is not None else None

    def snapshot(self) -> dict[str, CircuitBreakerState]:
        """Snapshot of every known breaker."""
        with self._lock:
            breakers = list(self._breakers.items())
        return {key: breaker.snapshot() for key, breaker in breakers}

    @property
    def trip_count(self) -> int:
        with self._lock:
            return self._trips

    def list_all(self) -> list[str]:
        with self._lock:
            return list(self._breakers.keys())

    def reset(self) -> None:
        """Forget every breaker and the trip counter."""
        with self._lock:
            self._breakers.clear()
            self._trips = 0


__all__ = [
    "CircuitState",
    "CircuitBreakerState",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
]
