"""Data model for the retry engine.

Configuration, per-failure classifications, journal records, metric
snapshots and the outcome returned to callers.  Everything handed out to
collaborators is immutable; the mutable state lives in the breaker
registry and the journal.

All delays and timeouts are in milliseconds.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Generic, TypeVar
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, model_validator

from scrapeguard.core.errors import ErrorCategory, InvalidConfigError, Severity

T = TypeVar("T")

JOURNAL_CAPACITY = 1000
BREAKER_COOLDOWN_MS = 60_000


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class OperationKind(str, Enum):
    """What the wrapped operation does. Carried for telemetry only."""

    FETCH = "fetch"
    SCRAPE = "scrape"
    EXTRACT = "extract"


class RetryConfiguration(BaseModel):
    """Immutable retry policy supplied when a coordinator is built."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: int = Field(default=3, ge=1, description="Attempts per call, including the first")
    base_delay_ms: int = Field(default=1000, ge=0, description="Fallback base when a classification suggests no delay")
    max_delay_ms: int = Field(default=30_000, ge=1000, description="Upper clamp for computed delays, at least one second")
    backoff_multiplier: float = Field(default=2.0, gt=1.0, description="Exponential growth per attempt")
    jitter: bool = Field(default=True, description="Scale delays by 1 +/- 5%")
    circuit_breaker_threshold: int = Field(default=5, ge=1, description="Failures before a breaker opens")
    attempt_timeout_ms: int = Field(default=10_000, gt=0, description="Per-attempt deadline")
    breaker_cooldown_ms: int = Field(default=BREAKER_COOLDOWN_MS, ge=0, description="How long an open breaker rejects")
    journal_capacity: int = Field(default=JOURNAL_CAPACITY, ge=1, description="Attempt records retained")

    @model_validator(mode="after")
    def validate_delay_bounds(self) -> RetryConfiguration:
        """Ensure base_delay_ms <= max_delay_ms."""
        if self.base_delay_ms > self.max_delay_ms:
            raise InvalidConfigError(
                "base_delay_ms",
                self.base_delay_ms,
                f"base_delay_ms ({self.base_delay_ms}) must not exceed max_delay_ms ({self.max_delay_ms})",
            )
        return self


@dataclass(frozen=True)
class ErrorClassification:
    """Structured verdict on a single failure."""

    is_retryable: bool
    category: ErrorCategory
    severity: Severity
    suggested_delay_ms: int
    recovery_actions: tuple[str, ...] = ()
    can_switch_strategy: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_retryable": self.is_retryable,
            "category": self.category.value,
            "severity": self.severity.value,
            "suggested_delay_ms": self.suggested_delay_ms,
            "recovery_actions": list(self.recovery_actions),
            "can_switch_strategy": self.can_switch_strategy,
        }


@dataclass(frozen=True)
class OperationContext:
    """Who an operation talks to and how.

    Attributes:
        destination_key: Normalized destination (usually a hostname); scopes
            breaker state and delay multipliers
        strategy: Label of the strategy the caller is using
        operation_kind: fetch / scrape / extract, telemetry only
    """

    destination_key: str
    strategy: str = "default"
    operation_kind: OperationKind = OperationKind.FETCH

    @classmethod
    def for_url(
        cls,
        url: str,
        strategy: str = "default",
        operation_kind: OperationKind = OperationKind.FETCH,
    ) -> OperationContext:
        """Build a context keyed on the URL's hostname.

        Raises:
            ValueError: If the URL has no hostname
        """
        hostname = urlsplit(url).hostname
        if not hostname:
            raise ValueError(f"Cannot derive destination key from URL: {url!r}")
        return cls(destination_key=hostname.lower(), strategy=strategy, operation_kind=operation_kind)


@dataclass(frozen=True)
class AttemptRecord:
    """One journal entry. Never mutated after insertion."""

    timestamp: datetime
    attempt: int
    destination_key: str
    strategy: str
    success: bool
    elapsed_ms: int
    cumulative_delay_ms: int = 0
    error: str = ""
    error_category: str = "none"
    operation_kind: OperationKind = OperationKind.FETCH

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["operation_kind"] = self.operation_kind.value
        return data


@dataclass(frozen=True)
class AggregateMetrics:
    """Consistent snapshot of the engine's aggregate counters."""

    total_attempts: int = 0
    successful_attempts: int = 0
    failed_attempts: int = 0
    average_delay_ms: float = 0.0
    error_categories: dict[str, int] = field(default_factory=dict)
    strategy_success_rates: dict[str, float] = field(default_factory=dict)
    circuit_breaker_trips: int = 0
    recovery_successes: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RetryOutcome(Generic[T]):
    """Final result of one ``execute_with_retry`` call.

    Attributes:
        success: Whether some attempt succeeded
        result: Value returned by the successful attempt
        error: Last error when unsuccessful
        metrics: Snapshot taken at the moment of return
        attempts: Attempts actually dispatched (0 when rejected)
        classification: Classification of the last failure, if any
        recovery_actions: Remediation labels emitted during the call, in order
        rejected: True when the circuit breaker refused admission
    """

    success: bool
    metrics: AggregateMetrics
    result: T | None = None
    error: BaseException | None = None
    attempts: int = 0
    classification: ErrorClassification | None = None
    recovery_actions: list[str] = field(default_factory=list)
    rejected: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Serialise for logging / API responses (result excluded)."""
        return {
            "success": self.success,
            "error": str(self.error) if self.error is not None else None,
            "attempts": self.attempts,
            "classification": self.classification.to_dict() if self.classification else None,
            "recovery_actions": list(self.recovery_actions),
            "rejected": self.rejected,
            "metrics": self.metrics.to_dict(),
        }
