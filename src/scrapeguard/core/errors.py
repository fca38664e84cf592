"""
Structured error types for scrapeguard.

Failures of a wrapped operation are arbitrary exceptions; scrapeguard only
looks at their text.  The errors defined here are the ones scrapeguard
itself produces: a circuit breaker refusing admission, an attempt that ran
past its deadline, and invalid configuration.  They share a small base class
that carries a category, a retry flag and structured context so they log the
same way everywhere.

Manifesto:
    - **Categories double as policy:** The same ErrorCategory that tags a
      failure in telemetry selects the retry and remediation policy.
    - **Explicit retry semantics:** Each error knows if it's retryable.
    - **Rich context:** Errors carry the destination key and timing data.
    - **Error chaining:** Preserve original exceptions as cause.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────┐
        │                    ScrapeGuardError                       │
        │        (category, retryable, context, cause)              │
        ├──────────────────────────────────────────────────────────┤
        │  CircuitOpenError     AttemptTimeoutError    ConfigError  │
        │  (rejected at         (also builtin          │            │
        │   admission)           TimeoutError)    InvalidConfigError│
        └──────────────────────────────────────────────────────────┘

Examples:
    >>> err = CircuitOpenError("example.com")
    >>> err.retryable
    False
    >>> err.to_dict()["destination_key"]
    'example.com'

Tags:
    error-handling, exception-hierarchy, retry-logic, circuit-breaker,
    scrapeguard
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Failure categories used for both telemetry and retry policy.

    Network failures are reported under TEMPORARY by the classifier; NETWORK
    exists so callers can tag their own errors without inventing a value.
    """

    TEMPORARY = "temporary"
    PERMANENT = "permanent"
    SERVER_OVERLOAD = "server_overload"
    RATE_LIMITED = "rate_limited"
    AUTHENTICATION = "authentication"
    NETWORK = "network"


class Severity(str, Enum):
    """How loudly a failure should be reported."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ScrapeGuardError(Exception):
    """
    Base exception for errors raised by scrapeguard itself.

    Subclasses set ``default_category`` and ``default_retryable`` to give
    sensible defaults for their case.

    Attributes:
        message: Human-readable description
        category: ErrorCategory for routing and reporting
        retryable: Whether the same call may succeed later
        context: Extra key/value metadata for logging
        cause: Underlying exception, also set as ``__cause__``
    """

    default_category: ErrorCategory = ErrorCategory.TEMPORARY
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = dict(context or {})
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ScrapeGuardError:
        """Add context to this error (fluent API)."""
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.context:
            result.update(self.context)
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


class CircuitOpenError(ScrapeGuardError):
    """Raised (or returned) when a destination's breaker refuses admission.

    The operation was never invoked, so no attempt is accounted for.
    """

    default_category = ErrorCategory.SERVER_OVERLOAD
    default_retryable = False

    def __init__(self, destination_key: str, retry_at: datetime | None = None):
        self.destination_key = destination_key
        self.retry_at = retry_at
        context: dict[str, Any] = {"destination_key": destination_key}
        if retry_at is not None:
            context["retry_at"] = retry_at.isoformat()
        super().__init__(
            f"Circuit breaker is open for {destination_key}",
            context=context,
        )


class AttemptTimeoutError(ScrapeGuardError, TimeoutError):
    """An attempt did not finish within the per-attempt timeout.

    Inherits from built-in TimeoutError for broad exception handling.
    """

    default_category = ErrorCategory.TEMPORARY
    default_retryable = True

    def __init__(self, timeout_ms: int, elapsed_ms: int | None = None):
        self.timeout_ms = timeout_ms
        self.elapsed_ms = elapsed_ms
        context: dict[str, Any] = {"timeout_ms": timeout_ms}
        if elapsed_ms is not None:
            context["elapsed_ms"] = elapsed_ms
        super().__init__(f"Operation timed out after {timeout_ms}ms", context=context)


class ConfigError(ScrapeGuardError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.PERMANENT
    default_retryable = False


class InvalidConfigError(ConfigError, ValueError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(
            message or f"Invalid configuration for {key}: {value!r}",
            context={"key": key},
        )


def error_text(error: BaseException) -> str:
    """Text used to classify an exception.

    Falls back to the class name when the exception carries no message so
    that bare ``raise ConnectionResetError()`` still has something to match.
    """
    text = str(error)
    return text if text else type(error).__name__


__all__ = [
    "ErrorCategory",
    "Severity",
    "ScrapeGuardError",
    "CircuitOpenError",
    "AttemptTimeoutError",
    "ConfigError",
    "InvalidConfigError",
    "error_text",
]
