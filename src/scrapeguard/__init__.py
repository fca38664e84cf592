"""
scrapeguard - retry, circuit breaking and failure telemetry for fetch/scrape operations.

Wrap any fallible async operation and get back an outcome instead of an
exception, with per-destination circuit breakers and a bounded attempt
journal behind it.

Example::

    from scrapeguard import OperationContext, RetryCoordinator

    coordinator = RetryCoordinator()
    outcome = await coordinator.execute_with_retry(
        lambda: client.get(url),
        OperationContext.for_url(url, strategy="static_html"),
    )
"""

__version__ = "0.1.0"

from scrapeguard.core.errors import (
    AttemptTimeoutError,
    CircuitOpenError,
    ErrorCategory,
    ScrapeGuardError,
    Severity,
)
from scrapeguard.execution import (
    AggregateMetrics,
    AttemptRecord,
    CircuitBreakerState,
    CircuitState,
    ErrorClassification,
    OperationContext,
    OperationKind,
    RetryConfiguration,
    RetryCoordinator,
    RetryOutcome,
    classify_error,
)

__all__ = [
    "__version__",
    "AggregateMetrics",
    "AttemptRecord",
    "AttemptTimeoutError",
    "CircuitBreakerState",
    "CircuitOpenError",
    "CircuitState",
    "ErrorCategory",
    "ErrorClassification",
    "OperationContext",
    "OperationKind",
    "RetryConfiguration",
    "RetryCoordinator",
    "RetryOutcome",
    "ScrapeGuardError",
    "Severity",
    "classify_error",
]
