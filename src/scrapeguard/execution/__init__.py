"""scrapeguard execution -- the retry/recovery engine.

ARCHITECTURE
────────────
::

    RetryCoordinator.execute_with_retry(operation, context, on_progress)
      ├── CircuitBreakerRegistry ─ per-destination admission gate
      ├── run_attempt            ─ operation raced against its deadline
      ├── ErrorClassifier        ─ error text → ErrorClassification
      ├── DelayCalculator        ─ exponential × destination history × jitter
      ├── RecoveryActionExecutor ─ pauses and emitted intents
      └── MetricsCollector       ─ counters + bounded AttemptJournal

MODULE MAP (recommended reading order)
──────────────────────────────────────
  1. models.py           ─ RetryConfiguration, ErrorClassification, records
  2. classifier.py       ─ ordered first-match rule table
  3. circuit_breaker.py  ─ CircuitBreaker + keyed registry
  4. journal.py          ─ AttemptJournal, MetricsCollector
  5. backoff.py          ─ DelayCalculator
  6. recovery.py         ─ RecoveryActionExecutor
  7. timeout.py          ─ run_attempt
  8. coordinator.py      ─ RetryCoordinator (THE public API)
"""

from .backoff import DelayCalculator
from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitBreakerState,
    CircuitState,
)
from .classifier import (
    ErrorClassifier,
    classify_error,
    classify_exception,
)
from .coordinator import RetryCoordinator
from .journal import AttemptJournal, MetricsCollector
from .models import (
    AggregateMetrics,
    AttemptRecord,
    ErrorClassification,
    OperationContext,
    OperationKind,
    RetryConfiguration,
    RetryOutcome,
)
from .recovery import RecoveryActionExecutor
from .timeout import run_attempt

__all__ = [
    "AggregateMetrics",
    "AttemptJournal",
    "AttemptRecord",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitBreakerState",
    "CircuitState",
    "DelayCalculator",
    "ErrorClassification",
    "ErrorClassifier",
    "MetricsCollector",
    "OperationContext",
    "OperationKind",
    "RecoveryActionExecutor",
    "RetryConfiguration",
    "RetryCoordinator",
    "RetryOutcome",
    "classify_error",
    "classify_exception",
    "run_attempt",
]
