"""Error classification for retry decisions.

Maps the text of a failure onto an ErrorClassification: is it worth
retrying, how long to wait, which remediation to try.  Matching is a
case-insensitive substring test against an ordered rule table; the first
rule with a matching token wins.

Rule order matters and is part of the contract:

    1. network / connectivity   -> temporary        retry, 2s
    2. rate limiting (429)      -> rate_limited     retry, 10s, switchable
    3. server errors (5xx)      -> server_overload  retry, 5s
    4. authentication (401/403) -> authentication   no retry
    5. not found (404)          -> permanent        no retry
    6. anti-automation          -> server_overload  retry, 15s, switchable
    7. anything else            -> temporary        retry, 3s, switchable

Rule 6 lists "403" among its tokens but rule 4 always claims such texts
first, so a "403 captcha" response is treated as an authentication failure.

Example:
    >>> classify_error("HTTP 429 Too Many Requests").suggested_delay_ms
    10000
    >>> classify_error("401 Unauthorized").is_retryable
    False
"""

from __future__ import annotations

from dataclasses import dataclass

from scrapeguard.core.errors import ErrorCategory, Severity, error_text
from scrapeguard.execution.models import ErrorClassification


@dataclass(frozen=True)
class ClassificationRule:
    """A named token set and the classification it produces."""

    name: str
    tokens: tuple[str, ...]
    classification: ErrorClassification

    def matches(self, lowered: str) -> bool:
        return any(token in lowered for token in self.tokens)


RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        name="network",
        tokens=("network", "timeout", "connection reset", "econnreset", "econnrefused", "enotfound"),
        classification=ErrorClassification(
            is_retryable=True,
            category=ErrorCategory.TEMPORARY,
            severity=Severity.MEDIUM,
            suggested_delay_ms=2000,
            recovery_actions=("check network connectivity", "wait for network recovery"),
            can_switch_strategy=False,
        ),
    ),
    ClassificationRule(
        name="rate_limit",
        tokens=("429", "rate limit", "too many requests"),
        classification=ErrorClassification(
            is_retryable=True,
            category=ErrorCategory.RATE_LIMITED,
            severity=Severity.MEDIUM,
            suggested_delay_ms=10_000,
            recovery_actions=(
                "reduce request frequency",
                "implement exponential backoff",
                "rotate user agents",
            ),
            can_switch_strategy=True,
        ),
    ),
    ClassificationRule(
        name="server_error",
        tokens=("500", "502", "503", "504", "server error", "internal server error"),
        classification=ErrorClassification(
            is_retryable=True,
            category=ErrorCategory.SERVER_OVERLOAD,
            severity=Severity.HIGH,
            suggested_delay_ms=5000,
            recovery_actions=("wait for server recovery", "try different endpoint", "reduce load"),
            can_switch_strategy=False,
        ),
    ),
    ClassificationRule(
        name="authentication",
        tokens=("401", "403", "unauthorized", "forbidden"),
        classification=ErrorClassification(
            is_retryable=False,
            category=ErrorCategory.AUTHENTICATION,
            severity=Severity.HIGH,
            suggested_delay_ms=0,
            recovery_actions=("check authentication credentials", "verify access permissions"),
            can_switch_strategy=False,
        ),
    ),
    ClassificationRule(
        name="not_found",
        tokens=("404", "not found"),
        classification=ErrorClassification(
            is_retryable=False,
            category=ErrorCategory.PERMANENT,
            severity=Severity.LOW,
            suggested_delay_ms=0,
            recovery_actions=("verify URL is correct", "check if resource exists"),
            can_switch_strategy=False,
        ),
    ),
    ClassificationRule(
        name="anti_automation",
        # "403" is unreachable here; the authentication rule claims it first.
        tokens=("403", "captcha", "blocked", "suspicious", "bot detected"),
        classification=ErrorClassification(
            is_retryable=True,
            category=ErrorCategory.SERVER_OVERLOAD,
            severity=Severity.HIGH,
            suggested_delay_ms=15_000,
            recovery_actions=(
                "rotate user agent",
                "implement proxy rotation",
                "add random delays",
                "reduce request frequency",
            ),
            can_switch_strategy=True,
        ),
    ),
)

DEFAULT_CLASSIFICATION = ErrorClassification(
    is_retryable=True,
    category=ErrorCategory.TEMPORARY,
    severity=Severity.MEDIUM,
    suggested_delay_ms=3000,
    recovery_actions=("monitor error pattern", "try alternative approach"),
    can_switch_strategy=True,
)


def matching_rule(message: str) -> ClassificationRule | None:
    """Return the first rule whose tokens occur in ``message``, if any."""
    lowered = message.lower()
    for rule in RULES:
        if rule.matches(lowered):
            return rule
    return None


def classify_error(message: str) -> ErrorClassification:
    """Classify a failure from its error text."""
    rule = matching_rule(message)
    return rule.classification if rule is not None else DEFAULT_CLASSIFICATION


def classify_exception(error: BaseException) -> ErrorClassification:
    """Classify an exception by its message (or class name when empty)."""
    return classify_error(error_text(error))


class ErrorClassifier:
    """Callable classifier handed to the coordinator.

    Subclass and override :meth:`classify` to plug in a different policy.
    """

    def classify(self, message: str) -> ErrorClassification:
        return classify_error(message)

    def classify_exception(self, error: BaseException) -> ErrorClassification:
        return self.classify(error_text(error))

    def __call__(self, message: str) -> ErrorClassification:
        return self.classify(message)


__all__ = [
    "ClassificationRule",
    "RULES",
    "DEFAULT_CLASSIFICATION",
    "matching_rule",
    "classify_error",
    "classify_exception",
    "ErrorClassifier",
]
