"""scrapeguard core -- errors, logging and settings.

Architecture::

    errors.py      ScrapeGuardError hierarchy, ErrorCategory, Severity
    logging.py     structlog configuration, LogContext
    settings.py    RetrySettings (pydantic-settings, SCRAPEGUARD_ prefix)

``settings`` is imported on demand (``from scrapeguard.core.settings import
RetrySettings``) because it depends on the execution models.
"""

from scrapeguard.core.errors import (
    AttemptTimeoutError,
    CircuitOpenError,
    ConfigError,
    ErrorCategory,
    InvalidConfigError,
    ScrapeGuardError,
    Severity,
    error_text,
)
from scrapeguard.core.logging import (
    LogContext,
    configure_logging,
    get_logger,
)

__all__ = [
    "AttemptTimeoutError",
    "CircuitOpenError",
    "ConfigError",
    "ErrorCategory",
    "InvalidConfigError",
    "ScrapeGuardError",
    "Severity",
    "error_text",
    "LogContext",
    "configure_logging",
    "get_logger",
]
