"""Environment-driven settings for scrapeguard.

Every retry knob can be set from the environment (or a ``.env`` file)
with the ``SCRAPEGUARD_`` prefix, e.g. ``SCRAPEGUARD_MAX_ATTEMPTS=5``.
``RetrySettings.to_configuration()`` turns them into the frozen
``RetryConfiguration`` a coordinator is built with.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not mid-retry
    - **Environment-driven:** Reads from env vars and .env files
    - **Sensible defaults:** Match the engine's built-in policy
    - **Extra ignore:** Unknown env vars don't cause startup failures

Examples:
    >>> from scrapeguard.core.settings import RetrySettings
    >>> settings = RetrySettings()
    >>> config = settings.to_configuration()
    >>> config.max_attempts
    3

Tags:
    settings, configuration, pydantic, environment, scrapeguard
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from scrapeguard.core.logging import configure_logging
from scrapeguard.execution.models import BREAKER_COOLDOWN_MS, JOURNAL_CAPACITY, RetryConfiguration


class RetrySettings(BaseSettings):
    """Retry policy and logging settings read from the environment.

    Fields
    ──────
    max_attempts               : Attempts per call, including the first
    base_delay_ms              : Fallback backoff base
    max_delay_ms               : Upper clamp for backoff delays
    backoff_multiplier         : Exponential growth per attempt
    jitter                     : Randomise delays by +/- 5%
    circuit_breaker_threshold  : Failures before a destination's breaker opens
    attempt_timeout_ms         : Per-attempt deadline
    breaker_cooldown_ms        : How long an open breaker rejects calls
    journal_capacity           : Attempt records retained for metrics
    log_level                  : Structlog log level
    log_json                   : JSON logs (None = auto-detect from TTY)
    """

    model_config = SettingsConfigDict(
        env_prefix="SCRAPEGUARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Retry policy ─────────────────────────────────────────────
    max_attempts: int = Field(default=3, ge=1)
    base_delay_ms: int = Field(default=1000, ge=0)
    max_delay_ms: int = Field(default=30_000, ge=1000)
    backoff_multiplier: float = Field(default=2.0, gt=1.0)
    jitter: bool = True

    # ── Circuit breaking ─────────────────────────────────────────
    circuit_breaker_threshold: int = Field(default=5, ge=1)
    attempt_timeout_ms: int = Field(default=10_000, gt=0)
    breaker_cooldown_ms: int = Field(default=BREAKER_COOLDOWN_MS, ge=0)

    # ── Telemetry ────────────────────────────────────────────────
    journal_capacity: int = Field(default=JOURNAL_CAPACITY, ge=1)
    log_level: str = "INFO"
    log_json: bool | None = None

    def to_configuration(self) -> RetryConfiguration:
        """Build the immutable policy object (validates delay bounds)."""
        return RetryConfiguration(
            max_attempts=self.max_attempts,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
            backoff_multiplier=self.backoff_multiplier,
            jitter=self.jitter,
            circuit_breaker_threshold=self.circuit_breaker_threshold,
            attempt_timeout_ms=self.attempt_timeout_ms,
            breaker_cooldown_ms=self.breaker_cooldown_ms,
            journal_capacity=self.journal_capacity,
        )

    def apply_logging(self) -> None:
        """Configure structlog from ``log_level`` and ``log_json``."""
        configure_logging(level=self.log_level, json_format=self.log_json)


__all__ = ["RetrySettings"]
