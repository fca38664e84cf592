"""Best-effort remediation between and after failed attempts.

Most remediations are intents rather than effects: "switch strategy" or
"refresh authentication" are emitted as labels for the caller to act on.
The only effects enacted here are extra pauses.  Errors raised while
remediating are logged and swallowed; they never change the outcome of the
attempt that triggered them.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from scrapeguard.core.errors import ErrorCategory
from scrapeguard.core.logging import get_logger
from scrapeguard.execution.models import ErrorClassification, OperationContext

logger = get_logger(__name__)

Sleeper = Callable[[float], Awaitable[None]]

EXTEND_DELAY = "extend delay between requests"
SWITCH_STRATEGY = "switch strategy"
WAIT_FOR_SERVER = "wait for server recovery"
REFRESH_AUTHENTICATION = "refresh authentication"

EMERGENCY_ACTIONS = (
    "attempt simplified extraction",
    "reduce data requirements",
    "use cached results if available",
)

RATE_LIMIT_PAUSE_MS = 2000
EMERGENCY_PAUSE_MS = 5000


class RecoveryActionExecutor:
    """Runs remediation keyed by classification category."""

    def __init__(self, sleep: Sleeper = asyncio.sleep):
        self._sleep = sleep

    async def pause(self, milliseconds: int) -> None:
        if milliseconds > 0:
            await self._sleep(milliseconds / 1000)

    async def run(self, context: OperationContext, classification: ErrorClassification) -> list[str]:
        """Remediate after a failed attempt that will be retried.

        Returns:
            Labels of the actions taken, in order
        """
        actions: list[str] = []
        try:
            category = classification.category
            if category == ErrorCategory.RATE_LIMITED:
                actions.append(EXTEND_DELAY)
                await self.pause(RATE_LIMIT_PAUSE_MS)
            elif category == ErrorCategory.SERVER_OVERLOAD:
                if classification.can_switch_strategy:
                    actions.append(SWITCH_STRATEGY)
                else:
                    actions.append(WAIT_FOR_SERVER)
                    await self.pause(classification.suggested_delay_ms)
            elif category == ErrorCategory.TEMPORARY:
                if classification.can_switch_strategy:
                    actions.append(SWITCH_STRATEGY)
            elif category == ErrorCategory.AUTHENTICATION:
                actions.append(REFRESH_AUTHENTICATION)
        except Exception as e:
            logger.warning(
                "recovery.failed",
                destination=context.destination_key,
                category=classification.category.value,
                error=str(e),
            )

        if actions:
            logger.info(
                "recovery.actions",
                destination=context.destination_key,
                strategy=context.strategy,
                actions=actions,
            )
        return actions

    async def run_emergency(
        self,
        context: OperationContext,
        classification: ErrorClassification | None = None,
    ) -> list[str]:
        """Last-resort advisories once every attempt has failed."""
        actions: list[str] = []
        logger.warning(
            "recovery.emergency",
            destination=context.destination_key,
            strategy=context.strategy,
            category=classification.category.value if classification else None,
        )
        try:
            actions.extend(EMERGENCY_ACTIONS)
            await self.pause(EMERGENCY_PAUSE_MS)
        except Exception as e:
            logger.warning(
                "recovery.emergency_failed",
                destination=context.destination_key,
                error=str(e),
            )
        return actions


__all__ = [
    "RecoveryActionExecutor",
    "Sleeper",
    "EXTEND_DELAY",
    "SWITCH_STRATEGY",
    "WAIT_FOR_SERVER",
    "REFRESH_AUTHENTICATION",
    "EMERGENCY_ACTIONS",
    "RATE_LIMIT_PAUSE_MS",
    "EMERGENCY_PAUSE_MS",
]
