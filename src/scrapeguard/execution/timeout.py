"""Per-attempt timeout enforcement.

Each attempt runs as its own task and is raced against a timer.  Whichever
finishes first decides the attempt:

- operation first: its result is returned, or its exception re-raised
- timer first: the task is cancelled and AttemptTimeoutError is raised

An operation that ignores cancellation may still finish later.  A
done-callback retrieves and discards that late result (or exception) so it
can never be reported twice, nor trigger "exception was never retrieved"
warnings.  Unlike ``asyncio.wait_for``, the caller never waits for a
stubborn task to acknowledge its cancellation.

Example:
    >>> result = await run_attempt(lambda: fetch(url), timeout_ms=10_000)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from scrapeguard.core.errors import AttemptTimeoutError
from scrapeguard.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]


def _discard(task: asyncio.Future) -> None:
    """Consume the outcome of an abandoned attempt."""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug("attempt.late_failure_discarded", error=str(error))
    else:
        logger.debug("attempt.late_result_discarded")


def abandon(task: asyncio.Future) -> None:
    """Cancel an attempt and make sure its eventual outcome is dropped."""
    if task.done():
        _discard(task)
        return
    task.cancel()
    task.add_done_callback(_discard)


async def run_attempt(operation: Operation[T], timeout_ms: int) -> T:
    """Run one attempt of ``operation`` under a deadline.

    Args:
        operation: Zero-argument callable returning an awaitable
        timeout_ms: Deadline in milliseconds

    Returns:
        The operation's result

    Raises:
        AttemptTimeoutError: If the deadline passes first
        ValueError: If timeout_ms <= 0
        Exception: Whatever the operation raised
    """
    if timeout_ms <= 0:
        raise ValueError(f"Timeout must be positive, got {timeout_ms}")

    start = time.monotonic()
    task = asyncio.ensure_future(operation())

    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
    except asyncio.CancelledError:
        abandon(task)
        raise

    if task in done:
        return task.result()

    abandon(task)
    elapsed_ms = int((time.monotonic() - start) * 1000)
    raise AttemptTimeoutError(timeout_ms, elapsed_ms)


__all__ = ["Operation", "run_attempt", "abandon"]
