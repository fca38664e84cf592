"""
Structured logging for scrapeguard.

Every retry decision, breaker transition and remediation is a structlog
event with a dotted name and key/value fields, so a failing destination can
be traced from the log stream alone:

    retry.start -> retry.attempt_failed -> retry.waiting -> recovery.actions
    -> ... -> retry.succeeded | retry.exhausted -> recovery.emergency

``LogContext`` binds ``destination`` and ``strategy`` for the length of a
call; structlog keeps them in contextvars, so concurrent calls never see
each other's values.

Examples:
    >>> from scrapeguard.core.logging import configure_logging, get_logger
    >>> configure_logging(level="INFO", json_format=True)
    >>> logger = get_logger(__name__)
    >>> logger.info("retry.attempt_failed", destination="example.com", attempt=2)

Tags:
    logging, structlog, observability, scrapeguard
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from contextvars import Token
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger


def _tag_service(service: str) -> Processor:
    def tag(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service)
        return event_dict

    return tag


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "scrapeguard",
    add_timestamp: bool = True,
) -> None:
    """Route scrapeguard events to stdout.

    Args:
        level: Minimum level (DEBUG, INFO, WARNING, ERROR)
        json_format: One JSON object per line; None picks JSON unless stdout is a TTY
        service: Value of the ``service`` field on every event
        add_timestamp: Add a UTC ISO ``timestamp`` field
    """
    if json_format is None:
        json_format = not sys.stdout.isatty()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        _tag_service(service),
    ]
    if add_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))

    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper())),
        logger_factory=structlog.PrintLoggerFactory(),
    )


def get_logger(name: str | None = None) -> Any:
    """Lazy structlog logger; ``name`` (usually ``__name__``) is logged as ``logger``."""
    if name:
        return structlog.get_logger(logger=name)
    return structlog.get_logger()


class LogContext:
    """Bind fields to every event logged inside the block.

    On exit each key gets back whatever value it had before the block
    (or becomes unbound again), so nested contexts compose.

    Example:
        async with LogContext(destination="example.com", strategy="static"):
            logger.info("retry.start")
    """

    def __init__(self, **fields: Any):
        self._fields = fields
        self._tokens: Mapping[str, Token[Any]] = {}

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self._fields)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)

    async def __aenter__(self) -> LogContext:
        return self.__enter__()

    async def __aexit__(self, *exc_info: Any) -> None:
        self.__exit__(*exc_info)


__all__ = ["configure_logging", "get_logger", "LogContext"]
