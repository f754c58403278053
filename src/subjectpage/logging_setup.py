"""structlog configuration.

Library modules only call ``structlog.get_logger()``. The embedding
application calls ``setup_logging`` once at startup to choose level, format
and destination.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, TextIO

import structlog

if TYPE_CHECKING:
    from subjectpage.config import Settings


def build_processors(fmt: str) -> list[structlog.types.Processor]:
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if fmt == "json":
        # Tracebacks become structured lists so one event stays one line
        return [
            *processors,
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    return [*processors, structlog.dev.ConsoleRenderer(colors=False)]


def setup_logging(settings: Settings, *, stream: TextIO | None = None) -> None:
    """Configure structlog from ``settings.logging``. Output goes to stderr by default."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    structlog.configure(
        processors=build_processors(settings.logging.format),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=True,
    )
