"""Structured logging setup."""

import logging
from typing import Any, Callable

import structlog


Processor = Callable[[Any, str, dict[str, Any]], dict[str, Any]]


def configure_logging(
    level: str = "INFO",
    json: bool = False,
    extra_processors: list[Processor] | None = None,
) -> None:
    """Configure structlog for steadyhand.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR)
        json: Render JSON lines instead of the console renderer
        extra_processors: Processors run after the level is added, before rendering
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
    ]
    processors.extend(extra_processors or [])
    processors.append(structlog.processors.TimeStamper(fmt="iso"))
    if json:
        processors.append(structlog.processors.dict_tracebacks)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
