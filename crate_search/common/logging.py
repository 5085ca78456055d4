"""Structured logging configuration for the crate search engine.

Every component logs through ``structlog`` with keyword context. Entry points
(the operator scripts) call ``configure_logging`` once; library code only
acquires loggers. While a search runs, ``search_context`` binds the query and
sort criteria so every line emitted by the retrievers, the rewriter, and the
embedding cache can be correlated to the call that produced it.

Output goes to stderr, as JSON for aggregation or as a console rendering for
local use.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog
from structlog.stdlib import LoggerFactory, add_logger_name

LOG_FORMATS = ("json", "console")


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    log_format: str = "json",
) -> None:
    """Configure structured logging for a process.

    Parameters
    - service_name: Identifier bound to each log line as ``service``
    - log_level: ``DEBUG``, ``INFO``, ``WARNING``, ``ERROR`` (case-insensitive)
    - log_format: ``json`` or ``console``; anything else falls back to ``json``
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_logger_name,
    ]

    if log_format.lower() == "console":
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    else:
        # Crate descriptions and CJK queries stay readable in the output
        processors.append(structlog.processors.JSONRenderer(ensure_ascii=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)


@contextmanager
def search_context(**context: Any) -> Iterator[None]:
    """Bind per-search context to every log line emitted inside the block.

    Previous values of the same keys are restored on exit, so nested calls
    (a comparison run wrapping individual searches) unwind cleanly.
    """
    tokens = structlog.contextvars.bind_contextvars(**context)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)


def get_logger(name: str) -> Any:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_performance(operation: str, duration_ms: float, **kwargs: Any) -> None:
    """Log the elapsed time of one unit of work.

    Parameters
    - operation: Stable identifier such as ``search_hybrid``
    - duration_ms: Elapsed time in milliseconds
    - kwargs: Additional dimensions (e.g., sort criteria, result count)
    """
    logger = get_logger("performance")
    logger.info(
        f"Operation {operation} completed",
        operation=operation,
        duration_ms=round(duration_ms, 2),
        **kwargs
    )
