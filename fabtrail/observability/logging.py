"""Structured logging configuration using structlog.

Every module logs through a ``component``-bound logger; ``setup_logging`` is
called once by the application bootstrap.  Library use without bootstrap
falls back to structlog's defaults.
"""

from __future__ import annotations

import logging
import sys

import structlog


def setup_logging(level: str = "info", log_format: str = "json") -> None:
    """Configure structlog for stderr output.

    ``log_format`` is ``json`` for machine-readable lines or ``console`` for
    a coloured developer view.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    renderer: structlog.types.Processor = (
        structlog.dev.ConsoleRenderer() if log_format == "console" else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    # httpx logs each request through stdlib logging
    logging.getLogger("httpx").setLevel(max(log_level, logging.WARNING))


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with a component name."""
    return structlog.get_logger(component=component)  # type: ignore[no-any-return]
