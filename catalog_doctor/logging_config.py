"""
Structured logging configuration using structlog.

Logs go to stderr so that `--json` output on stdout stays machine readable.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

LOG_LEVEL_ENV = "CATALOG_DOCTOR_LOG_LEVEL"


def setup_logging(level: str | None = None) -> None:
    """
    Configure structured logging for catalog-doctor.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Uses $CATALOG_DOCTOR_LOG_LEVEL if None.
    """
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, "WARNING")
    numeric_level = getattr(logging, level.upper(), logging.WARNING)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=numeric_level,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    # lazy proxy: module-level loggers pick up setup_logging() done later
    if name:
        return structlog.get_logger(module=name)
    return structlog.get_logger()
