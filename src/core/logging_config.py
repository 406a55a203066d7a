"""Structured logging configuration.

This module initializes structlog with a stable JSON event format.
Events go to stderr so command output on stdout stays parseable.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

_CONFIGURED = False


def get_logger(name: str) -> Any:
    """Return a module logger instance.

    Args:
        name: Logger name, usually __name__.

    Returns:
        A structlog logger with structured output.
    """
    _configure()
    return structlog.get_logger(name)


def _configure() -> None:
    """Configure structlog processors once per process."""
    global _CONFIGURED
    if _CONFIGURED:
        return
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )
    _CONFIGURED = True


def _stderr_logger(*args: Any) -> structlog.PrintLogger:
    # resolved per call so redirected stderr streams are honored
    return structlog.PrintLogger(file=sys.stderr)
