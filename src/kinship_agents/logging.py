"""Structlog setup for Kinship Agents.

Library code logs through ``structlog.get_logger(__name__)`` and never
prints; only the CLI writes to stdout. Log lines go to stderr so they
never interleave with tables and assistant replies.
"""
from __future__ import annotations

import sys
from typing import Literal

import logging
import structlog

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["console", "json"]

# Transport libraries that are chatty at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "google_genai")


def configure_logging(level: LogLevel = "WARNING", fmt: LogFormat = "console") -> None:
    """Route stdlib and structlog output to stderr at ``level``."""
    numeric = getattr(logging, level)
    logging.basicConfig(format="%(message)s", level=numeric, stream=sys.stderr, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="ISO"),
    ]
    if fmt == "json":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


configure_logging()
