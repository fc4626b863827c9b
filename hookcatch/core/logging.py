"""
structlog setup shared by the server and the CLI.

Log lines go to stderr so CLI reports printed on stdout stay clean.
"""

from __future__ import annotations

import logging
import sys

import structlog


def _stderr_logger(*args) -> structlog.PrintLogger:
    # sys.stderr is looked up per logger so redirected streams are honoured.
    return structlog.PrintLogger(sys.stderr)


def configure_logging(level: str = "info", fmt: str = "text") -> None:
    """Configure structlog for `level` ("debug", "info", ...) and `fmt` ("json" or "text")."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if fmt == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer(ensure_ascii=False))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        logger_factory=_stderr_logger,
    )
