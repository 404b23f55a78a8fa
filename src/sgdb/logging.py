"""Structured logging for bootstrap runs with structlog."""

import logging
import sys

import structlog

from sgdb.config import Settings


def setup_logging(settings: Settings) -> None:
    """Configure structlog for JSON or console output on stderr.

    stdout is left to the CLI (dry-run SQL, check report). Every event carries
    the target database and port.
    """
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if settings.log_format == "json" else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(database=settings.name, port=settings.port)

    logging.basicConfig(
        stream=sys.stderr,
        format="%(message)s",
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        force=True,
    )
