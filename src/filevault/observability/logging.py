"""Structured logging for filevault.

``configure_logging(settings)`` installs one stdout handler on the root
logger. structlog events and plain stdlib records (uvicorn, sqlite
errors) go through the same processor chain, so every line carries the
request ID bound by ``RequestIdMiddleware`` and no line carries a full
share token.

Usage::

    from filevault.observability.logging import configure_logging, get_logger

    configure_logging(settings)
    logger = get_logger(__name__)
    logger.info("share_accessed", share_id=share.id, outcome="download")
"""

from __future__ import annotations

import logging
import sys

import structlog

from ..settings import Settings
from .redaction import redact_token_fields

_LIBRARY_LEVELS = {
    "uvicorn.access": logging.WARNING,
    "uvicorn.error": logging.INFO,
}


def _event_chain() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        redact_token_fields,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]


def _renderer(log_format: str):
    if log_format == "console":
        return structlog.dev.ConsoleRenderer(colors=False)
    return structlog.processors.JSONRenderer()


def configure_logging(settings: Settings) -> None:
    """Route structlog and stdlib logging to stdout.

    ``settings.log_level`` sets the root level and ``settings.log_format``
    picks JSON lines or console output. Safe to call more than once; the
    last call wins.
    """
    chain = _event_chain()

    structlog.configure(
        processors=[*chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(settings.log_format),
        ],
    ))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level.upper())
    for name, level in _LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
