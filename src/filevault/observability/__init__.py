"""Observability infrastructure for filevault.

Quick start::

    from filevault.observability import configure_logging, get_logger
    from filevault.observability.middleware import (
        MetricsMiddleware,
        RequestIdMiddleware,
        RequestLoggingMiddleware,
    )

    configure_logging(settings)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIdMiddleware)
"""

from .logging import configure_logging, get_logger
from .metrics import metrics_text
from .redaction import redact_token

__all__ = [
    "configure_logging",
    "get_logger",
    "metrics_text",
    "redact_token",
]
