"""HTTP middleware for request correlation, metrics and access logs.

Share tokens travel in the URL path (``/api/s/{token}``), so every path
that reaches a metric label or a log line goes through
``normalize_metric_path`` first.

Provides:
- ``RequestIdMiddleware``: binds ``request_id`` into structlog's context
  for the duration of the request and echoes it as ``X-Request-ID``.
- ``MetricsMiddleware``: Prometheus request counters, latency histogram
  and in-flight gauge.
- ``RequestLoggingMiddleware``: one access line per request, levelled by
  status class.
"""

from __future__ import annotations

import re
import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from .logging import get_logger
from .metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_FLIGHT,
    HTTP_REQUESTS_TOTAL,
)

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

_VALID_REQUEST_ID = re.compile(r"^[a-zA-Z0-9\-]{8,128}$")

_PATH_NORMALIZERS = [
    (re.compile(r"/api/s/[^/]+"), "/api/s/{token}"),
    (re.compile(r"/api/shares/[^/]+"), "/api/shares/{id}"),
]


def normalize_metric_path(path: str) -> str:
    """Collapse share tokens and ids into their route placeholders."""
    for pattern, replacement in _PATH_NORMALIZERS:
        path = pattern.sub(replacement, path)
    return path


def resolve_request_id(incoming: str | None) -> str:
    """Keep a well-formed client ID, otherwise mint a UUID4."""
    if incoming and _VALID_REQUEST_ID.match(incoming):
        return incoming
    return str(uuid.uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Record Prometheus HTTP metrics for every request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        path = normalize_metric_path(request.url.path)
        method = request.method

        HTTP_REQUESTS_IN_FLIGHT.inc()
        start = time.perf_counter()
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        finally:
            HTTP_REQUESTS_IN_FLIGHT.dec()
            HTTP_REQUEST_DURATION_SECONDS.labels(method=method, path=path).observe(
                time.perf_counter() - start,
            )
            HTTP_REQUESTS_TOTAL.labels(method=method, path=path, status=status).inc()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Access log: info below 400, warning for 4xx, error for 5xx.

    Denied share reads (401, 404, 410) therefore stand out from normal
    traffic without a separate log stream.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        fields = {
            "method": request.method,
            "path": normalize_metric_path(request.url.path),
        }
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request_failed",
                duration_ms=_elapsed_ms(start),
                **fields,
            )
            raise

        status = response.status_code
        if status >= 500:
            log = logger.error
        elif status >= 400:
            log = logger.warning
        else:
            log = logger.info
        log(
            "request_completed",
            status=status,
            duration_ms=_elapsed_ms(start),
            **fields,
        )
        return response


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)
