"""Prometheus metrics for filevault.

HTTP traffic metrics are recorded by ``MetricsMiddleware``; the share
counters are incremented by ``ShareAccessController`` so that dashboards
can tell "link expired" from "download limit reached" without parsing logs.
"""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# ---------------------------------------------------------------------------
# HTTP request metrics
# ---------------------------------------------------------------------------

HTTP_REQUESTS_TOTAL = Counter(
    "http_server_requests_total",
    "Total HTTP requests by method, path pattern, and status code.",
    labelnames=["method", "path", "status"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_server_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_FLIGHT = Gauge(
    "http_server_requests_in_flight",
    "Number of HTTP requests currently being processed.",
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Share metrics
# ---------------------------------------------------------------------------

SHARE_ACCESS_TOTAL = Counter(
    "filevault_share_access_total",
    "Public share access attempts by terminal outcome.",
    labelnames=["outcome"],
    registry=REGISTRY,
)

SHARE_DOWNLOADS_TOTAL = Counter(
    "filevault_share_downloads_total",
    "File deliveries authorized through share links.",
    registry=REGISTRY,
)

SHARES_CREATED_TOTAL = Counter(
    "filevault_shares_created_total",
    "Share links created, by share type.",
    labelnames=["share_type"],
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Return (body, content_type) for a /metrics endpoint."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
