"""
Request logging middleware for the PlanTrust API.

Logs every request with method, path, status and latency, and records the
same figures as Prometheus metrics.  The client IP is deliberately left
out of the log line.
"""

from __future__ import annotations

import time

import structlog
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger(__name__)

api_requests_total = Counter(
    "pt_api_requests_total",
    "Total API requests received",
    ["method", "status"],
)
api_request_duration_seconds = Histogram(
    "pt_api_request_duration_seconds",
    "API request latency in seconds",
    ["method"],
)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status, and latency."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        duration = time.monotonic() - start
        api_requests_total.labels(method=request.method, status=str(response.status_code)).inc()
        api_request_duration_seconds.labels(method=request.method).observe(duration)
        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )
        return response
