"""
Browse-class rate limiting middleware for the PlanTrust API.

Read endpoints are limited per client IP on the ``default`` budget
(200/hour).  Write endpoints are screened by the abuse gate inside their
handlers instead, so this middleware only looks at safe methods.
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from pt_common.models.enums import EndpointClass

from api.dependencies import get_app_settings, resolve_client_ip
from api.errors import error_body
from gate.rate_limiter import SlidingWindowRateLimiter

API_PREFIX = "/api/v1"
_SAFE_METHODS = {"GET", "HEAD"}
_SKIP_PREFIXES = (f"{API_PREFIX}/admin",)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window limit on browse requests, backed by the shared limiter."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        path = request.url.path
        limiter: SlidingWindowRateLimiter | None = getattr(request.app.state, "limiter", None)
        if (
            limiter is None
            or request.method not in _SAFE_METHODS
            or not path.startswith(API_PREFIX)
            or path.startswith(_SKIP_PREFIXES)
        ):
            return await call_next(request)

        settings = get_app_settings(request)
        client = resolve_client_ip(request, settings.trust_forwarded_for)
        decision = await limiter.admit(client, EndpointClass.DEFAULT)
        headers = decision.headers()

        if not decision.allowed:
            headers["Retry-After"] = str(decision.retry_after)
            return JSONResponse(
                status_code=429,
                content=error_body(
                    request,
                    429,
                    limiter.deny_message(EndpointClass.DEFAULT),
                    "RATE_LIMITED",
                    {
                        "retryAfter": decision.retry_after,
                        "limit": decision.limit,
                        "remaining": decision.remaining,
                    },
                ),
                headers=headers,
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
