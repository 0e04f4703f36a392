"""
Admin authentication middleware for the PlanTrust API.

Guards every ``/api/v1/admin`` route with a shared secret sent in the
``X-Admin-Secret`` header, compared in constant time.  Without a
configured secret the admin surface is disabled outright.
"""

from __future__ import annotations

import hmac

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from api.dependencies import get_app_settings
from api.errors import error_body

logger = structlog.get_logger(__name__)

ADMIN_PREFIX = "/api/v1/admin"
ADMIN_SECRET_HEADER = "X-Admin-Secret"


class AdminAuthMiddleware(BaseHTTPMiddleware):
    """Validate ``X-Admin-Secret`` against ``PT_ADMIN_SECRET``."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        if not request.url.path.startswith(ADMIN_PREFIX):
            return await call_next(request)

        secret = get_app_settings(request).admin_secret
        if not secret:
            logger.warning("admin_not_configured", path=request.url.path)
            return JSONResponse(
                status_code=503,
                content=error_body(
                    request,
                    503,
                    "Admin endpoints not configured. "
                    "Set PT_ADMIN_SECRET environment variable to enable.",
                    "ADMIN_NOT_CONFIGURED",
                ),
            )

        provided = request.headers.get(ADMIN_SECRET_HEADER, "")
        if not hmac.compare_digest(provided.encode(), secret.encode()):
            logger.warning("admin_auth_failed", path=request.url.path)
            return JSONResponse(
                status_code=401,
                content=error_body(request, 401, "Invalid or missing admin secret", "UNAUTHORIZED"),
            )

        return await call_next(request)
