"""
Application error taxonomy for PlanTrust.

Every foreseeable failure is raised as an :class:`AppError` subclass with a
stable ``code`` and HTTP ``status_code``.  The API gateway renders them into
the standard error envelope; anything else is treated as an internal error.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any


class AppError(Exception):
    """Base class for classified application errors.

    Args:
        message: Human-readable message safe to return to callers.
        code: Stable machine-readable error code.
        details: Optional structured details (field errors, retry hints).
        headers: Extra response headers (rate-limit budget, degraded flags).
    """

    status_code: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: Any | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details
        self.headers: dict[str, str] = dict(headers or {})


class ValidationError(AppError):
    """Malformed or oversized input."""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class UnauthorizedError(AppError):
    status_code = 401
    default_code = "UNAUTHORIZED"


class BotDetectedError(AppError):
    """The bot-scoring service judged the request automated."""

    status_code = 403
    default_code = "BOT_DETECTED"


class NotFoundError(AppError):
    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(AppError):
    """Duplicate vote or Sybil-window violation.  Never retried automatically."""

    status_code = 409
    default_code = "CONFLICT"


class RateLimitError(AppError):
    """Client exhausted its sliding-window budget.

    Args:
        message: Human-readable message.
        retry_after: Seconds until the oldest counted request leaves the window.
        limit: Budget of the window that was exceeded.
        remaining: Requests left in the window (always 0 when raised).
    """

    status_code = 429
    default_code = "RATE_LIMITED"

    def __init__(
        self,
        message: str,
        *,
        retry_after: int,
        limit: int,
        remaining: int = 0,
        code: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=code,
            details={"retryAfter": retry_after, "limit": limit, "remaining": remaining},
            headers=headers,
        )
        self.retry_after = retry_after
        self.limit = limit
        self.remaining = remaining
        self.headers.setdefault("Retry-After", str(retry_after))


class ServiceDegradedError(AppError):
    """A required dependency is unavailable and the policy is to reject."""

    status_code = 503
    default_code = "SERVICE_UNAVAILABLE"


class InternalError(AppError):
    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)


def field_errors(errors: Iterable[Mapping[str, Any]]) -> list[dict[str, str]]:
    """Flatten Pydantic error dicts into ``[{field, message}]`` details."""
    details: list[dict[str, str]] = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        details.append({"field": ".".join(loc), "message": str(err.get("msg", ""))})
    return details
