"""Tests for pt_common.errors."""

from __future__ import annotations

from pt_common.errors import (
    AppError,
    BotDetectedError,
    ConflictError,
    RateLimitError,
    ServiceDegradedError,
    ValidationError,
    field_errors,
)


class TestAppErrors:
    def test_status_and_default_code(self):
        assert (ValidationError("x").status_code, ValidationError("x").code) == (400, "VALIDATION_ERROR")
        assert BotDetectedError("x").status_code == 403
        assert ConflictError("x").status_code == 409
        assert ServiceDegradedError("x").status_code == 503

    def test_custom_code(self):
        err = ConflictError("dup", code="DUPLICATE_VOTE")
        assert err.code == "DUPLICATE_VOTE"
        assert err.message == "dup"
        assert isinstance(err, AppError)

    def test_headers_are_copied(self):
        source = {"X-RateLimit-Limit": "10"}
        err = ValidationError("x", headers=source)
        err.headers["X-Extra"] = "1"
        assert "X-Extra" not in source

    def test_rate_limit_error_sets_retry_after(self):
        err = RateLimitError("slow down", retry_after=42, limit=10)
        assert err.status_code == 429
        assert err.headers["Retry-After"] == "42"
        assert err.details == {"retryAfter": 42, "limit": 10, "remaining": 0}


class TestFieldErrors:
    def test_flattens_location(self):
        errors = [
            {"loc": ("body", "npi"), "msg": "String should match pattern"},
            {"loc": ("query", "limit"), "msg": "too big"},
        ]
        assert field_errors(errors) == [
            {"field": "npi", "message": "String should match pattern"},
            {"field": "query.limit", "message": "too big"},
        ]

    def test_nested_location(self):
        assert field_errors([{"loc": ("items", 0, "name"), "msg": "m"}]) == [
            {"field": "items.0.name", "message": "m"},
        ]
