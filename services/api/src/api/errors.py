"""
Exception handlers for the PlanTrust API gateway.

Renders every failure into the standard error envelope::

    {"success": false, "error": {"message", "code", "statusCode", "requestId", "details"?}}

Classified :class:`pt_common.errors.AppError` subclasses keep their status,
code and headers; request validation failures become 400; anything else
is logged and returned as a generic 500.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from pt_common.errors import AppError, field_errors

from gate.honeypot import FAKE_SUCCESS, HoneypotTriggered

logger = structlog.get_logger(__name__)

_HTTP_CODES: dict[int, str] = {
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


def error_body(
    request: Request,
    status_code: int,
    message: str,
    code: str,
    details: Any | None = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {
        "message": message,
        "code": code,
        "statusCode": status_code,
        "requestId": getattr(request.state, "request_id", None),
    }
    if details is not None:
        error["details"] = details
    return {"success": False, "error": error}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("request_failed", code=exc.code, status=exc.status_code, path=request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.status_code, exc.message, exc.code, exc.details),
        headers=exc.headers or None,
    )


async def honeypot_handler(request: Request, exc: HoneypotTriggered) -> JSONResponse:
    return JSONResponse(status_code=200, content=FAKE_SUCCESS)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=error_body(
            request, 400, "Validation error", "VALIDATION_ERROR", field_errors(exc.errors()),
        ),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _HTTP_CODES.get(exc.status_code, "HTTP_ERROR")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.status_code, str(exc.detail), code),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path, method=request.method)
    return JSONResponse(
        status_code=500,
        content=error_body(request, 500, "Internal server error", "INTERNAL_ERROR"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HoneypotTriggered, honeypot_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)
