"""
CORS middleware configuration for the PlanTrust API.

Allows the configured front-end origins and exposes the rate-limit,
degraded-mode and request-ID headers to browser clients.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

EXPOSED_HEADERS = [
    "X-Request-ID",
    "X-RateLimit-Limit",
    "X-RateLimit-Remaining",
    "X-RateLimit-Reset",
    "Retry-After",
    "X-Security-Degraded",
    "X-Fallback-RateLimit-Limit",
    "X-Fallback-RateLimit-Remaining",
    "X-Fallback-RateLimit-Reset",
]


def add_cors(app: FastAPI, origins: list[str]) -> None:
    """Attach CORS middleware for *origins*."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Captcha-Token", "X-Admin-Secret", "X-Request-ID"],
        expose_headers=EXPOSED_HEADERS,
    )
