"""
FastAPI application entry point for the PlanTrust API gateway.

Creates and configures the FastAPI app, wires the abuse gate, the
verification service and the decay job into ``app.state`` during the
lifespan, registers routers, middleware and exception handlers, and
exposes the ASGI application.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from pt_common.config import Settings, get_settings
from pt_common.db.connection import build_engine, build_session_factory
from pt_common.logging import configure_logging
from pt_common.messaging.redis_client import RedisClient

from api.errors import register_exception_handlers
from api.middleware.admin_auth import AdminAuthMiddleware
from api.middleware.cors import add_cors
from api.middleware.logging import LoggingMiddleware
from api.middleware.rate_limit import API_PREFIX, RateLimitMiddleware
from api.middleware.request_id import RequestIdMiddleware
from api.routers import admin, health, verify
from decay.job import ConfidenceDecayJob
from gate.abuse_gate import AbuseGate
from gate.captcha import CaptchaVerifier
from gate.rate_limiter import SlidingWindowRateLimiter, build_window_store
from verification.repository import sql_unit_of_work
from verification.service import VerificationService

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    settings: Settings = app.state.settings
    configure_logging("api", settings.log_level, json=settings.log_json)

    # Startup
    engine = build_engine(settings.db_uri, settings.db_pool_size)
    unit_of_work = sql_unit_of_work(build_session_factory(engine))
    app.state.engine = engine

    redis_client: RedisClient | None = None
    if settings.redis_url:
        redis_client = RedisClient(settings.redis_url)
        await redis_client.connect()
    app.state.redis_client = redis_client

    store = build_window_store(settings, redis_client.redis if redis_client else None)
    await store.start()
    limiter = SlidingWindowRateLimiter.from_settings(store, settings)
    verifier = CaptchaVerifier.from_settings(settings)
    app.state.limiter = limiter
    app.state.abuse_gate = AbuseGate.from_settings(limiter, verifier, settings)
    app.state.verification_service = VerificationService(
        unit_of_work, settings=settings, redis=redis_client,
    )
    app.state.decay_job = ConfidenceDecayJob(unit_of_work, batch_size=settings.decay_batch_size)
    logger.info("api_started", rate_limit_store=store.name, redis=redis_client is not None)

    try:
        yield
    finally:
        # Shutdown
        await verifier.close()
        await store.close()
        if redis_client is not None:
            await redis_client.close()
        await engine.dispose()
        logger.info("api_stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build and return the fully-configured FastAPI application."""
    settings = settings or get_settings()
    app = FastAPI(
        title="PlanTrust API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # ── Routers (under /api/v1 prefix) ──
    app.include_router(verify.router, prefix=API_PREFIX)
    app.include_router(admin.router, prefix=API_PREFIX)

    # Health is mounted at root (no /api/v1 prefix).
    app.include_router(health.router)

    # Prometheus metrics endpoint
    app.mount("/metrics", make_asgi_app())

    register_exception_handlers(app)

    # ── Middleware (last added runs first) ──
    app.add_middleware(AdminAuthMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)
    add_cors(app, settings.cors_origins)

    return app


app = create_app()


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    _settings = get_settings()
    uvicorn.run("api.main:app", host=_settings.api_host, port=_settings.api_port)
