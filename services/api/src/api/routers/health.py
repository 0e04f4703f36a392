"""
Health check API router for PlanTrust.

Reports database and Redis connectivity.  Redis is optional: without a
configured URL it reports ``not_configured`` and the overall status stays
healthy.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from pt_common.db.connection import check_database_health

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    services: dict[str, str]


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> JSONResponse:
    services: dict[str, str] = {}

    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        services["database"] = "not_configured"
    else:
        services["database"] = "healthy" if await check_database_health(engine) else "unhealthy"

    redis = getattr(request.app.state, "redis_client", None)
    if redis is None:
        services["redis"] = "not_configured"
    else:
        services["redis"] = "healthy" if await redis.health_check() else "unhealthy"

    healthy = all(v in ("healthy", "not_configured") for v in services.values())
    body = HealthResponse(status="healthy" if healthy else "degraded", services=services)
    return JSONResponse(status_code=200 if healthy else 503, content=body.model_dump())
