"""
Admin API router for PlanTrust.

Maintenance endpoints for expired-record cleanup and confidence
recalculation.  Access is enforced by ``AdminAuthMiddleware``.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Query

from api.dependencies import get_decay_job, get_verification_service
from decay.job import ConfidenceDecayJob
from verification.service import VerificationService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/cleanup-expired")
async def cleanup_expired(
    dry_run: bool = Query(False, alias="dryRun"),
    batch_size: int | None = Query(None, alias="batchSize", ge=1, le=10_000),
    service: VerificationService = Depends(get_verification_service),
) -> dict[str, Any]:
    logger.info("admin_cleanup_requested", dry_run=dry_run, batch_size=batch_size)
    result = await service.cleanup_expired(dry_run=dry_run, batch_size=batch_size)
    if dry_run:
        total = result.expired_verification_logs + result.expired_plan_acceptances
        message = f"Dry run complete. {total} records would be deleted."
    else:
        total = result.deleted_verification_logs + result.deleted_plan_acceptances
        message = f"Cleanup complete. {total} records deleted."
    return {"success": True, "data": {**result.model_dump(), "message": message}}


@router.get("/expiration-stats")
async def expiration_stats(
    service: VerificationService = Depends(get_verification_service),
) -> dict[str, Any]:
    stats = await service.expiration_stats()
    return {"success": True, "data": stats.model_dump()}


@router.post("/recalculate-confidence")
async def recalculate_confidence(
    dry_run: bool = Query(False, alias="dryRun"),
    limit: int | None = Query(None, ge=1),
    job: ConfidenceDecayJob = Depends(get_decay_job),
) -> dict[str, Any]:
    logger.info("admin_recalculation_requested", dry_run=dry_run, limit=limit)
    stats = await job.run(dry_run=dry_run, limit=limit)
    if dry_run:
        message = f"Dry run complete. {stats.updated} of {stats.processed} scores would change."
    else:
        message = f"Recalculation complete. {stats.updated} of {stats.processed} scores updated."
    return {"success": True, "data": {**stats.as_dict(), "message": message}}
