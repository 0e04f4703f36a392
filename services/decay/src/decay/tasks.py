"""
Celery tasks for PlanTrust batch jobs.

Both tasks are **synchronous** Celery tasks that bridge to the async job
code with ``asyncio.run()``.  Each run builds and disposes its own engine
so no connection pool outlives the event loop it was created on.  Beat
schedules both daily (see ``pt_common.messaging.celery_app``).
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from celery import shared_task

from pt_common.config import get_settings
from pt_common.db.connection import build_engine, build_session_factory

from decay.job import ConfidenceDecayJob
from verification.repository import sql_unit_of_work
from verification.service import VerificationService

logger = structlog.get_logger(__name__)


async def recalculate(dry_run: bool = False, limit: int | None = None) -> dict[str, int]:
    """Run the decay job once against the configured database."""
    settings = get_settings()
    engine = build_engine()
    try:
        job = ConfidenceDecayJob(
            sql_unit_of_work(build_session_factory(engine)),
            batch_size=settings.decay_batch_size,
        )
        stats = await job.run(dry_run=dry_run, limit=limit)
    finally:
        await engine.dispose()
    return stats.as_dict()


async def cleanup(dry_run: bool = False) -> dict[str, Any]:
    """Purge expired verifications and aggregates once."""
    settings = get_settings()
    engine = build_engine()
    try:
        service = VerificationService(
            sql_unit_of_work(build_session_factory(engine)), settings=settings,
        )
        result = await service.cleanup_expired(dry_run=dry_run)
    finally:
        await engine.dispose()
    return result.model_dump()


@shared_task(  # type: ignore[untyped-decorator]
    name="decay.recalculate_confidence",
    acks_late=True,
)
def recalculate_confidence(dry_run: bool = False, limit: int | None = None) -> dict[str, int]:
    logger.info("recalculate_confidence_task_start", dry_run=dry_run, limit=limit)
    return asyncio.run(recalculate(dry_run=dry_run, limit=limit))


@shared_task(  # type: ignore[untyped-decorator]
    name="verification.cleanup_expired",
    acks_late=True,
)
def cleanup_expired(dry_run: bool = False) -> dict[str, Any]:
    logger.info("cleanup_expired_task_start", dry_run=dry_run)
    return asyncio.run(cleanup(dry_run=dry_run))
