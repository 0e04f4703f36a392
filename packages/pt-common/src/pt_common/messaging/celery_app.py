"""
Celery application configuration for PlanTrust.

Defines the shared Celery app instance used for the scheduled batch jobs
(confidence decay, expired-record cleanup).  Uses Redis as broker and
result backend; both jobs run daily via Celery beat.
"""

from __future__ import annotations

from celery import Celery
from celery.schedules import crontab

from pt_common.config import get_settings

_settings = get_settings()

celery = Celery(
    "plantrust",
    broker=_settings.celery_broker_url,
    backend=_settings.celery_result_backend,
)

celery.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

celery.conf.beat_schedule = {
    "recalculate-confidence-daily": {
        "task": "decay.recalculate_confidence",
        "schedule": crontab(hour=3, minute=0),
    },
    "cleanup-expired-daily": {
        "task": "verification.cleanup_expired",
        "schedule": crontab(hour=4, minute=0),
    },
}

# Auto-discover tasks in the decay service package.
celery.autodiscover_tasks(["decay"], related_name="tasks")
