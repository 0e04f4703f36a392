"""Tests for pt_common.messaging.celery_app."""

from __future__ import annotations

from pt_common.messaging.celery_app import celery


class TestCeleryApp:
    def test_daily_jobs_are_scheduled(self):
        tasks = {entry["task"] for entry in celery.conf.beat_schedule.values()}
        assert tasks == {"decay.recalculate_confidence", "verification.cleanup_expired"}

    def test_json_only(self):
        assert celery.conf.task_serializer == "json"
        assert celery.conf.accept_content == ["json"]
        assert celery.conf.task_acks_late is True
