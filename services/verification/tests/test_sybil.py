"""Tests for verification.sybil."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from pt_common.errors import ConflictError

from verification.sybil import SYBIL_DUPLICATE, SybilChecker

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


@pytest.fixture()
def history() -> MagicMock:
    h = MagicMock()
    h.has_recent_from_ip = AsyncMock(return_value=False)
    h.has_recent_from_contact = AsyncMock(return_value=False)
    return h


async def _check(history, **kwargs):
    params = dict(npi="1234567890", plan_id="P1", source_ip="1.1.1.1", submitted_by=None, now=NOW)
    params.update(kwargs)
    await SybilChecker().check(history, **params)


class TestSybilChecker:
    async def test_clean_submission_passes(self, history):
        await _check(history)
        history.has_recent_from_ip.assert_awaited_once_with(
            "1234567890", "P1", "1.1.1.1", NOW - timedelta(days=30),
        )

    async def test_same_ip_is_rejected(self, history):
        history.has_recent_from_ip.return_value = True
        with pytest.raises(ConflictError) as exc_info:
            await _check(history)
        assert exc_info.value.code == SYBIL_DUPLICATE
        assert exc_info.value.status_code == 409
        assert "within the last 30 days" in exc_info.value.message

    async def test_same_contact_is_rejected_from_new_ip(self, history):
        history.has_recent_from_contact.return_value = True
        with pytest.raises(ConflictError) as exc_info:
            await _check(history, source_ip="9.9.9.9", submitted_by="a@example.com")
        assert exc_info.value.message.startswith("This email")

    async def test_contact_not_checked_when_absent(self, history):
        await _check(history)
        history.has_recent_from_contact.assert_not_awaited()

    async def test_ip_not_checked_when_absent(self, history):
        await _check(history, source_ip=None, submitted_by="a@example.com")
        history.has_recent_from_ip.assert_not_awaited()
        history.has_recent_from_contact.assert_awaited_once()

    async def test_custom_window(self, history):
        await SybilChecker(window_days=7).check(
            history, npi="1234567890", plan_id="P1", source_ip="1.1.1.1", submitted_by=None, now=NOW,
        )
        since = history.has_recent_from_ip.await_args.args[3]
        assert since == NOW - timedelta(days=7)
