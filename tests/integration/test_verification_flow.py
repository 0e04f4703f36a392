"""Integration tests: verification service against PostgreSQL.

Exercises the SQL repository end to end: submission with Sybil
protection, consensus, voting, confidence decay and expired cleanup.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from pt_common.config import Settings
from pt_common.db.orm_models import AcceptanceORM, VerificationORM, VoteORM
from pt_common.errors import ConflictError
from pt_common.models import VerificationSubmission
from pt_common.models.enums import AcceptanceStatus, VoteDirection
from pt_common.utils import utc_now

from decay.job import ConfidenceDecayJob
from verification.service import VerificationService

NPI = "1234567890"
PLAN_ID = "PLAN-001"

pytestmark = pytest.mark.integration


def _submission(accepts: bool = True) -> VerificationSubmission:
    return VerificationSubmission(npi=NPI, plan_id=PLAN_ID, accepts_insurance=accepts)


@pytest.fixture
def service(uow) -> VerificationService:
    return VerificationService(uow, settings=Settings(redis_url="", log_json=False))


class TestVerificationFlow:
    async def test_first_submission_creates_pending_aggregate(self, service):
        result = await service.submit_verification(_submission(), source_ip="10.0.0.1", user_agent="ua")
        assert result.acceptance.acceptance_status is AcceptanceStatus.PENDING
        assert result.acceptance.verification_count == 1
        assert result.verification.acceptance_id == result.acceptance.id

    async def test_same_ip_within_window_is_rejected(self, service):
        await service.submit_verification(_submission(), source_ip="10.0.0.1", user_agent=None)
        with pytest.raises(ConflictError):
            await service.submit_verification(_submission(), source_ip="10.0.0.1", user_agent=None)

    async def test_three_agreeing_submissions_reach_consensus(self, service):
        for i in range(3):
            result = await service.submit_verification(
                _submission(), source_ip=f"10.0.0.{i}", user_agent=None,
            )
        assert result.acceptance.verification_count == 3
        assert result.acceptance.acceptance_status is AcceptanceStatus.ACCEPTED

    async def test_concurrent_first_submissions_share_one_aggregate(self, service):
        results = await asyncio.gather(
            *(
                service.submit_verification(_submission(), source_ip=f"10.1.0.{i}", user_agent=None)
                for i in range(4)
            )
        )
        assert len({r.acceptance.id for r in results}) == 1
        details = await service.get_pair(NPI, PLAN_ID)
        assert details.acceptance is not None
        assert details.acceptance.verification_count == 4

    async def test_vote_flip_and_duplicate(self, service, db_session_factory):
        result = await service.submit_verification(_submission(), source_ip="10.0.0.1", user_agent=None)
        vid = result.verification.id

        tally = await service.vote_on_verification(vid, VoteDirection.UP, "10.9.9.9")
        assert (tally.upvotes, tally.downvotes, tally.vote_changed) == (1, 0, False)

        with pytest.raises(ConflictError):
            await service.vote_on_verification(vid, VoteDirection.UP, "10.9.9.9")

        tally = await service.vote_on_verification(vid, VoteDirection.DOWN, "10.9.9.9")
        assert (tally.upvotes, tally.downvotes, tally.vote_changed) == (0, 1, True)

        tally = await service.vote_on_verification(vid, VoteDirection.UP, "10.9.9.9")
        assert (tally.upvotes, tally.downvotes, tally.vote_changed) == (1, 0, True)
        async with db_session_factory() as session:
            votes = await session.scalar(select(func.count()).select_from(VoteORM))
        assert votes == 1


class TestMaintenance:
    async def test_decay_lowers_stale_score(self, service, uow, db_session_factory):
        for i in range(3):
            await service.submit_verification(_submission(), source_ip=f"10.0.0.{i}", user_agent=None)
        async with db_session_factory() as session, session.begin():
            await session.execute(
                update(AcceptanceORM).values(last_verified=utc_now() - timedelta(days=365)),
            )

        stats = await ConfidenceDecayJob(uow, batch_size=10).run()

        assert stats.processed == 1
        assert stats.updated == 1
        details = await service.get_pair(NPI, PLAN_ID)
        assert details.acceptance is not None
        assert details.acceptance.confidence_score < 70

    async def test_cleanup_removes_expired_rows(self, service, db_session_factory):
        await service.submit_verification(_submission(), source_ip="10.0.0.1", user_agent=None)
        async with db_session_factory() as session, session.begin():
            await session.execute(update(VerificationORM).values(expires_at=utc_now() - timedelta(days=1)))

        dry = await service.cleanup_expired(dry_run=True)
        assert dry.expired_verification_logs == 1
        assert dry.deleted_verification_logs == 0

        result = await service.cleanup_expired(batch_size=1)
        assert result.deleted_verification_logs == 1
        stats = await service.expiration_stats()
        assert stats.verification_logs.total == 0
