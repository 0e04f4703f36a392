"""
Verification & vote service for PlanTrust.

Orchestrates a crowd write after it has passed the abuse gate: existence
checks, the Sybil window, persistence, aggregate rescoring and the
consensus decision.  Each write runs in one transaction; submissions hold
a per-pair advisory lock and votes lock the verification row, so
check-then-insert sequences are atomic under concurrency.  Unique indexes
backstop both paths; an ``IntegrityError`` is retried once and then
surfaces as a conflict.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from tenacity import retry, retry_if_exception_type, stop_after_attempt

from pt_common.config import Settings, get_settings
from pt_common.db.orm_models import AcceptanceORM, VerificationORM, VoteORM
from pt_common.errors import (
    AppError,
    ConflictError,
    NotFoundError,
    ValidationError,
    field_errors,
)
from pt_common.messaging.redis_client import ACCEPTANCE_UPDATED_CHANNEL, RedisClient
from pt_common.metrics import status_changes_total, verifications_total, votes_total
from pt_common.models import (
    AcceptanceSnapshot,
    AcceptanceStatus,
    CleanupResult,
    ExpirationStats,
    PairDetails,
    PairSummary,
    SubmissionResult,
    TableExpiration,
    VerificationPublic,
    VerificationSource,
    VerificationStats,
    VerificationSubmission,
    VoteDirection,
    VoteTally,
)
from pt_common.utils import best_effort, utc_now

from verification.aggregate import rescore
from verification.confidence import calculate_confidence
from verification.consensus import agreement_counts, decide_status
from verification.repository import UnitOfWork, VerificationRepository
from verification.sybil import SybilChecker

logger = structlog.get_logger(__name__)

DUPLICATE_VOTE = "DUPLICATE_VOTE"
PAIR_VERIFICATION_LIMIT = 50
RECENT_DEFAULT_LIMIT = 20
RECENT_MAX_LIMIT = 100
MAX_USER_AGENT_LENGTH = 500

_retry_integrity = retry(
    retry=retry_if_exception_type(IntegrityError),
    stop=stop_after_attempt(2),
    reraise=True,
)


class VerificationService:
    """Crowd verification, voting and aggregate maintenance.

    Parameters
    ----------
    unit_of_work:
        Factory yielding a repository bound to one transaction.
    settings:
        TTL, Sybil window and consensus thresholds.
    redis:
        Optional client for ``acceptance_updated`` notifications.
    clock:
        Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        unit_of_work: UnitOfWork,
        *,
        settings: Settings | None = None,
        redis: RedisClient | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        settings = settings or get_settings()
        self._uow = unit_of_work
        self._redis = redis
        self._clock = clock
        self.ttl = timedelta(days=settings.verification_ttl_days)
        self.min_verifications = settings.min_verifications_for_consensus
        self.min_confidence = settings.min_confidence_for_status_change
        self.cleanup_batch_size = settings.cleanup_batch_size
        self.sybil = SybilChecker(settings.sybil_window_days)

    # ── writes ──

    async def submit_verification(
        self,
        submission: VerificationSubmission | Mapping[str, Any],
        *,
        source_ip: str | None = None,
        user_agent: str | None = None,
    ) -> SubmissionResult:
        """Record one crowd verification and rescore its aggregate.

        Raises:
            ValidationError: The submission is malformed.
            NotFoundError: The provider or plan does not exist.
            ConflictError: Sybil-window duplicate or a lost creation race.
        """
        if not isinstance(submission, VerificationSubmission):
            try:
                submission = VerificationSubmission.model_validate(submission)
            except PydanticValidationError as exc:
                raise ValidationError(
                    "Invalid verification submission",
                    details=field_errors(exc.errors()),
                ) from exc

        try:
            result, previous = await self._submit(submission, source_ip, user_agent)
        except IntegrityError as exc:
            verifications_total.labels(outcome="conflict").inc()
            logger.warning("verification_integrity_conflict", npi=submission.npi, plan_id=submission.plan_id)
            raise ConflictError(
                "The verification conflicted with a concurrent update. Please retry.",
            ) from exc
        except AppError as exc:
            verifications_total.labels(outcome=exc.code.lower()).inc()
            raise

        verifications_total.labels(outcome="accepted").inc()
        logger.info(
            "verification_submitted",
            verification_id=str(result.verification.id),
            npi=submission.npi,
            plan_id=submission.plan_id,
            acceptance_status=result.acceptance.acceptance_status.value,
            confidence_score=result.confidence.score,
        )
        await self._after_aggregate_change(previous, result.acceptance)
        return result

    @_retry_integrity
    async def _submit(
        self,
        submission: VerificationSubmission,
        source_ip: str | None,
        user_agent: str | None,
    ) -> tuple[SubmissionResult, AcceptanceStatus]:
        now = self._clock()
        expires_at = now + self.ttl
        npi, plan_id = submission.npi, submission.plan_id

        async with self._uow() as repo:
            await repo.lock_pair(npi, plan_id)

            provider = await repo.get_provider(npi)
            if provider is None:
                raise NotFoundError(f"Provider with NPI {npi} not found")
            if not await repo.plan_exists(plan_id):
                raise NotFoundError(f"Plan with ID {plan_id} not found")

            await self.sybil.check(
                repo,
                npi=npi,
                plan_id=plan_id,
                source_ip=source_ip,
                submitted_by=submission.submitted_by,
                now=now,
            )

            acceptance = await repo.get_acceptance(
                npi, plan_id, submission.location_id, for_update=True,
            )
            if acceptance is None:
                acceptance = AcceptanceORM(
                    provider_npi=npi,
                    plan_id=plan_id,
                    location_id=submission.location_id,
                    acceptance_status=AcceptanceStatus.UNKNOWN.value,
                    confidence_score=0,
                    verification_count=0,
                    created_at=now,
                    updated_at=now,
                )
                await repo.add_acceptance(acceptance)
            previous = AcceptanceStatus(acceptance.acceptance_status)

            verification = VerificationORM(
                id=uuid4(),
                provider_npi=npi,
                plan_id=plan_id,
                location_id=submission.location_id,
                acceptance_id=acceptance.id,
                verification_source=VerificationSource.CROWDSOURCE.value,
                accepts_insurance=submission.accepts_insurance,
                accepts_new_patients=submission.accepts_new_patients,
                notes=submission.notes,
                evidence_url=submission.evidence_url,
                source_ip=source_ip,
                submitted_by=submission.submitted_by,
                user_agent=user_agent[:MAX_USER_AGENT_LENGTH] if user_agent else None,
                upvotes=0,
                downvotes=0,
                created_at=now,
                expires_at=expires_at,
            )
            await repo.add_verification(verification)

            tallies = await repo.pair_tallies(npi, plan_id, now)
            agreeing, disagreeing = agreement_counts(tallies.accepted, tallies.rejected)
            confidence = calculate_confidence(
                data_source=VerificationSource.CROWDSOURCE,
                last_verified_at=now,
                verification_count=tallies.verification_count,
                upvotes=agreeing,
                downvotes=disagreeing,
                specialty=provider.primary_specialty,
                taxonomy_description=provider.taxonomy_description,
                now=now,
            )
            status = self._decide(tallies.verification_count, confidence.score, tallies.accepted, tallies.rejected)

            acceptance.acceptance_status = status.value
            acceptance.confidence_score = confidence.score
            acceptance.verification_count = tallies.verification_count
            acceptance.verification_source = VerificationSource.CROWDSOURCE.value
            acceptance.last_verified = now
            acceptance.expires_at = expires_at
            acceptance.updated_at = now

            result = SubmissionResult(
                verification=VerificationPublic.model_validate(verification),
                acceptance=AcceptanceSnapshot.model_validate(acceptance),
                confidence=confidence,
            )
        return result, previous

    async def vote_on_verification(
        self,
        verification_id: UUID,
        direction: VoteDirection | str,
        voter_ip: str | None,
    ) -> VoteTally:
        """Cast or change a vote and rescore the parent aggregate.

        Raises:
            ValidationError: Missing voter IP or unknown direction.
            NotFoundError: The verification is missing or expired.
            ConflictError: Same-direction repeat vote.
        """
        if not voter_ip:
            raise ValidationError("Source IP is required for voting")
        try:
            direction = VoteDirection(direction)
        except ValueError as exc:
            raise ValidationError("Vote must be 'up' or 'down'") from exc

        try:
            tally, previous, snapshot = await self._vote(verification_id, direction, voter_ip)
        except IntegrityError as exc:
            votes_total.labels(direction=direction.value, outcome="conflict").inc()
            raise ConflictError(
                "You have already voted on this verification", code=DUPLICATE_VOTE,
            ) from exc
        except AppError as exc:
            votes_total.labels(direction=direction.value, outcome=exc.code.lower()).inc()
            raise

        votes_total.labels(
            direction=direction.value,
            outcome="changed" if tally.vote_changed else "recorded",
        ).inc()
        logger.info(
            "vote_recorded",
            verification_id=str(verification_id),
            direction=direction.value,
            vote_changed=tally.vote_changed,
            upvotes=tally.upvotes,
            downvotes=tally.downvotes,
        )
        if previous is not None and snapshot is not None:
            await self._after_aggregate_change(previous, snapshot)
        return tally

    @_retry_integrity
    async def _vote(
        self,
        verification_id: UUID,
        direction: VoteDirection,
        voter_ip: str,
    ) -> tuple[VoteTally, AcceptanceStatus | None, AcceptanceSnapshot | None]:
        now = self._clock()
        async with self._uow() as repo:
            verification = await repo.get_verification(verification_id, for_update=True)
            if verification is None or (
                verification.expires_at is not None and verification.expires_at <= now
            ):
                raise NotFoundError("Verification not found")

            existing = await repo.get_vote(verification_id, voter_ip)
            changed = False
            if existing is not None:
                if existing.vote == direction.value:
                    raise ConflictError(
                        "You have already voted on this verification", code=DUPLICATE_VOTE,
                    )
                _adjust(verification, VoteDirection(existing.vote), -1)
                existing.vote = direction.value
                existing.updated_at = now
                changed = True
            else:
                await repo.add_vote(
                    VoteORM(
                        id=uuid4(),
                        verification_id=verification_id,
                        source_ip=voter_ip,
                        vote=direction.value,
                        created_at=now,
                        updated_at=now,
                    ),
                )
            _adjust(verification, direction, +1)

            previous, snapshot = await self._recompute(repo, verification, now)
            tally = VoteTally(
                id=verification.id,
                upvotes=verification.upvotes,
                downvotes=verification.downvotes,
                vote_changed=changed,
            )
        return tally, previous, snapshot

    async def _recompute(
        self,
        repo: VerificationRepository,
        verification: VerificationORM,
        now: datetime,
    ) -> tuple[AcceptanceStatus | None, AcceptanceSnapshot | None]:
        acceptance = None
        if verification.acceptance_id is not None:
            acceptance = await repo.get_acceptance_by_id(verification.acceptance_id, for_update=True)
        if acceptance is None:
            acceptance = await repo.get_acceptance(
                verification.provider_npi,
                verification.plan_id,
                verification.location_id,
                for_update=True,
            )
        if acceptance is None:
            return None, None

        provider = await repo.get_provider(verification.provider_npi)
        tallies = await repo.pair_tallies(verification.provider_npi, verification.plan_id, now)
        confidence = rescore(
            acceptance,
            tallies,
            specialty=provider.primary_specialty if provider else None,
            taxonomy_description=provider.taxonomy_description if provider else None,
            now=now,
        )
        previous = AcceptanceStatus(acceptance.acceptance_status)
        status = self._decide(tallies.verification_count, confidence.score, tallies.accepted, tallies.rejected)

        acceptance.acceptance_status = status.value
        acceptance.confidence_score = confidence.score
        acceptance.verification_count = tallies.verification_count
        acceptance.updated_at = now
        return previous, AcceptanceSnapshot.model_validate(acceptance)

    def _decide(self, count: int, score: int, accepted: int, rejected: int) -> AcceptanceStatus:
        return decide_status(
            verification_count=count,
            confidence_score=score,
            accepted_count=accepted,
            rejected_count=rejected,
            min_verifications=self.min_verifications,
            min_confidence=self.min_confidence,
        )

    async def _after_aggregate_change(
        self, previous: AcceptanceStatus, acceptance: AcceptanceSnapshot,
    ) -> None:
        if previous != acceptance.acceptance_status:
            status_changes_total.labels(
                from_status=previous.value,
                to_status=acceptance.acceptance_status.value,
            ).inc()
            logger.info(
                "acceptance_status_changed",
                acceptance_id=acceptance.id,
                npi=acceptance.provider_npi,
                plan_id=acceptance.plan_id,
                from_status=previous.value,
                to_status=acceptance.acceptance_status.value,
            )
        if self._redis is not None:
            await best_effort(
                self._redis.publish(
                    ACCEPTANCE_UPDATED_CHANNEL, acceptance.model_dump(mode="json"),
                ),
                "acceptance_publish_failed",
                acceptance_id=acceptance.id,
            )

    # ── reads ──

    async def get_pair(
        self,
        npi: str,
        plan_id: str,
        *,
        location_id: int | None = None,
        include_expired: bool = False,
    ) -> PairDetails:
        """Aggregate, live confidence and newest verifications for a pair."""
        now = self._clock()
        async with self._uow() as repo:
            provider = await repo.get_provider(npi)
            if provider is None:
                raise NotFoundError(f"Provider with NPI {npi} not found")
            if not await repo.plan_exists(plan_id):
                raise NotFoundError(f"Plan with ID {plan_id} not found")

            acceptance = await repo.get_acceptance(npi, plan_id, location_id)
            rows = await repo.list_verifications(
                now=now,
                limit=PAIR_VERIFICATION_LIMIT,
                npi=npi,
                plan_id=plan_id,
                include_expired=include_expired,
            )
            verifications = [VerificationPublic.model_validate(row) for row in rows]

            snapshot = None
            confidence = None
            expired = False
            if acceptance is not None:
                tallies = await repo.pair_tallies(npi, plan_id, now)
                confidence = rescore(
                    acceptance,
                    tallies,
                    specialty=provider.primary_specialty,
                    taxonomy_description=provider.taxonomy_description,
                    now=now,
                )
                snapshot = AcceptanceSnapshot.model_validate(acceptance)
                expired = acceptance.expires_at is not None and acceptance.expires_at < now

        return PairDetails(
            acceptance=snapshot,
            is_acceptance_expired=expired,
            confidence=confidence,
            verifications=verifications,
            summary=PairSummary(
                total_verifications=len(verifications),
                total_upvotes=sum(v.upvotes for v in verifications),
                total_downvotes=sum(v.downvotes for v in verifications),
            ),
        )

    async def recent_verifications(
        self,
        limit: int = RECENT_DEFAULT_LIMIT,
        *,
        npi: str | None = None,
        plan_id: str | None = None,
    ) -> list[VerificationPublic]:
        limit = max(1, min(limit, RECENT_MAX_LIMIT))
        now = self._clock()
        async with self._uow() as repo:
            rows = await repo.list_verifications(now=now, limit=limit, npi=npi, plan_id=plan_id)
            return [VerificationPublic.model_validate(row) for row in rows]

    async def verification_stats(self) -> VerificationStats:
        now = self._clock()
        async with self._uow() as repo:
            return VerificationStats(**await repo.verification_stats(now))

    # ── expiry ──

    async def cleanup_expired(
        self, *, dry_run: bool = False, batch_size: int | None = None,
    ) -> CleanupResult:
        """Count, and unless *dry_run* delete, expired verifications and aggregates.

        Deletes run in batches, one transaction per batch, so a large backlog
        never holds locks for long.  Votes are removed by cascade.
        """
        batch_size = batch_size or self.cleanup_batch_size
        now = self._clock()
        async with self._uow() as repo:
            expired_logs = await repo.count_expired(VerificationORM, now)
            expired_acceptances = await repo.count_expired(AcceptanceORM, now)

        result = CleanupResult(
            dry_run=dry_run,
            expired_verification_logs=expired_logs,
            expired_plan_acceptances=expired_acceptances,
        )
        if not dry_run:
            result.deleted_verification_logs = await self._delete_in_batches(
                VerificationORM, now, batch_size,
            )
            result.deleted_plan_acceptances = await self._delete_in_batches(
                AcceptanceORM, now, batch_size,
            )

        logger.info("expired_cleanup_complete", **result.model_dump())
        return result

    async def _delete_in_batches(
        self,
        model: type[VerificationORM | AcceptanceORM],
        now: datetime,
        batch_size: int,
    ) -> int:
        total = 0
        while True:
            async with self._uow() as repo:
                deleted = await repo.delete_expired_batch(model, now, batch_size)
            total += deleted
            if deleted < batch_size:
                return total

    async def expiration_stats(self) -> ExpirationStats:
        now = self._clock()
        async with self._uow() as repo:
            logs = await repo.expiration_counts(VerificationORM, now)
            acceptances = await repo.expiration_counts(AcceptanceORM, now)
        return ExpirationStats(
            verification_logs=TableExpiration(**logs),
            plan_acceptances=TableExpiration(**acceptances),
        )


def _adjust(verification: VerificationORM, direction: VoteDirection, delta: int) -> None:
    if direction is VoteDirection.UP:
        verification.upvotes = max(0, verification.upvotes + delta)
    else:
        verification.downvotes = max(0, verification.downvotes + delta)
