"""
PostgreSQL repository for verifications, votes and acceptance aggregates.

All queries run on the ``AsyncSession`` the repository was built with; the
caller owns the transaction.  :func:`sql_unit_of_work` wraps a session
factory so each service operation runs in exactly one transaction.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import ColumnElement, delete, func, or_, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pt_common.db.orm_models import (
    AcceptanceORM,
    InsurancePlanORM,
    ProviderORM,
    VerificationORM,
    VoteORM,
)


@dataclass(frozen=True, slots=True)
class PairTallies:
    """Direction counts and summed votes over a pair's non-expired verifications."""

    accepted: int = 0
    rejected: int = 0
    upvotes: int = 0
    downvotes: int = 0

    @property
    def verification_count(self) -> int:
        return self.accepted + self.rejected


def _not_expired(column: Any, now: datetime) -> ColumnElement[bool]:
    return or_(column.is_(None), column > now)


class VerificationRepository:
    """Data access for the verification service and the decay job.

    Parameters
    ----------
    session:
        Session whose transaction every call joins.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def savepoint(self) -> AbstractAsyncContextManager[Any]:
        """Nested transaction; an error inside rolls back only the savepoint."""
        return self.session.begin_nested()

    # ── locking ──

    async def lock_pair(self, npi: str, plan_id: str) -> None:
        """Take a transaction-scoped advisory lock on the provider-plan pair."""
        await self.session.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
            {"key": f"{npi}:{plan_id}"},
        )

    # ── collaborators ──

    async def get_provider(self, npi: str) -> ProviderORM | None:
        return await self.session.get(ProviderORM, npi)

    async def plan_exists(self, plan_id: str) -> bool:
        return await self.session.get(InsurancePlanORM, plan_id) is not None

    # ── sybil lookups ──

    async def has_recent_from_ip(
        self, npi: str, plan_id: str, source_ip: str, since: datetime,
    ) -> bool:
        stmt = (
            select(VerificationORM.id)
            .where(
                VerificationORM.provider_npi == npi,
                VerificationORM.plan_id == plan_id,
                VerificationORM.source_ip == source_ip,
                VerificationORM.created_at >= since,
            )
            .limit(1)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none() is not None

    async def has_recent_from_contact(
        self, npi: str, plan_id: str, submitted_by: str, since: datetime,
    ) -> bool:
        stmt = (
            select(VerificationORM.id)
            .where(
                VerificationORM.provider_npi == npi,
                VerificationORM.plan_id == plan_id,
                VerificationORM.submitted_by == submitted_by,
                VerificationORM.created_at >= since,
            )
            .limit(1)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none() is not None

    # ── verifications ──

    async def add_verification(self, verification: VerificationORM) -> None:
        self.session.add(verification)
        await self.session.flush()

    async def get_verification(
        self, verification_id: UUID, *, for_update: bool = False,
    ) -> VerificationORM | None:
        stmt = select(VerificationORM).where(VerificationORM.id == verification_id)
        if for_update:
            stmt = stmt.with_for_update()
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def pair_tallies(self, npi: str, plan_id: str, now: datetime) -> PairTallies:
        """Count claims by direction and sum vote tallies for a pair."""
        stmt = select(
            func.count().filter(VerificationORM.accepts_insurance.is_(True)),
            func.count().filter(VerificationORM.accepts_insurance.is_(False)),
            func.coalesce(func.sum(VerificationORM.upvotes), 0),
            func.coalesce(func.sum(VerificationORM.downvotes), 0),
        ).where(
            VerificationORM.provider_npi == npi,
            VerificationORM.plan_id == plan_id,
            _not_expired(VerificationORM.expires_at, now),
        )
        accepted, rejected, upvotes, downvotes = (await self.session.execute(stmt)).one()
        return PairTallies(int(accepted), int(rejected), int(upvotes), int(downvotes))

    async def list_verifications(
        self,
        *,
        now: datetime,
        limit: int,
        npi: str | None = None,
        plan_id: str | None = None,
        include_expired: bool = False,
    ) -> list[VerificationORM]:
        """Newest verifications first, optionally filtered to a provider or plan."""
        stmt = select(VerificationORM)
        if npi:
            stmt = stmt.where(VerificationORM.provider_npi == npi)
        if plan_id:
            stmt = stmt.where(VerificationORM.plan_id == plan_id)
        if not include_expired:
            stmt = stmt.where(_not_expired(VerificationORM.expires_at, now))
        stmt = stmt.order_by(VerificationORM.created_at.desc()).limit(limit)
        return list((await self.session.execute(stmt)).scalars().all())

    async def verification_stats(self, now: datetime) -> dict[str, int]:
        stmt = select(
            func.count(),
            func.count().filter(VerificationORM.is_approved.is_(True)),
            func.count().filter(VerificationORM.is_approved.is_(None)),
            func.count().filter(VerificationORM.created_at >= now - timedelta(days=1)),
        ).select_from(VerificationORM)
        total, approved, pending, recent = (await self.session.execute(stmt)).one()
        return {
            "total": int(total),
            "approved": int(approved),
            "pending": int(pending),
            "recent_count": int(recent),
        }

    # ── votes ──

    async def get_vote(self, verification_id: UUID, source_ip: str) -> VoteORM | None:
        stmt = select(VoteORM).where(
            VoteORM.verification_id == verification_id,
            VoteORM.source_ip == source_ip,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def add_vote(self, vote: VoteORM) -> None:
        self.session.add(vote)
        await self.session.flush()

    # ── acceptance aggregates ──

    async def get_acceptance(
        self,
        npi: str,
        plan_id: str,
        location_id: int | None = None,
        *,
        for_update: bool = False,
    ) -> AcceptanceORM | None:
        location = (
            AcceptanceORM.location_id.is_(None)
            if location_id is None
            else AcceptanceORM.location_id == location_id
        )
        stmt = select(AcceptanceORM).where(
            AcceptanceORM.provider_npi == npi,
            AcceptanceORM.plan_id == plan_id,
            location,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def get_acceptance_by_id(
        self, acceptance_id: int, *, for_update: bool = False,
    ) -> AcceptanceORM | None:
        stmt = select(AcceptanceORM).where(AcceptanceORM.id == acceptance_id)
        if for_update:
            stmt = stmt.with_for_update()
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def add_acceptance(self, acceptance: AcceptanceORM) -> None:
        self.session.add(acceptance)
        await self.session.flush()

    # ── decay ──

    async def count_scored_acceptances(self) -> int:
        stmt = select(func.count()).select_from(AcceptanceORM).where(
            AcceptanceORM.verification_count >= 1,
        )
        return int((await self.session.execute(stmt)).scalar_one())

    async def acceptance_page(
        self, after_id: int, limit: int,
    ) -> list[tuple[AcceptanceORM, str | None, str | None]]:
        """Aggregates with ``id > after_id`` and the provider's specialty texts."""
        stmt = (
            select(
                AcceptanceORM,
                ProviderORM.primary_specialty,
                ProviderORM.taxonomy_description,
            )
            .outerjoin(ProviderORM, ProviderORM.npi == AcceptanceORM.provider_npi)
            .where(AcceptanceORM.id > after_id, AcceptanceORM.verification_count >= 1)
            .order_by(AcceptanceORM.id)
            .limit(limit)
        )
        return [tuple(row) for row in (await self.session.execute(stmt)).all()]

    # ── expiry ──

    async def count_expired(self, model: type[VerificationORM | AcceptanceORM], now: datetime) -> int:
        stmt = select(func.count()).select_from(model).where(
            model.expires_at.is_not(None), model.expires_at < now,
        )
        return int((await self.session.execute(stmt)).scalar_one())

    async def delete_expired_batch(
        self, model: type[VerificationORM | AcceptanceORM], now: datetime, batch_size: int,
    ) -> int:
        """Delete up to *batch_size* expired rows; votes go with their verification."""
        ids = (
            select(model.id)
            .where(model.expires_at.is_not(None), model.expires_at < now)
            .limit(batch_size)
        )
        result = await self.session.execute(
            delete(model).where(model.id.in_(ids)).execution_options(synchronize_session=False),
        )
        return int(result.rowcount or 0)

    async def expiration_counts(
        self, model: type[VerificationORM | AcceptanceORM], now: datetime,
    ) -> dict[str, int]:
        expires = model.expires_at
        stmt = select(
            func.count(),
            func.count().filter(expires.is_not(None)),
            func.count().filter(expires < now),
            func.count().filter(expires >= now, expires <= now + timedelta(days=7)),
            func.count().filter(expires >= now, expires <= now + timedelta(days=30)),
        ).select_from(model)
        total, with_ttl, expired, within_7, within_30 = (await self.session.execute(stmt)).one()
        return {
            "total": int(total),
            "with_ttl": int(with_ttl),
            "expired": int(expired),
            "expiring_within_7_days": int(within_7),
            "expiring_within_30_days": int(within_30),
        }


UnitOfWork = Callable[[], AbstractAsyncContextManager[VerificationRepository]]


def sql_unit_of_work(session_factory: async_sessionmaker[AsyncSession]) -> UnitOfWork:
    """Build a unit-of-work factory: one session, one transaction per use.

    The transaction commits when the block exits normally and rolls back
    when it raises.
    """

    @asynccontextmanager
    async def unit_of_work() -> AsyncIterator[VerificationRepository]:
        async with session_factory() as session, session.begin():
            yield VerificationRepository(session)

    return unit_of_work
