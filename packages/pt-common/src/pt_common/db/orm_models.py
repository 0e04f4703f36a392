"""
SQLAlchemy ORM models for PlanTrust.

Defines the database table mappings for providers, insurance plans,
crowd verifications, votes, and the per provider-plan acceptance
aggregate using SQLAlchemy 2.0 declarative style with
``MappedColumn`` / ``mapped_column``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from pt_common.models.enums import AcceptanceStatus, VerificationSource, VoteDirection


def _utc_now() -> datetime:
    """Return timezone-aware UTC now for server defaults."""
    return datetime.now(timezone.utc)


# ── Base class ──


class Base(DeclarativeBase):
    """Declarative base for all PlanTrust ORM models."""


# ── Enum values (mirroring Pydantic enums) ──

ACCEPTANCE_STATUS_ENUM = Enum(
    *[s.value for s in AcceptanceStatus],
    name="acceptance_status_enum",
)
VERIFICATION_SOURCE_ENUM = Enum(
    *[s.value for s in VerificationSource],
    name="verification_source_enum",
)
VOTE_DIRECTION_ENUM = Enum(
    *[d.value for d in VoteDirection],
    name="vote_direction_enum",
)


# ── Collaborator tables (read-only here) ──


class ProviderORM(Base):
    """ORM model for the ``providers`` table."""

    __tablename__ = "providers"

    npi: Mapped[str] = mapped_column(String(10), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    primary_specialty: Mapped[str | None] = mapped_column(String(255), nullable=True)
    taxonomy_description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now,
    )


class InsurancePlanORM(Base):
    """ORM model for the ``insurance_plans`` table."""

    __tablename__ = "insurance_plans"

    plan_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    plan_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    issuer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now,
    )


# ── Verification data ──


class AcceptanceORM(Base):
    """ORM model for the ``provider_plan_acceptance`` aggregate table.

    ``id`` is a monotonically increasing integer so the decay job can page
    over it with a stable keyset cursor.
    """

    __tablename__ = "provider_plan_acceptance"
    __table_args__ = (
        Index(
            "uq_acceptance_pair_location",
            "provider_npi",
            "plan_id",
            "location_id",
            unique=True,
            postgresql_nulls_not_distinct=True,
        ),
        Index("ix_acceptance_expires_at", "expires_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider_npi: Mapped[str] = mapped_column(
        String(10), ForeignKey("providers.npi", ondelete="CASCADE"), nullable=False,
    )
    plan_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("insurance_plans.plan_id", ondelete="CASCADE"), nullable=False,
    )
    location_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    acceptance_status: Mapped[str] = mapped_column(
        ACCEPTANCE_STATUS_ENUM, nullable=False, default=AcceptanceStatus.UNKNOWN.value,
    )
    confidence_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    verification_source: Mapped[str | None] = mapped_column(
        VERIFICATION_SOURCE_ENUM, nullable=True,
    )
    verification_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_verified: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now, onupdate=_utc_now,
    )


class VerificationORM(Base):
    """ORM model for the ``verification_logs`` table.

    Rows are anonymous.  ``source_ip``, ``submitted_by`` and ``user_agent``
    are used for duplicate detection only and never leave the service.
    """

    __tablename__ = "verification_logs"
    __table_args__ = (
        Index("ix_verification_pair_created", "provider_npi", "plan_id", "created_at"),
        Index("ix_verification_pair_ip", "provider_npi", "plan_id", "source_ip"),
        Index("ix_verification_pair_submitted_by", "provider_npi", "plan_id", "submitted_by"),
        Index("ix_verification_expires_at", "expires_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    provider_npi: Mapped[str] = mapped_column(
        String(10), ForeignKey("providers.npi", ondelete="CASCADE"), nullable=False,
    )
    plan_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("insurance_plans.plan_id", ondelete="CASCADE"), nullable=False,
    )
    location_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    acceptance_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("provider_plan_acceptance.id", ondelete="SET NULL"),
        nullable=True,
    )
    verification_source: Mapped[str] = mapped_column(
        VERIFICATION_SOURCE_ENUM, nullable=False, default=VerificationSource.CROWDSOURCE.value,
    )
    accepts_insurance: Mapped[bool] = mapped_column(Boolean, nullable=False)
    accepts_new_patients: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    evidence_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    source_ip: Mapped[str | None] = mapped_column(String(50), nullable=True)
    submitted_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    upvotes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    downvotes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_approved: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now,
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    # Relationships
    votes: Mapped[list[VoteORM]] = relationship(
        back_populates="verification", cascade="all, delete-orphan", passive_deletes=True,
    )


class VoteORM(Base):
    """ORM model for the ``vote_logs`` table."""

    __tablename__ = "vote_logs"
    __table_args__ = (
        UniqueConstraint("verification_id", "source_ip", name="uq_vote_verification_ip"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    verification_id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("verification_logs.id", ondelete="CASCADE"),
        nullable=False,
    )
    source_ip: Mapped[str] = mapped_column(String(50), nullable=False)
    vote: Mapped[str] = mapped_column(VOTE_DIRECTION_ENUM, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now, onupdate=_utc_now,
    )

    # Relationships
    verification: Mapped[VerificationORM] = relationship(back_populates="votes")
