"""initial schema

Revision ID: 3b7e2c91a4d0
Revises:
Create Date: 2026-09-14 10:12:31.402117

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3b7e2c91a4d0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Custom enum types
acceptance_status_enum = postgresql.ENUM(
    "ACCEPTED", "NOT_ACCEPTED", "PENDING", "UNKNOWN",
    name="acceptance_status_enum",
    create_type=False,
)
verification_source_enum = postgresql.ENUM(
    "CMS_NPPES", "CMS_PLAN_FINDER", "CMS_DATA", "CARRIER_API", "CARRIER_DATA",
    "PROVIDER_PORTAL", "USER_UPLOAD", "PHONE_CALL", "CROWDSOURCE", "AUTOMATED",
    name="verification_source_enum",
    create_type=False,
)
vote_direction_enum = postgresql.ENUM(
    "up", "down",
    name="vote_direction_enum",
    create_type=False,
)


def upgrade() -> None:
    # Create enum types
    acceptance_status_enum.create(op.get_bind(), checkfirst=True)
    verification_source_enum.create(op.get_bind(), checkfirst=True)
    vote_direction_enum.create(op.get_bind(), checkfirst=True)

    # providers
    op.create_table(
        "providers",
        sa.Column("npi", sa.String(10), primary_key=True),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("primary_specialty", sa.String(255), nullable=True),
        sa.Column("taxonomy_description", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )

    # insurance_plans
    op.create_table(
        "insurance_plans",
        sa.Column("plan_id", sa.String(50), primary_key=True),
        sa.Column("plan_name", sa.String(255), nullable=True),
        sa.Column("issuer_name", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )

    # provider_plan_acceptance (SERIAL PK, keyset cursor for the decay job)
    op.create_table(
        "provider_plan_acceptance",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("provider_npi", sa.String(10), sa.ForeignKey("providers.npi", ondelete="CASCADE"), nullable=False),
        sa.Column("plan_id", sa.String(50), sa.ForeignKey("insurance_plans.plan_id", ondelete="CASCADE"), nullable=False),
        sa.Column("location_id", sa.Integer, nullable=True),
        sa.Column("acceptance_status", acceptance_status_enum, nullable=False, server_default="UNKNOWN"),
        sa.Column("confidence_score", sa.Integer, nullable=False, server_default="0"),
        sa.Column("verification_source", verification_source_enum, nullable=True),
        sa.Column("verification_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_verified", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index(
        "uq_acceptance_pair_location",
        "provider_plan_acceptance",
        ["provider_npi", "plan_id", "location_id"],
        unique=True,
        postgresql_nulls_not_distinct=True,
    )
    op.create_index("ix_acceptance_expires_at", "provider_plan_acceptance", ["expires_at"])

    # verification_logs
    op.create_table(
        "verification_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("provider_npi", sa.String(10), sa.ForeignKey("providers.npi", ondelete="CASCADE"), nullable=False),
        sa.Column("plan_id", sa.String(50), sa.ForeignKey("insurance_plans.plan_id", ondelete="CASCADE"), nullable=False),
        sa.Column("location_id", sa.Integer, nullable=True),
        sa.Column(
            "acceptance_id",
            sa.Integer,
            sa.ForeignKey("provider_plan_acceptance.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("verification_source", verification_source_enum, nullable=False, server_default="CROWDSOURCE"),
        sa.Column("accepts_insurance", sa.Boolean, nullable=False),
        sa.Column("accepts_new_patients", sa.Boolean, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("evidence_url", sa.String(500), nullable=True),
        sa.Column("source_ip", sa.String(50), nullable=True),
        sa.Column("submitted_by", sa.String(200), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("upvotes", sa.Integer, nullable=False, server_default="0"),
        sa.Column("downvotes", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_approved", sa.Boolean, nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.String(200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_verification_pair_created", "verification_logs", ["provider_npi", "plan_id", "created_at"],
    )
    op.create_index(
        "ix_verification_pair_ip", "verification_logs", ["provider_npi", "plan_id", "source_ip"],
    )
    op.create_index(
        "ix_verification_pair_submitted_by", "verification_logs", ["provider_npi", "plan_id", "submitted_by"],
    )
    op.create_index("ix_verification_expires_at", "verification_logs", ["expires_at"])

    # vote_logs
    op.create_table(
        "vote_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "verification_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("verification_logs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("source_ip", sa.String(50), nullable=False),
        sa.Column("vote", vote_direction_enum, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("verification_id", "source_ip", name="uq_vote_verification_ip"),
    )


def downgrade() -> None:
    op.drop_table("vote_logs")
    op.drop_table("verification_logs")
    op.drop_table("provider_plan_acceptance")
    op.drop_table("insurance_plans")
    op.drop_table("providers")

    vote_direction_enum.drop(op.get_bind(), checkfirst=True)
    verification_source_enum.drop(op.get_bind(), checkfirst=True)
    acceptance_status_enum.drop(op.get_bind(), checkfirst=True)
