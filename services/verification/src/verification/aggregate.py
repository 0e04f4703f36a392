"""
Rescoring of an existing acceptance aggregate.

Shared by the vote path, the pair read view and the decay job so the three
always score an aggregate from the same inputs: the aggregate's stored
source and last-verified time, the pair's non-expired verification count,
and the summed vote tallies of those verifications.
"""

from __future__ import annotations

from datetime import datetime

from pt_common.db.orm_models import AcceptanceORM
from pt_common.models.confidence import ConfidenceResult

from verification.confidence import calculate_confidence
from verification.repository import PairTallies


def rescore(
    acceptance: AcceptanceORM,
    tallies: PairTallies,
    *,
    specialty: str | None,
    taxonomy_description: str | None = None,
    now: datetime,
) -> ConfidenceResult:
    """Score *acceptance* from freshly gathered *tallies*."""
    return calculate_confidence(
        data_source=acceptance.verification_source,
        last_verified_at=acceptance.last_verified,
        verification_count=tallies.verification_count,
        upvotes=tallies.upvotes,
        downvotes=tallies.downvotes,
        specialty=specialty,
        taxonomy_description=taxonomy_description,
        now=now,
    )
