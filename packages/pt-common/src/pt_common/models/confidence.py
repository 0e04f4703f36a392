"""
Confidence score result models for PlanTrust.

The scoring engine returns a :class:`ConfidenceResult`; the API embeds it
unchanged in verification and aggregate responses.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from pt_common.models.enums import ConfidenceLevel, SpecialtyCategory


class ConfidenceFactors(BaseModel):
    """The four independently bounded sub-scores.

    Attributes:
        data_source_score: Authority of the data source (0–25).
        recency_score: Freshness against the specialty threshold (0–30).
        verification_score: Number of independent verifications (0–25).
        agreement_score: Community up/down vote agreement (0–20).
    """

    data_source_score: int = Field(..., ge=0, le=25)
    recency_score: int = Field(..., ge=0, le=30)
    verification_score: int = Field(..., ge=0, le=25)
    agreement_score: int = Field(..., ge=0, le=20)

    @property
    def total(self) -> int:
        return (
            self.data_source_score
            + self.recency_score
            + self.verification_score
            + self.agreement_score
        )


class ConfidenceMetadata(BaseModel):
    """Freshness bookkeeping and human-readable context for a score."""

    specialty_category: SpecialtyCategory
    freshness_threshold: int
    days_since_verification: int | None = None
    days_until_stale: int
    is_stale: bool
    recommend_reverification: bool
    research_note: str
    explanation: str


class ConfidenceResult(BaseModel):
    """Output of the confidence scoring engine."""

    score: int = Field(..., ge=0, le=100)
    level: ConfidenceLevel
    description: str
    factors: ConfidenceFactors
    metadata: ConfidenceMetadata
