"""
Verification, vote and acceptance-aggregate models for PlanTrust.

``VerificationSubmission`` carries every bound a crowd submission must
satisfy; the API request schema extends it with the abuse-gate fields.
``VerificationPublic`` is the only shape in which a verification leaves the
service: it deliberately has no submitter IP, contact address or user agent.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, EmailStr, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from pt_common.models.confidence import ConfidenceResult
from pt_common.models.enums import AcceptanceStatus, VerificationSource

NPI_PATTERN = r"^\d{10}$"
MAX_NOTES_LENGTH = 1000
MAX_EVIDENCE_URL_LENGTH = 500
MAX_CONTACT_LENGTH = 200

_http_url = TypeAdapter(AnyHttpUrl)


class _CamelModel(BaseModel):
    """Accepts both ``snake_case`` and ``camelCase`` keys on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class VerificationSubmission(_CamelModel):
    """A single anonymous claim that a provider does or doesn't accept a plan.

    Attributes:
        npi: Provider identifier (10-digit NPI).
        plan_id: Insurance plan identifier.
        accepts_insurance: The claimed acceptance.
        accepts_new_patients: Optional claim about new-patient availability.
        location_id: Optional practice location.
        notes: Free-text note.
        evidence_url: Optional link supporting the claim.
        submitted_by: Optional contact address.  Used only for duplicate detection.
    """

    npi: str = Field(..., pattern=NPI_PATTERN)
    plan_id: str = Field(..., min_length=1, max_length=50)
    accepts_insurance: bool
    accepts_new_patients: bool | None = None
    location_id: int | None = Field(default=None, gt=0)
    notes: str | None = Field(default=None, max_length=MAX_NOTES_LENGTH)
    evidence_url: str | None = Field(default=None, max_length=MAX_EVIDENCE_URL_LENGTH)
    submitted_by: EmailStr | None = Field(default=None, max_length=MAX_CONTACT_LENGTH)

    @field_validator("evidence_url")
    @classmethod
    def _well_formed_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        _http_url.validate_python(value)
        return value

    @field_validator("submitted_by")
    @classmethod
    def _normalise_contact(cls, value: str | None) -> str | None:
        return value.lower() if value else None


class VerificationPublic(BaseModel):
    """PII-free view of a stored verification."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    provider_npi: str
    plan_id: str
    location_id: int | None = None
    acceptance_id: int | None = None
    verification_source: VerificationSource
    accepts_insurance: bool
    accepts_new_patients: bool | None = None
    notes: str | None = None
    evidence_url: str | None = None
    upvotes: int = 0
    downvotes: int = 0
    is_approved: bool | None = None
    created_at: datetime
    expires_at: datetime | None = None


class AcceptanceSnapshot(BaseModel):
    """Current trust state of a provider-plan (optionally per location)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    provider_npi: str
    plan_id: str
    location_id: int | None = None
    acceptance_status: AcceptanceStatus
    confidence_score: int = Field(..., ge=0, le=100)
    verification_count: int = 0
    last_verified: datetime | None = None
    expires_at: datetime | None = None


class VoteTally(BaseModel):
    """Vote counters of one verification after a vote was applied."""

    id: UUID
    upvotes: int
    downvotes: int
    vote_changed: bool = False

    @property
    def net_votes(self) -> int:
        return self.upvotes - self.downvotes


class SubmissionResult(BaseModel):
    """Everything a successful submission returns."""

    verification: VerificationPublic
    acceptance: AcceptanceSnapshot
    confidence: ConfidenceResult


class PairSummary(BaseModel):
    total_verifications: int = 0
    total_upvotes: int = 0
    total_downvotes: int = 0


class PairDetails(BaseModel):
    """Read view of one provider-plan pair.

    Attributes:
        acceptance: The aggregate, or ``None`` if never referenced.
        is_acceptance_expired: Aggregate TTL has lapsed without renewal.
        confidence: Live score breakdown (``None`` without an aggregate).
        verifications: Newest PII-free verifications (at most 50).
        summary: Totals over ``verifications``.
    """

    acceptance: AcceptanceSnapshot | None = None
    is_acceptance_expired: bool = False
    confidence: ConfidenceResult | None = None
    verifications: list[VerificationPublic] = Field(default_factory=list)
    summary: PairSummary = Field(default_factory=PairSummary)


class VerificationStats(BaseModel):
    total: int = 0
    approved: int = 0
    pending: int = 0
    recent_count: int = 0


class TableExpiration(BaseModel):
    total: int = 0
    with_ttl: int = 0
    expired: int = 0
    expiring_within_7_days: int = 0
    expiring_within_30_days: int = 0


class ExpirationStats(BaseModel):
    verification_logs: TableExpiration
    plan_acceptances: TableExpiration


class CleanupResult(BaseModel):
    dry_run: bool
    expired_verification_logs: int = 0
    expired_plan_acceptances: int = 0
    deleted_verification_logs: int = 0
    deleted_plan_acceptances: int = 0
