"""
Shared Pydantic data models for PlanTrust.

This package contains all cross-service data models: enums, confidence
score results, verification submissions, and PII-free response views.
"""

from pt_common.models.confidence import (
    ConfidenceFactors,
    ConfidenceMetadata,
    ConfidenceResult,
)
from pt_common.models.enums import (
    AcceptanceStatus,
    ConfidenceLevel,
    EndpointClass,
    SpecialtyCategory,
    VerificationSource,
    VoteDirection,
)
from pt_common.models.verification import (
    AcceptanceSnapshot,
    CleanupResult,
    ExpirationStats,
    PairDetails,
    PairSummary,
    SubmissionResult,
    TableExpiration,
    VerificationPublic,
    VerificationStats,
    VerificationSubmission,
    VoteTally,
)

__all__ = [
    "AcceptanceSnapshot",
    "AcceptanceStatus",
    "CleanupResult",
    "ConfidenceFactors",
    "ConfidenceLevel",
    "ConfidenceMetadata",
    "ConfidenceResult",
    "EndpointClass",
    "ExpirationStats",
    "PairDetails",
    "PairSummary",
    "SpecialtyCategory",
    "SubmissionResult",
    "TableExpiration",
    "VerificationPublic",
    "VerificationSource",
    "VerificationStats",
    "VerificationSubmission",
    "VoteDirection",
    "VoteTally",
]
