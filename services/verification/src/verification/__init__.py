"""PlanTrust Verification Service."""

from verification.confidence import calculate_confidence
from verification.consensus import decide_status
from verification.repository import (
    PairTallies,
    UnitOfWork,
    VerificationRepository,
    sql_unit_of_work,
)
from verification.service import VerificationService
from verification.sybil import SybilChecker

__all__ = [
    "PairTallies",
    "SybilChecker",
    "UnitOfWork",
    "VerificationRepository",
    "VerificationService",
    "calculate_confidence",
    "decide_status",
    "sql_unit_of_work",
]
