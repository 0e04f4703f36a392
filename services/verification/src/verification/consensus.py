"""
Consensus rule for provider-plan acceptance status.

An aggregate only leaves PENDING for ACCEPTED or NOT_ACCEPTED when enough
independent verifications agree with enough confidence.  Anything short of
that, including consensus that later erodes, lands back on PENDING.
"""

from __future__ import annotations

from pt_common.models.enums import AcceptanceStatus

MIN_VERIFICATIONS_FOR_CONSENSUS = 3
MIN_CONFIDENCE_FOR_STATUS_CHANGE = 60


def has_clear_majority(a: int, b: int) -> bool:
    """``True`` when one side holds at least twice the other's count.

    A 2-1 split qualifies; an empty tally never does.
    """
    if a + b == 0:
        return False
    return a >= 2 * b or b >= 2 * a


def agreement_counts(accepted: int, rejected: int) -> tuple[int, int]:
    """Map direction counts onto (agreeing, disagreeing) for the agreement score."""
    return max(accepted, rejected), min(accepted, rejected)


def decide_status(
    *,
    verification_count: int,
    confidence_score: int,
    accepted_count: int,
    rejected_count: int,
    min_verifications: int = MIN_VERIFICATIONS_FOR_CONSENSUS,
    min_confidence: int = MIN_CONFIDENCE_FOR_STATUS_CHANGE,
) -> AcceptanceStatus:
    """Apply the consensus rule.

    Args:
        verification_count: Non-expired verifications for the pair.
        confidence_score: Freshly computed confidence score.
        accepted_count: Verifications claiming the plan is accepted.
        rejected_count: Verifications claiming it is not.
        min_verifications: Verifications required before status may change.
        min_confidence: Score required before status may change.

    Returns:
        ``UNKNOWN`` with no verifications, ``ACCEPTED``/``NOT_ACCEPTED`` on
        consensus, ``PENDING`` otherwise.
    """
    if verification_count <= 0:
        return AcceptanceStatus.UNKNOWN
    if (
        verification_count >= min_verifications
        and confidence_score >= min_confidence
        and has_clear_majority(accepted_count, rejected_count)
    ):
        if accepted_count > rejected_count:
            return AcceptanceStatus.ACCEPTED
        return AcceptanceStatus.NOT_ACCEPTED
    return AcceptanceStatus.PENDING
