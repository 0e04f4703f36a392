"""
Confidence scoring engine for PlanTrust.

Combines four independently bounded sub-scores into a 0–100 confidence
score for a provider-plan acceptance record:

* **Data source** (0–25): authority of where the data came from.
* **Recency** (0–30): tiered decay against a specialty-specific
  freshness threshold (mental health churns fastest, hospital-based
  providers slowest).
* **Verification count** (0–25): three independent confirmations reach
  expert-level agreement (Mortensen et al. 2015), more add nothing.
* **Agreement** (0–20): up/down vote ratio of the community.

The engine is a pure function of its inputs; ``now`` is injectable so
results are reproducible.
"""

from __future__ import annotations

from datetime import datetime

from pt_common.models.confidence import (
    ConfidenceFactors,
    ConfidenceMetadata,
    ConfidenceResult,
)
from pt_common.models.enums import ConfidenceLevel, SpecialtyCategory, VerificationSource
from pt_common.utils import days_between, utc_now

MIN_VERIFICATIONS_FOR_HIGH_CONFIDENCE = 3
MAX_SCORE = 100
# Beyond this age recency contributes nothing, whatever the specialty.
RECENCY_CUTOFF_DAYS = 180

FRESHNESS_THRESHOLD_DAYS: dict[SpecialtyCategory, int] = {
    SpecialtyCategory.MENTAL_HEALTH: 30,
    SpecialtyCategory.PRIMARY_CARE: 60,
    SpecialtyCategory.SPECIALIST: 60,
    SpecialtyCategory.HOSPITAL_BASED: 90,
    SpecialtyCategory.OTHER: 60,
}

DATA_SOURCE_SCORES: dict[str, int] = {
    VerificationSource.CMS_NPPES.value: 25,
    VerificationSource.CMS_PLAN_FINDER.value: 25,
    VerificationSource.CMS_DATA.value: 25,
    VerificationSource.CARRIER_API.value: 20,
    VerificationSource.CARRIER_DATA.value: 20,
    VerificationSource.PROVIDER_PORTAL.value: 20,
    VerificationSource.CROWDSOURCE.value: 15,
    VerificationSource.USER_UPLOAD.value: 15,
    VerificationSource.PHONE_CALL.value: 15,
    VerificationSource.AUTOMATED.value: 10,
}
_UNKNOWN_SOURCE_SCORE = 10

# Checked in order; the first category with a matching keyword wins.
_SPECIALTY_KEYWORDS: tuple[tuple[SpecialtyCategory, tuple[str, ...]], ...] = (
    (
        SpecialtyCategory.MENTAL_HEALTH,
        ("psychiatr", "psycholog", "mental health", "behavioral health", "counselor", "therapist"),
    ),
    (
        SpecialtyCategory.PRIMARY_CARE,
        ("family medicine", "family practice", "internal medicine", "general practice", "primary care"),
    ),
    (
        SpecialtyCategory.HOSPITAL_BASED,
        ("hospital", "radiology", "anesthesiology", "pathology", "emergency medicine"),
    ),
)

_RESEARCH_NOTES: dict[SpecialtyCategory, str] = {
    SpecialtyCategory.MENTAL_HEALTH: (
        "Mental health providers show high network turnover. "
        "Research shows only 43% accept Medicaid."
    ),
    SpecialtyCategory.PRIMARY_CARE: (
        "Based on research showing 12% annual provider turnover in primary care."
    ),
    SpecialtyCategory.HOSPITAL_BASED: (
        "Hospital-based providers typically have more stable network participation."
    ),
}
_DEFAULT_RESEARCH_NOTE = (
    "Specialist network participation changes regularly. "
    "Research shows 12% annual turnover."
)
_THREE_VERIFICATIONS_NOTE = "Research shows 3 verifications achieve expert-level accuracy"

_SPECIALTY_EXPLANATION_NOTES: dict[SpecialtyCategory, str] = {
    SpecialtyCategory.MENTAL_HEALTH: (
        " Mental health providers show high network turnover (only 43% accept Medicaid)."
    ),
    SpecialtyCategory.PRIMARY_CARE: (
        " Research shows primary care providers have 12% annual network turnover."
    ),
    SpecialtyCategory.HOSPITAL_BASED: (
        " Hospital-based providers typically maintain more stable network participation."
    ),
}

_LEVEL_DESCRIPTIONS: dict[ConfidenceLevel, str] = {
    ConfidenceLevel.VERY_HIGH: (
        "Verified through multiple authoritative sources with expert-level accuracy."
    ),
    ConfidenceLevel.HIGH: (
        "Verified through authoritative sources or multiple community verifications."
    ),
    ConfidenceLevel.MEDIUM: "Some verification exists, but may need confirmation.",
    ConfidenceLevel.LOW: "Limited verification data. Call provider to confirm before visiting.",
    ConfidenceLevel.VERY_LOW: "Unverified or potentially inaccurate. Always call to confirm.",
}


# ── Specialty ──


def specialty_category(
    specialty: str | None,
    taxonomy_description: str | None = None,
) -> SpecialtyCategory:
    """Map free-text specialty (and taxonomy) to a freshness category."""
    text = f"{specialty or ''} {taxonomy_description or ''}".lower()
    for category, keywords in _SPECIALTY_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return category
    return SpecialtyCategory.SPECIALIST


def freshness_threshold(category: SpecialtyCategory) -> int:
    return FRESHNESS_THRESHOLD_DAYS[category]


# ── Sub-scores ──


def data_source_score(source: VerificationSource | str | None) -> int:
    """Authority score (0–25); unknown or missing sources score 10."""
    if source is None:
        return _UNKNOWN_SOURCE_SCORE
    key = source.value if isinstance(source, VerificationSource) else source
    return DATA_SOURCE_SCORES.get(key, _UNKNOWN_SOURCE_SCORE)


def recency_score(days_since: int | None, threshold: int) -> int:
    """Tiered freshness score (0–30) against *threshold* days.

    Tiers: ``<= min(30, T/2)`` → 30, ``<= T`` → 20, ``<= 1.5·T`` → 10,
    ``<= 180`` → 5, older → 0.  Never verified → 0.
    """
    if days_since is None:
        return 0
    if days_since <= min(30, threshold * 0.5):
        return 30
    if days_since <= threshold:
        return 20
    if days_since <= threshold * 1.5:
        return 10
    if days_since <= RECENCY_CUTOFF_DAYS:
        return 5
    return 0


def verification_score(count: int) -> int:
    if count <= 0:
        return 0
    if count == 1:
        return 10
    if count == 2:
        return 15
    return 25


def agreement_score(upvotes: int, downvotes: int) -> int:
    """Community agreement (0–20); no votes is neutral (0), not a penalty."""
    total = upvotes + downvotes
    if total <= 0:
        return 0
    ratio = upvotes / total
    if ratio == 1.0:
        return 20
    if ratio >= 0.8:
        return 15
    if ratio >= 0.6:
        return 10
    if ratio >= 0.4:
        return 5
    return 0


# ── Level ──


def confidence_level(score: int, verification_count: int) -> ConfidenceLevel:
    """Band *score* into a level.

    One or two verifications cap the level at MEDIUM whatever the score.
    """
    capped = 0 < verification_count < MIN_VERIFICATIONS_FOR_HIGH_CONFIDENCE
    if score >= 91 and not capped:
        return ConfidenceLevel.VERY_HIGH
    if score >= 76 and not capped:
        return ConfidenceLevel.HIGH
    if score >= 51:
        return ConfidenceLevel.MEDIUM
    if score >= 26:
        return ConfidenceLevel.LOW
    return ConfidenceLevel.VERY_LOW


def level_description(level: ConfidenceLevel, verification_count: int) -> str:
    description = _LEVEL_DESCRIPTIONS[level]
    if verification_count < MIN_VERIFICATIONS_FOR_HIGH_CONFIDENCE:
        description += f" {_THREE_VERIFICATIONS_NOTE}."
    return description


# ── Explanation ──


def _explain(
    score: int,
    factors: ConfidenceFactors,
    verification_count: int,
    days_since: int | None,
    category: SpecialtyCategory,
) -> str:
    parts: list[str] = []

    if factors.data_source_score >= 25:
        parts.append("verified through official CMS data")
    elif factors.data_source_score >= 20:
        parts.append("verified through insurance carrier data")
    elif factors.data_source_score >= 15:
        parts.append("verified through community submissions")
    else:
        parts.append("limited authoritative data")

    if days_since is None:
        parts.append("never verified - needs community verification")
    elif factors.recency_score == 30:
        parts.append("very recent verification (within 30 days)")
    elif factors.recency_score == 20:
        parts.append(f"recent verification ({days_since} days ago)")
    elif factors.recency_score == 10:
        parts.append(f"aging data ({days_since} days old)")
    elif factors.recency_score == 5:
        parts.append(
            f"stale data ({days_since} days old) - research shows 12% annual provider turnover"
        )
    else:
        parts.append(f"very stale data ({days_since}+ days old) - needs re-verification")

    if verification_count <= 0:
        parts.append("no patient verifications yet")
    elif verification_count == 1:
        parts.append("only 1 verification (research shows 3 achieve expert-level accuracy)")
    elif verification_count == 2:
        parts.append("2 verifications (1 more needed for expert-level accuracy)")
    elif verification_count == 3:
        parts.append("3 verifications (expert-level accuracy achieved!)")
    else:
        parts.append(f"{verification_count} verifications (exceeds expert-level threshold)")

    agreement_phrases = {
        20: "complete community consensus",
        15: "strong community consensus",
        10: "moderate community consensus",
        5: "weak community consensus",
    }
    if factors.agreement_score in agreement_phrases:
        parts.append(agreement_phrases[factors.agreement_score])
    elif verification_count > 0:
        parts.append("conflicting community data (unreliable)")

    explanation = f"This {score}% confidence score is based on: {', '.join(parts)}."
    return explanation + _SPECIALTY_EXPLANATION_NOTES.get(category, "")


# ── Engine ──


def calculate_confidence(
    *,
    data_source: VerificationSource | str | None,
    last_verified_at: datetime | None,
    verification_count: int,
    upvotes: int,
    downvotes: int,
    specialty: str | None = None,
    taxonomy_description: str | None = None,
    now: datetime | None = None,
) -> ConfidenceResult:
    """Score one provider-plan record.

    Args:
        data_source: Source category of the record (``None`` scores as unknown).
        last_verified_at: Timezone-aware time of the last verification.
        verification_count: Non-expired verifications behind the record.
        upvotes: Agreeing votes (or majority-direction verifications).
        downvotes: Disagreeing votes (or minority-direction verifications).
        specialty: Provider's primary specialty text.
        taxonomy_description: Optional taxonomy text, also keyword-matched.
        now: Evaluation time; defaults to the current UTC time.

    Returns:
        The score, level, level description, factors and metadata.
    """
    now = now or utc_now()
    category = specialty_category(specialty, taxonomy_description)
    threshold = freshness_threshold(category)
    days_since = days_between(last_verified_at, now) if last_verified_at else None

    factors = ConfidenceFactors(
        data_source_score=data_source_score(data_source),
        recency_score=recency_score(days_since, threshold),
        verification_score=verification_score(verification_count),
        agreement_score=agreement_score(upvotes, downvotes),
    )
    score = min(MAX_SCORE, factors.total)
    level = confidence_level(score, verification_count)

    is_stale = days_since is not None and days_since > threshold
    research_note = _RESEARCH_NOTES.get(category, _DEFAULT_RESEARCH_NOTE)
    if verification_count < MIN_VERIFICATIONS_FOR_HIGH_CONFIDENCE:
        research_note += f" {_THREE_VERIFICATIONS_NOTE} (κ=0.58)."

    metadata = ConfidenceMetadata(
        specialty_category=category,
        freshness_threshold=threshold,
        days_since_verification=days_since,
        days_until_stale=max(0, threshold - days_since) if days_since is not None else threshold,
        is_stale=is_stale,
        recommend_reverification=(
            is_stale or days_since is None or days_since > threshold * 0.8
        ),
        research_note=research_note,
        explanation=_explain(score, factors, verification_count, days_since, category),
    )
    return ConfidenceResult(
        score=score,
        level=level,
        description=level_description(level, verification_count),
        factors=factors,
        metadata=metadata,
    )
