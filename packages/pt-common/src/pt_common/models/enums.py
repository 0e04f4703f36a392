"""
Enumerations shared by PlanTrust services.

String-valued enums so they serialise cleanly through Pydantic and are
stored verbatim in PostgreSQL enum columns.
"""

from __future__ import annotations

import enum


class AcceptanceStatus(str, enum.Enum):
    """Public acceptance state of a provider-plan aggregate."""

    ACCEPTED = "ACCEPTED"
    NOT_ACCEPTED = "NOT_ACCEPTED"
    PENDING = "PENDING"
    UNKNOWN = "UNKNOWN"


class VoteDirection(str, enum.Enum):
    UP = "up"
    DOWN = "down"


class VerificationSource(str, enum.Enum):
    """Data-source categories, in descending order of authority."""

    CMS_NPPES = "CMS_NPPES"
    CMS_PLAN_FINDER = "CMS_PLAN_FINDER"
    CMS_DATA = "CMS_DATA"
    CARRIER_API = "CARRIER_API"
    CARRIER_DATA = "CARRIER_DATA"
    PROVIDER_PORTAL = "PROVIDER_PORTAL"
    USER_UPLOAD = "USER_UPLOAD"
    PHONE_CALL = "PHONE_CALL"
    CROWDSOURCE = "CROWDSOURCE"
    AUTOMATED = "AUTOMATED"


class ConfidenceLevel(str, enum.Enum):
    VERY_HIGH = "VERY_HIGH"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    VERY_LOW = "VERY_LOW"


class SpecialtyCategory(str, enum.Enum):
    """Specialty groupings that share a verification freshness threshold."""

    MENTAL_HEALTH = "MENTAL_HEALTH"
    PRIMARY_CARE = "PRIMARY_CARE"
    SPECIALIST = "SPECIALIST"
    HOSPITAL_BASED = "HOSPITAL_BASED"
    OTHER = "OTHER"


class EndpointClass(str, enum.Enum):
    """Rate-limit budget classes."""

    VERIFY = "verify"
    VOTE = "vote"
    SEARCH = "search"
    DEFAULT = "default"
