"""
Database connection and ORM utilities for PlanTrust.

Async engine and session-factory builders, the ORM table definitions,
and the Alembic migration environment.
"""

from pt_common.db.connection import (
    build_engine,
    build_session_factory,
    check_database_health,
)
from pt_common.db.orm_models import (
    AcceptanceORM,
    Base,
    InsurancePlanORM,
    ProviderORM,
    VerificationORM,
    VoteORM,
)

__all__ = [
    "AcceptanceORM",
    "Base",
    "InsurancePlanORM",
    "ProviderORM",
    "VerificationORM",
    "VoteORM",
    "build_engine",
    "build_session_factory",
    "check_database_health",
]
