"""
Integration test fixtures for PlanTrust.

Uses ``testcontainers`` to spin up disposable PostgreSQL and Redis
containers before the test session.  Tables are created straight from
the ORM metadata; each test starts from empty verification tables with
one seeded provider and plan.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncIterator, Iterator

import pytest
import pytest_asyncio
import redis.asyncio as aioredis
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool
from testcontainers.postgres import PostgresContainer
from testcontainers.redis import RedisContainer

from pt_common.db.orm_models import (
    AcceptanceORM,
    Base,
    InsurancePlanORM,
    ProviderORM,
    VerificationORM,
    VoteORM,
)

from verification.repository import UnitOfWork, sql_unit_of_work

NPI = "1234567890"
PLAN_ID = "PLAN-001"


# ---------------------------------------------------------------------------
# Container fixtures (session-scoped, one per test run)
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def postgres_container() -> Iterator[PostgresContainer]:
    """Start a disposable PostgreSQL 16 container for the test session."""
    with PostgresContainer(
        image="postgres:16-alpine",
        username="plantrust",
        password="testpass",
        dbname="plantrust_test",
    ) as pg:
        yield pg


@pytest.fixture(scope="session")
def redis_container() -> Iterator[RedisContainer]:
    """Start a disposable Redis container for the test session."""
    with RedisContainer(image="redis:7-alpine") as r:
        yield r


# ---------------------------------------------------------------------------
# Connection-string fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def postgres_dsn(postgres_container: PostgresContainer) -> str:
    """Return the async SQLAlchemy DSN for the test PostgreSQL."""
    # testcontainers gives us a psycopg2-style URL; convert to asyncpg
    url = postgres_container.get_connection_url()
    return url.replace("postgresql+psycopg2://", "postgresql+asyncpg://").replace(
        "postgresql://", "postgresql+asyncpg://"
    )


@pytest.fixture(scope="session")
def redis_url(redis_container: RedisContainer) -> str:
    host = redis_container.get_container_host_ip()
    port = redis_container.get_exposed_port(6379)
    return f"redis://{host}:{port}/0"


# ---------------------------------------------------------------------------
# Database schema creation
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def _create_schema(postgres_dsn: str) -> None:
    """Create all tables directly from the ORM metadata."""

    async def create() -> None:
        engine = create_async_engine(postgres_dsn, poolclass=NullPool)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await engine.dispose()

    asyncio.run(create())
    os.environ["PT_DB_URI"] = postgres_dsn


# ---------------------------------------------------------------------------
# Async engine & session fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine(postgres_dsn: str, _create_schema: None) -> AsyncIterator[AsyncEngine]:
    """Per-test engine; ``NullPool`` keeps connections off other event loops."""
    engine = create_async_engine(postgres_dsn, echo=False, poolclass=NullPool)
    async with engine.begin() as conn:
        for model in (VoteORM, VerificationORM, AcceptanceORM, ProviderORM, InsurancePlanORM):
            await conn.execute(delete(model))
    yield engine
    await engine.dispose()


@pytest.fixture
def db_session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def seeded(db_session_factory: async_sessionmaker[AsyncSession]) -> None:
    """One provider and one plan every test can verify against."""
    async with db_session_factory() as session, session.begin():
        session.add(ProviderORM(npi=NPI, display_name="Dr. Test", primary_specialty="Cardiology"))
        session.add(InsurancePlanORM(plan_id=PLAN_ID, plan_name="Test Plan"))


@pytest.fixture
def uow(db_session_factory: async_sessionmaker[AsyncSession], seeded: None) -> UnitOfWork:
    return sql_unit_of_work(db_session_factory)


# ---------------------------------------------------------------------------
# Redis client fixture
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def redis_client(redis_url: str) -> AsyncIterator[aioredis.Redis]:
    """Yield a per-test async Redis client and flush the DB afterwards."""
    r = aioredis.from_url(redis_url, decode_responses=True)
    yield r
    await r.flushdb()
    await r.aclose()
