"""Shared test fixtures for the escrow marketplace test suite.

Provides:
    - An in-memory SQLite database (aiosqlite) with the full schema
    - One AsyncSession per test, configured like the production factory
    - Actors for each role, and helpers that drive a project to FUNDED_HELD
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from escrow_marketplace.config import Settings
from escrow_marketplace.domain.authorization import Actor
from escrow_marketplace.domain.enums import Role
from escrow_marketplace.infrastructure.database.orm_models import Base, Project
from escrow_marketplace.infrastructure.database.repositories import ConfigRepository
from escrow_marketplace.services.escrow_service import EscrowService

JOB_PRICE_CENTS = 85000

# ---------------------------------------------------------------------------
# Settings and database
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite://",
        app_env="development",
        payment_provider="mock",
        sweep_batch_size=50,
    )


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """One in-memory database per test, shared by every connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------


@pytest.fixture
def customer() -> Actor:
    return Actor(uid="cust-1", role=Role.CUSTOMER)


@pytest.fixture
def other_customer() -> Actor:
    return Actor(uid="cust-2", role=Role.CUSTOMER)


@pytest.fixture
def contractor() -> Actor:
    return Actor(uid="pro-1", role=Role.CONTRACTOR)


@pytest.fixture
def other_contractor() -> Actor:
    return Actor(uid="pro-2", role=Role.CONTRACTOR)


@pytest.fixture
def admin() -> Actor:
    return Actor(uid="admin-1", role=Role.ADMIN, admin_verified=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def set_config(session: AsyncSession, name: str, document: dict) -> None:
    """Store one platform config document directly, bypassing admin checks."""
    await ConfigRepository(session).upsert(name, document, "test-setup")


async def enable_flags(session: AsyncSession, **flags: bool) -> None:
    await set_config(session, "feature_flags", flags)


async def agreed_project(
    session: AsyncSession,
    settings: Settings,
    customer: Actor,
    contractor: Actor,
    price_cents: int = JOB_PRICE_CENTS,
    timeline_days: int = 14,
    budget_cents: int | None = None,
) -> Project:
    """Create a project and drive it to AGREEMENT_ACCEPTED."""
    escrow = EscrowService(session, settings)
    project = await escrow.create_project(
        customer, "Replace kitchen faucet", "plumbing", budget_cents=budget_cents
    )
    quote = await escrow.submit_quote(contractor, project.id, price_cents, timeline_days)
    await escrow.select_contractor(customer, project.id, quote.id)
    await escrow.accept_agreement(customer, project.id)
    await escrow.accept_agreement(contractor, project.id)
    return project


async def funded_project(
    session: AsyncSession,
    settings: Settings,
    customer: Actor,
    contractor: Actor,
    price_cents: int = JOB_PRICE_CENTS,
) -> Project:
    """Create a project and drive it to FUNDED_HELD with ``price_cents`` held."""
    project = await agreed_project(session, settings, customer, contractor, price_cents)
    result = await EscrowService(session, settings).fund_hold(customer, project.id)
    return result.project


async def completion_requested_project(
    session: AsyncSession,
    settings: Settings,
    customer: Actor,
    contractor: Actor,
    price_cents: int = JOB_PRICE_CENTS,
) -> Project:
    project = await funded_project(session, settings, customer, contractor, price_cents)
    return await EscrowService(session, settings).request_completion(
        contractor, project.id, proof_urls=["https://example.com/photo.jpg"]
    )
