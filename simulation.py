#!/usr/bin/env python3
"""Escrow Marketplace — End-to-End Simulation.

Drives three projects through the service layer with a customer, a
contractor and an admin:

    Scenario 1: Happy Path
        - Customer posts a plumbing job, contractor quotes, both accept
        - Customer funds the hold, contractor requests completion
        - Customer approves -> RELEASED_PAID, fee charged, project closed

    Scenario 2: Joint Split
        - Funded job, work starts, customer raises an issue hold
        - Both parties sign a 65/20 split -> EXECUTED_RELEASE_PARTIAL

    Scenario 3: Admin Refund
        - Funded job, work starts, customer raises an issue hold
        - Contractor uploads a court order, admin refunds in full

Usage:
    # Option A: PostgreSQL from DATABASE_URL / .env:
    uv run python simulation.py

    # Option B: SQLite in-memory (no database server needed):
    uv run python simulation.py --sqlite

    # Run a specific scenario:
    uv run python simulation.py --sqlite --scenario 2
"""

from __future__ import annotations

import argparse
import asyncio
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from escrow_marketplace.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from escrow_marketplace.config import Settings, get_settings  # noqa: E402
from escrow_marketplace.domain.authorization import Actor  # noqa: E402
from escrow_marketplace.domain.enums import Role  # noqa: E402

CUSTOMER = Actor(uid="sim-customer", role=Role.CUSTOMER)
CONTRACTOR = Actor(uid="sim-contractor", role=Role.CONTRACTOR)
ADMIN = Actor(uid="sim-admin", role=Role.ADMIN, admin_verified=True)

JOB_PRICE_CENTS = 85000

# Module-level state
_sqlite_engine = None
_sqlite_session_factory = None
_settings: Settings | None = None


async def init_database(use_sqlite: bool = False) -> None:
    """Initialize database engine and create tables."""
    global _sqlite_engine, _sqlite_session_factory, _settings

    if use_sqlite:
        from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

        from escrow_marketplace.infrastructure.database.orm_models import Base

        _sqlite_engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
        _sqlite_session_factory = async_sessionmaker(
            bind=_sqlite_engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        async with _sqlite_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        _settings = Settings(database_url="sqlite+aiosqlite:///:memory:", payment_provider="mock")
        logger.info("database.sqlite_initialized")
    else:
        from escrow_marketplace.infrastructure.database.engine import init_db

        await init_db()
        _settings = get_settings()


async def get_session() -> Any:
    """Get a fresh database session."""
    if _sqlite_session_factory is not None:
        return _sqlite_session_factory()

    from escrow_marketplace.infrastructure.database.engine import _get_session_factory

    return _get_session_factory()()


async def shutdown_database() -> None:
    """Close database connections."""
    global _sqlite_engine, _sqlite_session_factory

    if _sqlite_engine is not None:
        await _sqlite_engine.dispose()
        _sqlite_engine = None
        _sqlite_session_factory = None
    else:
        from escrow_marketplace.infrastructure.database.engine import close_db

        await close_db()


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    print(f"\n--- {text} ---\n")


def print_outcome(outcome: Any) -> None:
    print(f"  State: {outcome.resulting_state}")
    print(f"  Released: {outcome.release_cents / 100:.2f}")
    print(f"  Refunded: {outcome.refund_cents / 100:.2f}")
    print(f"  Platform fee: {outcome.fee_cents / 100:.2f}")
    print(f"  Net payout: {outcome.net_payout_cents / 100:.2f}")
    if outcome.held_remaining_cents:
        print(f"  Still held: {outcome.held_remaining_cents / 100:.2f}")


async def print_ledger(session: Any, project_id: Any) -> None:
    """Print the project's ledger stream and the folded balance."""
    from escrow_marketplace.services.escrow_service import EscrowService

    summary = await EscrowService(session, _settings).get_ledger_balance(ADMIN, project_id)
    print("\n  Ledger:")
    for evt in summary.events:
        fee = f" fee={evt.fee_cents}" if evt.fee_cents else ""
        print(
            f"    {evt.sequence}. [{evt.event_type}] amount={evt.amount_cents}{fee} "
            f"(by {evt.actor_id})"
        )
    balance = summary.balance
    print(
        f"  Balance: held={balance.held_cents} released={balance.released_cents} "
        f"refunded={balance.refunded_cents} fees={balance.fees_cents} "
        f"consistent={summary.consistent}"
    )
    print()


async def funded_job(session: Any, title: str) -> Any:
    """Post, quote, agree and fund one job; returns the project."""
    from escrow_marketplace.services.escrow_service import EscrowService

    escrow = EscrowService(session, _settings)
    project = await escrow.create_project(CUSTOMER, title=title, category="plumbing")
    quote = await escrow.submit_quote(
        CONTRACTOR, project.id, price_cents=JOB_PRICE_CENTS, timeline_days=14
    )
    await escrow.select_contractor(CUSTOMER, project.id, quote.id)
    await escrow.accept_agreement(CUSTOMER, project.id)
    await escrow.accept_agreement(CONTRACTOR, project.id)
    funding = await escrow.fund_hold(CUSTOMER, project.id)
    print(f"  Hold placed: {funding.hold.provider_hold_id} for {JOB_PRICE_CENTS / 100:.2f}")
    return funding.project


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
async def scenario_1_happy_path() -> None:
    from escrow_marketplace.services.escrow_service import EscrowService

    banner("SCENARIO 1: Happy Path (approve and release)")

    session = await get_session()
    async with session:
        escrow = EscrowService(session, _settings)

        section("Customer posts and funds the job")
        project = await funded_job(session, "Replace kitchen faucet")

        section("Contractor works and requests completion")
        await escrow.start_work(CONTRACTOR, project.id)
        await escrow.request_completion(
            CONTRACTOR,
            project.id,
            proof_urls=["https://img.example.com/faucet.jpg"],
            note="New faucet installed, no leaks",
        )
        status = await escrow.get_status(CUSTOMER, project.id)
        print(f"  Approval deadline: {status['approval_deadline']}")

        section("Customer approves")
        print_outcome(await escrow.approve_release(CUSTOMER, project.id))
        await escrow.close_project(ADMIN, project.id)
        await print_ledger(session, project.id)
        await session.commit()


# ===========================================================================
# Scenario 2: Joint Split
# ===========================================================================
async def scenario_2_joint_split() -> None:
    from escrow_marketplace.services.dispute_service import DisputeService
    from escrow_marketplace.services.escrow_service import EscrowService

    banner("SCENARIO 2: Joint Split (both parties sign)")

    session = await get_session()
    async with session:
        disputes = DisputeService(session, _settings)
        project = await funded_job(session, "Repair bathroom drain")
        await EscrowService(session, _settings).start_work(CONTRACTOR, project.id)

        section("Customer raises an issue hold")
        case = await disputes.raise_issue_hold(CUSTOMER, project.id, "Drain still slow")
        print(f"  Case {case.id} is {case.status}")

        section("Parties agree on 650.00 / 200.00")
        proposal = await disputes.propose_joint_release(CUSTOMER, project.id, 65000, 20000)
        await disputes.sign_joint_release(CUSTOMER, project.id, proposal.id)
        result = await disputes.sign_joint_release(CONTRACTOR, project.id, proposal.id)
        print(f"  Fully signed: {result.fully_signed}")
        print_outcome(result.outcome)
        await print_ledger(session, project.id)
        await session.commit()


# ===========================================================================
# Scenario 3: Admin Refund
# ===========================================================================
async def scenario_3_admin_refund() -> None:
    from escrow_marketplace.services.dispute_service import DisputeService
    from escrow_marketplace.services.escrow_service import EscrowService

    banner("SCENARIO 3: Admin Refund (external resolution)")

    session = await get_session()
    async with session:
        disputes = DisputeService(session, _settings)
        project = await funded_job(session, "Install water heater")
        await EscrowService(session, _settings).start_work(CONTRACTOR, project.id)

        section("Customer raises an issue hold")
        await disputes.raise_issue_hold(CUSTOMER, project.id, "Contractor never showed up")

        section("Contractor uploads a court order")
        case = await disputes.upload_resolution_document(
            CONTRACTOR,
            project.id,
            "https://docs.example.com/small-claims-ruling.pdf",
            "court_order",
            summary="Full refund ordered",
        )
        print(f"  Case {case.id} is {case.status}")

        section("Admin executes the refund")
        print_outcome(await disputes.admin_execute_outcome(ADMIN, project.id, "refund_full"))
        await print_ledger(session, project.id)
        await session.commit()


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_joint_split,
    3: scenario_3_admin_refund,
}


async def run_all(use_sqlite: bool = False) -> None:
    """Run all scenarios sequentially."""
    await init_database(use_sqlite=use_sqlite)

    try:
        print("\n" + "=" * 70)
        print("  ESCROW MARKETPLACE — SIMULATION")
        db_type = "SQLite (in-memory)" if use_sqlite else "PostgreSQL"
        print(f"  Database: {db_type}")
        print(f"  Payment provider: {_settings.payment_provider}")
        print("=" * 70 + "\n")

        for scenario in SCENARIOS.values():
            await scenario()

        print("\n" + "=" * 70)
        print("  ALL SCENARIOS COMPLETED SUCCESSFULLY")
        print("=" * 70 + "\n")

    finally:
        await shutdown_database()


async def run_scenario(num: int, use_sqlite: bool = False) -> None:
    """Run a specific scenario."""
    await init_database(use_sqlite=use_sqlite)

    try:
        if num not in SCENARIOS:
            print(f"Unknown scenario {num}. Available: 1, 2, 3")
            return
        await SCENARIOS[num]()
    finally:
        await shutdown_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Escrow Marketplace Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1, 2, or 3). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use SQLite in-memory instead of PostgreSQL.",
    )
    args = parser.parse_args()

    if args.scenario == 0:
        asyncio.run(run_all(use_sqlite=args.sqlite))
    else:
        asyncio.run(run_scenario(args.scenario, use_sqlite=args.sqlite))
