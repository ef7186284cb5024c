"""FastAPI application entry point for the escrow marketplace.

Lifecycle:
    1. Startup: Initialize logging and the database, create tables (dev mode).
    2. Running: Serve the REST API at /api/v1/*.
    3. Shutdown: Dispose of the database engine.

Sweeps do not run in this process; see escrow_marketplace.jobs.

Run with:
    uvicorn escrow_marketplace.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from escrow_marketplace.config import get_settings
from escrow_marketplace.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
        payment_provider=settings.payment_provider,
    )

    from escrow_marketplace.infrastructure.database.engine import close_db, init_db

    await init_db()
    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    logger.info("app.shutting_down")
    await close_db()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Escrow Marketplace",
        description=(
            "Escrow lifecycle and settlement engine for a home-services marketplace. "
            "Customers fund a hold, contractors are paid on approval."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from escrow_marketplace.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from escrow_marketplace.api.routes.admin import router as admin_router
    from escrow_marketplace.api.routes.billing import router as billing_router
    from escrow_marketplace.api.routes.deposits import router as deposits_router
    from escrow_marketplace.api.routes.disputes import router as disputes_router
    from escrow_marketplace.api.routes.health import router as health_router
    from escrow_marketplace.api.routes.milestones import router as milestones_router
    from escrow_marketplace.api.routes.projects import router as projects_router

    app.include_router(health_router)
    app.include_router(projects_router)
    app.include_router(disputes_router)
    app.include_router(milestones_router)
    app.include_router(deposits_router)
    app.include_router(billing_router)
    app.include_router(admin_router)

    return app


# The app instance used by Uvicorn
app = create_app()
