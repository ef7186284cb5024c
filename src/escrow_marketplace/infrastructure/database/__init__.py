"""Database infrastructure — engine, ORM models, and repositories."""

from escrow_marketplace.infrastructure.database.engine import (
    close_db,
    get_async_session,
    init_db,
    session_scope,
)
from escrow_marketplace.infrastructure.database.orm_models import (
    Base,
    Case,
    LedgerEvent,
    Project,
)
from escrow_marketplace.infrastructure.database.repositories import (
    AuditRepository,
    LedgerRepository,
    ProjectRepository,
)

__all__ = [
    "Base",
    "Case",
    "LedgerEvent",
    "Project",
    "AuditRepository",
    "LedgerRepository",
    "ProjectRepository",
    "get_async_session",
    "session_scope",
    "init_db",
    "close_db",
]
