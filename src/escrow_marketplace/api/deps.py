"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
the calling actor and configuration.

Identity is established upstream: the gateway authenticates the caller and
forwards ``X-Actor-Id``, ``X-Actor-Role`` and ``X-Admin-Verified``. A request
without an actor id reaches the services as an anonymous caller and is
rejected there as unauthenticated.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Header
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_marketplace.config import Settings, get_settings
from escrow_marketplace.domain.authorization import Actor
from escrow_marketplace.domain.enums import Role
from escrow_marketplace.domain.exceptions import UnauthenticatedError
from escrow_marketplace.infrastructure.database.engine import get_async_session

_TRUTHY = frozenset({"1", "true", "yes"})


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_actor(
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
    x_admin_verified: str | None = Header(default=None),
) -> Actor | None:
    """Build the calling actor from the gateway's identity headers."""
    if not x_actor_id:
        return None
    try:
        role = Role((x_actor_role or "").lower())
    except ValueError:
        raise UnauthenticatedError(f"Unknown actor role '{x_actor_role}'") from None
    verified = (x_admin_verified or "").lower() in _TRUTHY
    return Actor(uid=x_actor_id, role=role, admin_verified=verified)


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()
