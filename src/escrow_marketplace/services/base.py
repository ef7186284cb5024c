"""Plumbing shared by every application service.

Each operation follows the same preamble: authorize the actor against the
operation table, read a fresh platform configuration snapshot, check the
operation's feature flag, then load and guard the project.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from statemachine.exceptions import TransitionNotAllowed

from escrow_marketplace.config import get_settings
from escrow_marketplace.domain.authorization import (
    authorize,
    check_feature,
    check_state,
    ensure_project_party,
)
from escrow_marketplace.domain.enums import EscrowState
from escrow_marketplace.domain.exceptions import InvalidTransitionError, NotFoundError
from escrow_marketplace.domain.state_machine import EscrowStateMachine, event_name
from escrow_marketplace.infrastructure.database.repositories import (
    AuditRepository,
    LedgerRepository,
    ProjectRepository,
)
from escrow_marketplace.providers import get_payment_provider
from escrow_marketplace.services.config_service import ConfigService

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from escrow_marketplace.config import Settings
    from escrow_marketplace.domain.authorization import Actor
    from escrow_marketplace.domain.policy_config import PlatformConfig
    from escrow_marketplace.infrastructure.database.orm_models import Project
    from escrow_marketplace.providers.base import PaymentProvider


def fire_transition(project: Project, target: EscrowState) -> None:
    """Validate and fire a state machine transition, then store the new state.

    Raises InvalidTransitionError if the transition is illegal.
    """
    sm = EscrowStateMachine(current_status=project.state)
    event_method = getattr(sm, event_name(target), None)
    if event_method is None:
        raise InvalidTransitionError(project.state, target.value)
    try:
        event_method()
    except TransitionNotAllowed as err:
        raise InvalidTransitionError(project.state, target.value) from err
    project.state = sm.status


class ServiceBase:
    """Holds the session, settings and the repositories every service needs.

    ``provider`` pins a payment provider instead of resolving one from the
    configuration on each call; tests use it to inject failures.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        provider: PaymentProvider | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._provider_override = provider
        self._project_repo = ProjectRepository(session)
        self._ledger_repo = LedgerRepository(session)
        self._audit_repo = AuditRepository(session)
        self._config_service = ConfigService(session)

    async def _prepare(self, actor: Actor | None, operation: str) -> tuple[Actor, PlatformConfig]:
        """Authorize ``actor`` for ``operation`` and return a fresh config snapshot."""
        actor = authorize(actor, operation)
        config = await self._config_service.load()
        check_feature(operation, config.feature_flags)
        return actor, config

    def _provider(self, config: PlatformConfig) -> PaymentProvider:
        if self._provider_override is not None:
            return self._provider_override
        return get_payment_provider(config.feature_flags, self._settings)

    async def _get_project_or_raise(self, project_id: uuid.UUID) -> Project:
        project = await self._project_repo.get_by_id(project_id)
        if project is None:
            raise NotFoundError("Project", str(project_id))
        return project

    async def _guarded_project(
        self,
        actor: Actor,
        operation: str,
        project_id: uuid.UUID,
        party_check: bool = True,
    ) -> Project:
        """Load the project, check party membership, then the allowed states."""
        project = await self._get_project_or_raise(project_id)
        if party_check:
            ensure_project_party(actor, project)
        check_state(operation, project.state)
        return project
