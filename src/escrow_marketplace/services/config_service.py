"""Platform configuration service.

Reads the policy documents from ``platform_config`` into an immutable
``PlatformConfig`` snapshot, and lets verified admins replace a document.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import ValidationError

from escrow_marketplace.domain.authorization import authorize
from escrow_marketplace.domain.exceptions import FailedPreconditionError, InvalidArgumentError
from escrow_marketplace.domain.policy_config import CONFIG_SECTIONS, PlatformConfig
from escrow_marketplace.infrastructure.database.repositories import (
    AuditRepository,
    ConfigRepository,
)
from escrow_marketplace.logging_config import get_logger

if TYPE_CHECKING:
    from pydantic import BaseModel
    from sqlalchemy.ext.asyncio import AsyncSession

    from escrow_marketplace.domain.authorization import Actor

logger = get_logger(__name__)


class ConfigService:
    def __init__(self, session: AsyncSession) -> None:
        self._config_repo = ConfigRepository(session)
        self._audit_repo = AuditRepository(session)

    async def load(self) -> PlatformConfig:
        """Build the snapshot; sections without a stored document use defaults."""
        documents = await self._config_repo.get_all()
        sections = {}
        for name, model in CONFIG_SECTIONS.items():
            if name not in documents:
                continue
            try:
                sections[name] = model.model_validate(documents[name])
            except ValidationError as err:
                raise FailedPreconditionError(
                    f"Stored platform config '{name}' is invalid: {err.error_count()} error(s)",
                    code="INVALID_PLATFORM_CONFIG",
                ) from err
        return PlatformConfig(**sections)

    async def get_current_config(self, actor: Actor | None) -> PlatformConfig:
        """The snapshot any signed-in role may read; routes expose the public sections."""
        authorize(actor, "view_platform_config")
        return await self.load()

    async def set_platform_config(
        self, actor: Actor | None, name: str, document: dict
    ) -> BaseModel:
        actor = authorize(actor, "set_platform_config")
        model = CONFIG_SECTIONS.get(name)
        if model is None:
            valid = ", ".join(sorted(CONFIG_SECTIONS))
            raise InvalidArgumentError(f"Unknown config section '{name}'. Valid sections: {valid}")
        try:
            parsed = model.model_validate(document)
        except ValidationError as err:
            raise InvalidArgumentError(f"Invalid '{name}' document: {err}") from err

        stored = parsed.model_dump(mode="json")
        await self._config_repo.upsert(name, stored, actor.uid)
        await self._audit_repo.record(
            actor, "set_platform_config", "platform_config", name, {"document": stored}
        )
        logger.info("config.updated", section=name, actor_id=actor.uid)
        return parsed
