"""Tests for the Alembic migration environment."""

from __future__ import annotations

from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

import escrow_marketplace.infrastructure.database.orm_models as orm_models

MIGRATIONS = Path(orm_models.__file__).resolve().parents[1] / "migrations"


@pytest.fixture
def alembic_config(tmp_path) -> tuple[Config, str]:
    db_path = tmp_path / "migrations.db"
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS))
    config.set_main_option("sqlalchemy.url", f"sqlite+aiosqlite:///{db_path}")
    return config, f"sqlite:///{db_path}"


def _tables(sync_url: str) -> set[str]:
    engine = create_engine(sync_url)
    try:
        return set(inspect(engine).get_table_names())
    finally:
        engine.dispose()


class TestMigrations:
    def test_upgrade_creates_every_table(self, alembic_config) -> None:
        config, sync_url = alembic_config
        command.upgrade(config, "head")

        tables = _tables(sync_url)
        assert set(orm_models.Base.metadata.tables) <= tables
        assert {"projects", "ledger_events", "cases"} <= tables
        assert "alembic_version" in tables

    def test_downgrade_drops_them(self, alembic_config) -> None:
        config, sync_url = alembic_config
        command.upgrade(config, "head")
        command.downgrade(config, "base")

        assert _tables(sync_url) == {"alembic_version"}
