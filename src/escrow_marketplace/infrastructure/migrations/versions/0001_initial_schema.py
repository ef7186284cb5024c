"""Initial schema: every table in the ORM metadata.

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Later schema changes get their own autogenerated revisions on top of this one.
"""

from collections.abc import Sequence

from alembic import op

from escrow_marketplace.infrastructure.database.orm_models import Base

revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    Base.metadata.create_all(bind=op.get_bind())


def downgrade() -> None:
    Base.metadata.drop_all(bind=op.get_bind())
