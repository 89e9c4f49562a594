"""code_batches_run_lease

Revision ID: 8d4f0b6e2a17
Revises: 5c1e2a7d9b30
Create Date: 2026-10-18 12:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "8d4f0b6e2a17"
down_revision: str | None = "5c1e2a7d9b30"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.add_column("code_batches", sa.Column("run_token", sa.String(36), nullable=True))
    op.add_column(
        "code_batches",
        sa.Column("run_claimed_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_column("code_batches", "run_claimed_at")
    op.drop_column("code_batches", "run_token")
