"""code_batches_core

Revision ID: 5c1e2a7d9b30
Revises:
Create Date: 2026-10-18 10:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "5c1e2a7d9b30"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "code_batches",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("prefix", sa.String(32), nullable=False),
        sa.Column("code_length", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("generated_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_by", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("product_type", sa.String(64), nullable=True),
        sa.Column("distribution_channel", sa.String(64), nullable=True),
        sa.Column("expiration_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cost_data", sa.JSON(), nullable=False),
        sa.Column("manufacturing_details", sa.JSON(), nullable=False),
        sa.CheckConstraint(
            "status IN ('generating','completed','failed')",
            name="ck_code_batches_status",
        ),
        sa.CheckConstraint("quantity > 0", name="ck_code_batches_quantity_positive"),
        sa.CheckConstraint("code_length > 0", name="ck_code_batches_code_length_positive"),
        sa.CheckConstraint(
            "generated_count >= 0 AND generated_count <= quantity",
            name="ck_code_batches_generated_count_bounds",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_code_batches"),
    )
    op.create_index("idx_code_batches_created", "code_batches", ["created_at", "id"])
    op.create_index("idx_code_batches_status_created", "code_batches", ["status", "created_at"])
    op.create_index("idx_code_batches_created_by", "code_batches", ["created_by"])

    op.create_table(
        "codes",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("batch_id", sa.String(36), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assigned_to", sa.String(128), nullable=True),
        sa.Column("product_type", sa.String(64), nullable=True),
        sa.Column("expiration_date", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('available','assigned','disabled')",
            name="ck_codes_status",
        ),
        sa.ForeignKeyConstraint(
            ["batch_id"],
            ["code_batches.id"],
            name="fk_codes_batch_id_code_batches",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_codes"),
    )
    op.create_index("idx_codes_batch_status", "codes", ["batch_id", "status"])
    op.create_index("idx_codes_batch_id", "codes", ["batch_id", "id"])

    op.create_table(
        "code_exports",
        sa.Column("id", sa.BigInteger(), sa.Identity(always=False), nullable=False),
        sa.Column("batch_id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("format", sa.String(16), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("storage_path", sa.String(512), nullable=False),
        sa.Column("code_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_code_exports"),
    )
    op.create_index("idx_code_exports_batch_created", "code_exports", ["batch_id", "created_at"])


def downgrade() -> None:
    op.drop_index("idx_code_exports_batch_created", table_name="code_exports")
    op.drop_table("code_exports")

    op.drop_index("idx_codes_batch_id", table_name="codes")
    op.drop_index("idx_codes_batch_status", table_name="codes")
    op.drop_table("codes")

    op.drop_index("idx_code_batches_created_by", table_name="code_batches")
    op.drop_index("idx_code_batches_status_created", table_name="code_batches")
    op.drop_index("idx_code_batches_created", table_name="code_batches")
    op.drop_table("code_batches")
