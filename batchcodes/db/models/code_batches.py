from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, CheckConstraint, DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from batchcodes.db.models.base import Base


class CodeBatch(Base):
    __tablename__ = "code_batches"
    __table_args__ = (
        CheckConstraint(
            "status IN ('generating','completed','failed')",
            name="status",
        ),
        CheckConstraint("quantity > 0", name="quantity_positive"),
        CheckConstraint("code_length > 0", name="code_length_positive"),
        CheckConstraint(
            "generated_count >= 0 AND generated_count <= quantity",
            name="generated_count_bounds",
        ),
        Index("idx_code_batches_created", "created_at", "id"),
        Index("idx_code_batches_status_created", "status", "created_at"),
        Index("idx_code_batches_created_by", "created_by"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    prefix: Mapped[str] = mapped_column(String(32), nullable=False)
    code_length: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    generated_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    run_token: Mapped[str | None] = mapped_column(String(36), nullable=True)
    run_claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    product_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    distribution_channel: Mapped[str | None] = mapped_column(String(64), nullable=True)
    expiration_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cost_data: Mapped[dict[str, object]] = mapped_column(JSON, nullable=False, default=dict)
    manufacturing_details: Mapped[dict[str, object]] = mapped_column(
        JSON, nullable=False, default=dict
    )
