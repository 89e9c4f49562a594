from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from batchcodes.db.models.base import Base


class Code(Base):
    __tablename__ = "codes"
    __table_args__ = (
        CheckConstraint(
            "status IN ('available','assigned','disabled')",
            name="status",
        ),
        Index("idx_codes_batch_status", "batch_id", "status"),
        Index("idx_codes_batch_id", "batch_id", "id"),
    )

    # The code string itself; the primary key is the global uniqueness surface.
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    batch_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("code_batches.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    assigned_to: Mapped[str | None] = mapped_column(String(128), nullable=True)
    product_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    expiration_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
