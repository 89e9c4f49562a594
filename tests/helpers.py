from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from batchcodes.db.models.code_batches import CodeBatch
from batchcodes.db.models.codes import Code

UTC = timezone.utc


async def create_batch_row(
    session_factory,
    *,
    prefix: str = "TST-",
    code_length: int = 6,
    quantity: int = 10,
    status: str = "generating",
    generated_count: int = 0,
    created_by: str = "admin-1",
    created_at: datetime | None = None,
    name: str = "Test batch",
    run_token: str | None = None,
    run_claimed_at: datetime | None = None,
) -> CodeBatch:
    batch = CodeBatch(
        id=str(uuid4()),
        name=name,
        description="",
        prefix=prefix,
        code_length=code_length,
        quantity=quantity,
        status=status,
        generated_count=generated_count,
        created_by=created_by,
        created_at=created_at or datetime.now(UTC),
        cost_data={},
        manufacturing_details={},
        run_token=run_token,
        run_claimed_at=run_claimed_at,
    )
    async with session_factory.begin() as session:
        session.add(batch)
    return batch


async def add_codes(
    session_factory,
    *,
    batch_id: str,
    codes: list[str],
    status: str = "available",
) -> None:
    now_utc = datetime.now(UTC)
    async with session_factory.begin() as session:
        session.add_all(
            [Code(id=code, batch_id=batch_id, status=status, created_at=now_utc) for code in codes]
        )
