from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from batchcodes.db.models.code_batches import CodeBatch

BATCH_STATUS_GENERATING = "generating"
BATCH_STATUS_COMPLETED = "completed"
BATCH_STATUS_FAILED = "failed"
BATCH_TERMINAL_STATUSES = frozenset({BATCH_STATUS_COMPLETED, BATCH_STATUS_FAILED})
BATCH_STATUSES = frozenset({BATCH_STATUS_GENERATING, *BATCH_TERMINAL_STATUSES})


class BatchesRepo:
    @staticmethod
    async def create(session: AsyncSession, *, batch: CodeBatch) -> CodeBatch:
        session.add(batch)
        await session.flush()
        return batch

    @staticmethod
    async def get_by_id(session: AsyncSession, batch_id: str) -> CodeBatch | None:
        return await session.get(CodeBatch, batch_id)

    @staticmethod
    async def claim_run(
        session: AsyncSession,
        *,
        batch_id: str,
        run_token: str,
        now_utc: datetime,
        stale_before: datetime,
    ) -> int:
        stmt = (
            update(CodeBatch)
            .where(
                CodeBatch.id == batch_id,
                CodeBatch.status == BATCH_STATUS_GENERATING,
                or_(
                    CodeBatch.run_token.is_(None),
                    CodeBatch.run_claimed_at < stale_before,
                ),
            )
            .values(run_token=run_token, run_claimed_at=now_utc)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return int(getattr(result, "rowcount", 0) or 0)

    @staticmethod
    async def increment_generated_count(
        session: AsyncSession,
        *,
        batch_id: str,
        delta: int,
        run_token: str | None = None,
    ) -> int:
        stmt = (
            update(CodeBatch)
            .where(
                CodeBatch.id == batch_id,
                CodeBatch.status == BATCH_STATUS_GENERATING,
                CodeBatch.generated_count + delta <= CodeBatch.quantity,
            )
            .values(generated_count=CodeBatch.generated_count + delta)
            .execution_options(synchronize_session=False)
        )
        if run_token is not None:
            stmt = stmt.where(CodeBatch.run_token == run_token)
        result = await session.execute(stmt)
        return int(getattr(result, "rowcount", 0) or 0)

    @staticmethod
    async def mark_completed(
        session: AsyncSession,
        *,
        batch_id: str,
        now_utc: datetime,
        run_token: str | None = None,
    ) -> int:
        stmt = (
            update(CodeBatch)
            .where(
                CodeBatch.id == batch_id,
                CodeBatch.status == BATCH_STATUS_GENERATING,
            )
            .values(
                status=BATCH_STATUS_COMPLETED,
                completed_at=now_utc,
                generated_count=CodeBatch.quantity,
                run_token=None,
            )
            .execution_options(synchronize_session=False)
        )
        if run_token is not None:
            stmt = stmt.where(CodeBatch.run_token == run_token)
        result = await session.execute(stmt)
        return int(getattr(result, "rowcount", 0) or 0)

    @staticmethod
    async def mark_failed(
        session: AsyncSession,
        *,
        batch_id: str,
        run_token: str | None = None,
    ) -> int:
        stmt = (
            update(CodeBatch)
            .where(
                CodeBatch.id == batch_id,
                CodeBatch.status == BATCH_STATUS_GENERATING,
            )
            .values(status=BATCH_STATUS_FAILED, run_token=None)
            .execution_options(synchronize_session=False)
        )
        if run_token is not None:
            stmt = stmt.where(CodeBatch.run_token == run_token)
        result = await session.execute(stmt)
        return int(getattr(result, "rowcount", 0) or 0)

    @staticmethod
    async def list_page(
        session: AsyncSession,
        *,
        limit: int,
        after_created_at: datetime | None = None,
        after_id: str | None = None,
        status: str | None = None,
        created_by: str | None = None,
    ) -> list[CodeBatch]:
        stmt = select(CodeBatch).order_by(CodeBatch.created_at.desc(), CodeBatch.id.desc())
        if status is not None:
            stmt = stmt.where(CodeBatch.status == status)
        if created_by is not None:
            stmt = stmt.where(CodeBatch.created_by == created_by)
        if after_created_at is not None and after_id is not None:
            stmt = stmt.where(
                or_(
                    CodeBatch.created_at < after_created_at,
                    and_(
                        CodeBatch.created_at == after_created_at,
                        CodeBatch.id < after_id,
                    ),
                )
            )
        result = await session.execute(stmt.limit(limit))
        return list(result.scalars().all())

    @staticmethod
    async def delete_by_id(session: AsyncSession, batch_id: str) -> int:
        result = await session.execute(delete(CodeBatch).where(CodeBatch.id == batch_id))
        return int(getattr(result, "rowcount", 0) or 0)
