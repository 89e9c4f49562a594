from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from batchcodes.db.models.codes import Code

CODE_STATUS_AVAILABLE = "available"
CODE_STATUS_ASSIGNED = "assigned"
CODE_STATUS_DISABLED = "disabled"
CODE_STATUSES = (CODE_STATUS_AVAILABLE, CODE_STATUS_ASSIGNED, CODE_STATUS_DISABLED)


class CodesRepo:
    @staticmethod
    async def scan_ids_in_range(
        session: AsyncSession,
        *,
        lower: str,
        upper: str,
        limit: int,
    ) -> list[str]:
        stmt = (
            select(Code.id)
            .where(Code.id >= lower, Code.id < upper)
            .order_by(Code.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def bulk_insert(session: AsyncSession, *, rows: Sequence[dict[str, object]]) -> int:
        if not rows:
            return 0
        await session.execute(insert(Code), list(rows))
        return len(rows)

    @staticmethod
    async def get_by_id(session: AsyncSession, code: str) -> Code | None:
        return await session.get(Code, code)

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, code: str) -> Code | None:
        stmt = select(Code).where(Code.id == code).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def has_any_for_batch(session: AsyncSession, batch_id: str) -> bool:
        stmt = select(Code.id).where(Code.batch_id == batch_id).limit(1)
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def list_for_batch(session: AsyncSession, batch_id: str) -> list[Code]:
        stmt = select(Code).where(Code.batch_id == batch_id).order_by(Code.id.asc())
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_page(
        session: AsyncSession,
        *,
        batch_id: str,
        limit: int,
        after_id: str | None = None,
        status: str | None = None,
    ) -> list[Code]:
        stmt = select(Code).where(Code.batch_id == batch_id).order_by(Code.id.asc())
        if status is not None:
            stmt = stmt.where(Code.status == status)
        if after_id is not None:
            stmt = stmt.where(Code.id > after_id)
        result = await session.execute(stmt.limit(limit))
        return list(result.scalars().all())

    @staticmethod
    async def list_ids_for_batch(
        session: AsyncSession,
        *,
        batch_id: str,
        limit: int,
    ) -> list[str]:
        stmt = select(Code.id).where(Code.batch_id == batch_id).order_by(Code.id.asc()).limit(limit)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def delete_by_ids(session: AsyncSession, code_ids: Sequence[str]) -> int:
        if not code_ids:
            return 0
        result = await session.execute(delete(Code).where(Code.id.in_(list(code_ids))))
        return int(getattr(result, "rowcount", 0) or 0)

    @staticmethod
    async def count_for_batch(session: AsyncSession, batch_id: str) -> int:
        stmt = select(func.count(Code.id)).where(Code.batch_id == batch_id)
        result = await session.execute(stmt)
        return int(result.scalar_one())

    @staticmethod
    async def count_by_status(session: AsyncSession, batch_id: str) -> dict[str, int]:
        stmt = (
            select(Code.status, func.count(Code.id))
            .where(Code.batch_id == batch_id)
            .group_by(Code.status)
        )
        result = await session.execute(stmt)
        return {str(status): int(count) for status, count in result.all()}

    @staticmethod
    async def update_status(
        session: AsyncSession,
        *,
        code: str,
        status: str,
        assigned_to: str | None,
        assigned_at: datetime | None,
    ) -> int:
        values: dict[str, object] = {"status": status}
        if assigned_to is not None:
            values["assigned_to"] = assigned_to
            values["assigned_at"] = assigned_at
        stmt = (
            update(Code)
            .where(Code.id == code)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return int(getattr(result, "rowcount", 0) or 0)
