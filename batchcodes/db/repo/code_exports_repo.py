from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from batchcodes.db.models.code_exports import CodeExport


class CodeExportsRepo:
    @staticmethod
    async def append(session: AsyncSession, *, entry: CodeExport) -> CodeExport:
        session.add(entry)
        await session.flush()
        return entry

    @staticmethod
    async def list_for_batch(
        session: AsyncSession,
        batch_id: str,
        *,
        limit: int = 50,
    ) -> list[CodeExport]:
        stmt = (
            select(CodeExport)
            .where(CodeExport.batch_id == batch_id)
            .order_by(CodeExport.created_at.desc(), CodeExport.id.desc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
