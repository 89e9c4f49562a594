from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from batchcodes.db.repo.batches_repo import BatchesRepo
from batchcodes.db.repo.codes_repo import CODE_STATUS_AVAILABLE, CodesRepo
from batchcodes.engine.errors import FailedPreconditionError

logger = structlog.get_logger(__name__)


def split_into_chunks(items: Sequence[str], chunk_size: int) -> list[Sequence[str]]:
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return [items[start : start + chunk_size] for start in range(0, len(items), chunk_size)]


class ChunkedWriter:
    """Persists codes in bounded groups and bumps the batch progress counter.

    Every group is its own transaction followed by a separate counter update,
    so a failure part-way leaves the earlier groups committed.
    """

    def __init__(self, session_factory: async_sessionmaker, *, chunk_size: int) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._session_factory = session_factory
        self.chunk_size = chunk_size

    async def write(
        self,
        *,
        batch_id: str,
        codes: Sequence[str],
        product_type: str | None = None,
        expiration_date: datetime | None = None,
        run_token: str | None = None,
    ) -> int:
        written = 0
        for chunk in split_into_chunks(codes, self.chunk_size):
            await self._write_chunk(
                batch_id=batch_id,
                chunk=chunk,
                product_type=product_type,
                expiration_date=expiration_date,
                run_token=run_token,
            )
            written += len(chunk)
        return written

    async def _write_chunk(
        self,
        *,
        batch_id: str,
        chunk: Sequence[str],
        product_type: str | None,
        expiration_date: datetime | None,
        run_token: str | None,
    ) -> None:
        now_utc = datetime.now(timezone.utc)
        rows = [
            {
                "id": code,
                "batch_id": batch_id,
                "status": CODE_STATUS_AVAILABLE,
                "created_at": now_utc,
                "product_type": product_type,
                "expiration_date": expiration_date,
            }
            for code in chunk
        ]
        async with self._session_factory.begin() as session:
            await CodesRepo.bulk_insert(session, rows=rows)

        async with self._session_factory.begin() as session:
            updated = await BatchesRepo.increment_generated_count(
                session,
                batch_id=batch_id,
                delta=len(chunk),
                run_token=run_token,
            )
        if updated == 0:
            # Batch row deleted, no longer generating, or claimed by a newer run.
            raise FailedPreconditionError(f"Batch {batch_id} no longer accepts progress")

        logger.info("batch_chunk_committed", batch_id=batch_id, chunk_size=len(chunk))
