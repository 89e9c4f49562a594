from __future__ import annotations

from functools import lru_cache

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from batchcodes.core.config import get_settings
from batchcodes.db.repo.batches_repo import BatchesRepo
from batchcodes.db.repo.codes_repo import CodesRepo
from batchcodes.db.session import SessionLocal
from batchcodes.engine.errors import NotFoundError
from batchcodes.engine.types import DeleteResult

logger = structlog.get_logger(__name__)

MESSAGE_BATCH_DELETED = "Batch deleted successfully"
MESSAGE_BATCH_AND_CODES_DELETED = "Batch and all associated codes deleted successfully"


class DeletionPipeline:
    """Removes a batch and every code it owns.

    Codes go first, one bounded chunk per transaction, and the batch row last.
    A run interrupted between chunks can simply be invoked again.
    """

    def __init__(self, session_factory: async_sessionmaker, *, chunk_size: int) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._session_factory = session_factory
        self.chunk_size = chunk_size

    async def delete_batch(self, batch_id: str) -> DeleteResult:
        async with self._session_factory() as session:
            batch = await BatchesRepo.get_by_id(session, batch_id)
            if batch is None:
                raise NotFoundError("Batch not found")
            has_codes = await CodesRepo.has_any_for_batch(session, batch_id)

        if not has_codes:
            async with self._session_factory.begin() as session:
                await BatchesRepo.delete_by_id(session, batch_id)
            logger.info("batch_deleted", batch_id=batch_id, deleted_codes=0, path="direct")
            return DeleteResult(success=True, message=MESSAGE_BATCH_DELETED)

        deleted_codes = await self._delete_codes_in_chunks(batch_id)
        async with self._session_factory.begin() as session:
            await BatchesRepo.delete_by_id(session, batch_id)

        logger.info("batch_deleted", batch_id=batch_id, deleted_codes=deleted_codes, path="chunked")
        return DeleteResult(
            success=True,
            message=MESSAGE_BATCH_AND_CODES_DELETED,
            deleted_codes=deleted_codes,
        )

    async def _delete_codes_in_chunks(self, batch_id: str) -> int:
        deleted_total = 0
        while True:
            async with self._session_factory.begin() as session:
                code_ids = await CodesRepo.list_ids_for_batch(
                    session,
                    batch_id=batch_id,
                    limit=self.chunk_size,
                )
                if not code_ids:
                    return deleted_total
                deleted = await CodesRepo.delete_by_ids(session, code_ids)
            deleted_total += deleted
            logger.info("batch_codes_chunk_deleted", batch_id=batch_id, deleted=deleted)


@lru_cache(maxsize=1)
def get_deletion_pipeline() -> DeletionPipeline:
    return DeletionPipeline(SessionLocal, chunk_size=get_settings().delete_chunk_size)
