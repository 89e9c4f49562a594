from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from batchcodes.db.models.code_batches import CodeBatch
from batchcodes.db.models.codes import Code
from batchcodes.db.repo.batches_repo import BATCH_STATUSES, BatchesRepo
from batchcodes.db.repo.codes_repo import (
    CODE_STATUS_ASSIGNED,
    CODE_STATUS_AVAILABLE,
    CODE_STATUS_DISABLED,
    CODE_STATUSES,
    CodesRepo,
)
from batchcodes.db.session import SessionLocal
from batchcodes.engine.cursor import PageCursor
from batchcodes.engine.errors import InvalidArgumentError, NotFoundError
from batchcodes.engine.types import CodeCounts, Page

logger = structlog.get_logger(__name__)

MAX_PAGE_SIZE = 500


def _check_page_size(page_size: int) -> None:
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        raise InvalidArgumentError(f"Page size must be between 1 and {MAX_PAGE_SIZE}")


class BatchQueries:
    """Read side over batches and codes, plus the code status mutation."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    async def get_batch(self, batch_id: str) -> CodeBatch:
        async with self._session_factory() as session:
            batch = await BatchesRepo.get_by_id(session, batch_id)
        if batch is None:
            raise NotFoundError("Batch not found")
        return batch

    async def list_batches(
        self,
        *,
        page_size: int = 10,
        cursor: str | None = None,
        status: str | None = None,
        created_by: str | None = None,
    ) -> Page[CodeBatch]:
        _check_page_size(page_size)
        if status is not None and status not in BATCH_STATUSES:
            raise InvalidArgumentError(f"Unknown batch status: {status}")

        after_created_at: datetime | None = None
        after_id: str | None = None
        if cursor:
            decoded = PageCursor.decode(cursor)
            after_created_at = decoded.sort_key_as_datetime()
            after_id = decoded.id

        async with self._session_factory() as session:
            rows = await BatchesRepo.list_page(
                session,
                limit=page_size + 1,
                after_created_at=after_created_at,
                after_id=after_id,
                status=status,
                created_by=created_by,
            )

        items = rows[:page_size]
        has_more = len(rows) > page_size
        next_cursor = None
        if items:
            last = items[-1]
            next_cursor = PageCursor(sort_key=last.created_at.isoformat(), id=last.id).encode()
        return Page(items=items, has_more=has_more, cursor=next_cursor)

    async def list_codes(
        self,
        *,
        batch_id: str,
        page_size: int = 50,
        cursor: str | None = None,
        status: str | None = None,
    ) -> Page[Code]:
        _check_page_size(page_size)
        if status is not None and status not in CODE_STATUSES:
            raise InvalidArgumentError(f"Unknown code status: {status}")

        after_id = PageCursor.decode(cursor).id if cursor else None
        async with self._session_factory() as session:
            rows = await CodesRepo.list_page(
                session,
                batch_id=batch_id,
                limit=page_size + 1,
                after_id=after_id,
                status=status,
            )

        items = rows[:page_size]
        has_more = len(rows) > page_size
        next_cursor = None
        if items:
            last = items[-1]
            next_cursor = PageCursor(sort_key=last.id, id=last.id).encode()
        return Page(items=items, has_more=has_more, cursor=next_cursor)

    async def get_code_counts(self, batch_id: str) -> CodeCounts:
        async with self._session_factory() as session:
            counts = await CodesRepo.count_by_status(session, batch_id)
        return CodeCounts(
            available=counts.get(CODE_STATUS_AVAILABLE, 0),
            assigned=counts.get(CODE_STATUS_ASSIGNED, 0),
            disabled=counts.get(CODE_STATUS_DISABLED, 0),
            total=sum(counts.values()),
        )

    async def update_code_status(
        self,
        *,
        code: str,
        status: str,
        assigned_to: str | None = None,
    ) -> Code:
        if status not in CODE_STATUSES:
            raise InvalidArgumentError(f"Unknown code status: {status}")

        now_utc = datetime.now(timezone.utc)
        record_assignee = status == CODE_STATUS_ASSIGNED and bool(assigned_to)
        async with self._session_factory.begin() as session:
            updated = await CodesRepo.update_status(
                session,
                code=code,
                status=status,
                assigned_to=assigned_to if record_assignee else None,
                assigned_at=now_utc if record_assignee else None,
            )
            if updated == 0:
                raise NotFoundError("Code not found")
            row = await CodesRepo.get_by_id(session, code)

        logger.info("code_status_updated", code=code, status=status, assigned_to=assigned_to)
        return row


@lru_cache(maxsize=1)
def get_batch_queries() -> BatchQueries:
    return BatchQueries(SessionLocal)
