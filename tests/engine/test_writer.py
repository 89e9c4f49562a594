from __future__ import annotations

import pytest
from sqlalchemy import func, select

from batchcodes.db.models.code_batches import CodeBatch
from batchcodes.db.models.codes import Code
from batchcodes.db.repo.codes_repo import CodesRepo
from batchcodes.engine.errors import FailedPreconditionError
from batchcodes.engine.writer import ChunkedWriter, split_into_chunks
from tests.helpers import create_batch_row


async def _count_codes(session_factory, batch_id: str) -> int:
    async with session_factory() as session:
        result = await session.execute(
            select(func.count(Code.id)).where(Code.batch_id == batch_id)
        )
        return int(result.scalar_one())


async def _generated_count(session_factory, batch_id: str) -> int:
    async with session_factory() as session:
        batch = await session.get(CodeBatch, batch_id)
        return batch.generated_count


def test_split_into_chunks() -> None:
    assert split_into_chunks(["a", "b", "c", "d", "e"], 2) == [["a", "b"], ["c", "d"], ["e"]]
    assert split_into_chunks([], 3) == []
    with pytest.raises(ValueError):
        split_into_chunks(["a"], 0)


async def test_write_persists_codes_and_bumps_counter_per_chunk(session_factory) -> None:
    batch = await create_batch_row(session_factory, quantity=10)
    writer = ChunkedWriter(session_factory, chunk_size=4)
    codes = [f"TST-{index:06d}" for index in range(10)]

    written = await writer.write(batch_id=batch.id, codes=codes)

    assert written == 10
    assert await _count_codes(session_factory, batch.id) == 10
    assert await _generated_count(session_factory, batch.id) == 10
    async with session_factory() as session:
        stored = await session.get(Code, "TST-000003")
    assert stored.status == "available"
    assert stored.batch_id == batch.id


async def test_failure_keeps_earlier_chunks(session_factory, monkeypatch) -> None:
    batch = await create_batch_row(session_factory, quantity=10)
    writer = ChunkedWriter(session_factory, chunk_size=4)
    original_bulk_insert = CodesRepo.bulk_insert
    calls = {"count": 0}

    async def flaky_bulk_insert(session, *, rows):
        calls["count"] += 1
        if calls["count"] == 2:
            raise RuntimeError("store unavailable")
        return await original_bulk_insert(session, rows=rows)

    monkeypatch.setattr(CodesRepo, "bulk_insert", staticmethod(flaky_bulk_insert))

    with pytest.raises(RuntimeError):
        await writer.write(batch_id=batch.id, codes=[f"TST-{index:06d}" for index in range(10)])

    assert await _count_codes(session_factory, batch.id) == 4
    assert await _generated_count(session_factory, batch.id) == 4


async def test_counter_never_exceeds_quantity(session_factory) -> None:
    batch = await create_batch_row(session_factory, quantity=3)
    writer = ChunkedWriter(session_factory, chunk_size=2)

    with pytest.raises(FailedPreconditionError):
        await writer.write(batch_id=batch.id, codes=["TST-A", "TST-B", "TST-C", "TST-D"])

    assert await _generated_count(session_factory, batch.id) == 2


async def test_terminal_batch_rejects_progress(session_factory) -> None:
    batch = await create_batch_row(session_factory, quantity=5, status="failed")
    writer = ChunkedWriter(session_factory, chunk_size=5)

    with pytest.raises(FailedPreconditionError):
        await writer.write(batch_id=batch.id, codes=["TST-A"])

    assert await _generated_count(session_factory, batch.id) == 0


async def test_progress_from_superseded_run_is_rejected(session_factory) -> None:
    batch = await create_batch_row(session_factory, quantity=5, run_token="current-run")
    writer = ChunkedWriter(session_factory, chunk_size=5)

    with pytest.raises(FailedPreconditionError):
        await writer.write(batch_id=batch.id, codes=["TST-A"], run_token="previous-run")

    assert await _generated_count(session_factory, batch.id) == 0

    await writer.write(batch_id=batch.id, codes=["TST-B"], run_token="current-run")
    assert await _generated_count(session_factory, batch.id) == 1
