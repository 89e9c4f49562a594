from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from batchcodes.engine.cursor import PageCursor
from batchcodes.engine.errors import InvalidArgumentError, NotFoundError
from batchcodes.engine.queries import BatchQueries
from tests.helpers import add_codes, create_batch_row

UTC = timezone.utc


@pytest.fixture
def queries(session_factory) -> BatchQueries:
    return BatchQueries(session_factory)


async def test_list_batches_pages_newest_first(session_factory, queries) -> None:
    base = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)
    created = [
        await create_batch_row(
            session_factory,
            name=f"batch-{index}",
            created_at=base + timedelta(minutes=index),
        )
        for index in range(5)
    ]

    first = await queries.list_batches(page_size=2)
    assert [batch.name for batch in first.items] == ["batch-4", "batch-3"]
    assert first.has_more is True

    second = await queries.list_batches(page_size=2, cursor=first.cursor)
    assert [batch.name for batch in second.items] == ["batch-2", "batch-1"]
    assert second.has_more is True

    third = await queries.list_batches(page_size=2, cursor=second.cursor)
    assert [batch.name for batch in third.items] == ["batch-0"]
    assert third.has_more is False
    assert {batch.id for batch in first.items + second.items + third.items} == {
        batch.id for batch in created
    }


async def test_list_batches_breaks_timestamp_ties_by_id(session_factory, queries) -> None:
    moment = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)
    rows = [await create_batch_row(session_factory, created_at=moment) for _ in range(3)]
    expected = sorted((row.id for row in rows), reverse=True)

    seen: list[str] = []
    cursor = None
    while True:
        page = await queries.list_batches(page_size=1, cursor=cursor)
        seen.extend(batch.id for batch in page.items)
        if not page.has_more:
            break
        cursor = page.cursor

    assert seen == expected


async def test_list_batches_filters(session_factory, queries) -> None:
    await create_batch_row(
        session_factory, created_by="alice", status="completed", generated_count=10
    )
    await create_batch_row(session_factory, created_by="alice")
    await create_batch_row(session_factory, created_by="bob", status="failed")

    by_owner = await queries.list_batches(created_by="alice")
    assert {batch.created_by for batch in by_owner.items} == {"alice"}
    assert len(by_owner.items) == 2

    failed = await queries.list_batches(status="failed")
    assert [batch.created_by for batch in failed.items] == ["bob"]

    empty = await queries.list_batches(status="completed", created_by="bob")
    assert empty.items == []
    assert empty.has_more is False
    assert empty.cursor is None


async def test_list_batches_rejects_bad_input(queries) -> None:
    with pytest.raises(InvalidArgumentError):
        await queries.list_batches(status="archived")
    with pytest.raises(InvalidArgumentError):
        await queries.list_batches(page_size=0)
    with pytest.raises(InvalidArgumentError):
        await queries.list_batches(cursor="%%%")
    with pytest.raises(InvalidArgumentError):
        await queries.list_batches(cursor=PageCursor(sort_key="soon", id="x").encode())


async def test_list_codes_pages_by_code(session_factory, queries) -> None:
    batch = await create_batch_row(session_factory, quantity=5)
    await add_codes(session_factory, batch_id=batch.id, codes=["TST-E", "TST-A", "TST-C"])
    await add_codes(session_factory, batch_id=batch.id, codes=["TST-B", "TST-D"], status="disabled")

    first = await queries.list_codes(batch_id=batch.id, page_size=3)
    assert [code.id for code in first.items] == ["TST-A", "TST-B", "TST-C"]
    assert first.has_more is True

    second = await queries.list_codes(batch_id=batch.id, page_size=3, cursor=first.cursor)
    assert [code.id for code in second.items] == ["TST-D", "TST-E"]
    assert second.has_more is False

    disabled = await queries.list_codes(batch_id=batch.id, status="disabled")
    assert [code.id for code in disabled.items] == ["TST-B", "TST-D"]

    with pytest.raises(InvalidArgumentError):
        await queries.list_codes(batch_id=batch.id, status="used")


async def test_get_code_counts(session_factory, queries) -> None:
    batch = await create_batch_row(session_factory, quantity=6)
    await add_codes(session_factory, batch_id=batch.id, codes=["TST-A", "TST-B", "TST-C"])
    await add_codes(session_factory, batch_id=batch.id, codes=["TST-D", "TST-E"], status="assigned")
    await add_codes(session_factory, batch_id=batch.id, codes=["TST-F"], status="disabled")

    counts = await queries.get_code_counts(batch.id)

    assert (counts.available, counts.assigned, counts.disabled, counts.total) == (3, 2, 1, 6)
    empty = await queries.get_code_counts("missing")
    assert (empty.available, empty.assigned, empty.disabled, empty.total) == (0, 0, 0, 0)


async def test_get_batch(session_factory, queries) -> None:
    batch = await create_batch_row(session_factory, name="Lookup")

    loaded = await queries.get_batch(batch.id)
    assert loaded.name == "Lookup"
    with pytest.raises(NotFoundError):
        await queries.get_batch("missing")


async def test_update_code_status_records_assignment(session_factory, queries) -> None:
    batch = await create_batch_row(session_factory, quantity=2)
    await add_codes(session_factory, batch_id=batch.id, codes=["TST-A", "TST-B"])

    assigned = await queries.update_code_status(
        code="TST-A", status="assigned", assigned_to="user-7"
    )
    assert assigned.status == "assigned"
    assert assigned.assigned_to == "user-7"
    assert assigned.assigned_at is not None

    disabled = await queries.update_code_status(
        code="TST-B", status="disabled", assigned_to="user-8"
    )
    assert disabled.status == "disabled"
    assert disabled.assigned_to is None
    assert disabled.assigned_at is None


async def test_update_code_status_errors(session_factory, queries) -> None:
    with pytest.raises(NotFoundError):
        await queries.update_code_status(code="NOPE", status="disabled")
    with pytest.raises(InvalidArgumentError):
        await queries.update_code_status(code="NOPE", status="redeemed")
