from __future__ import annotations

from batchcodes.engine.scanner import scan_existing_codes
from tests.helpers import add_codes, create_batch_row


async def test_scan_returns_only_codes_with_prefix(session_factory) -> None:
    batch = await create_batch_row(session_factory)
    await add_codes(
        session_factory,
        batch_id=batch.id,
        codes=["IFL-AAAA", "IFL-ZZZZ", "IFL-2345", "IFM-AAAA", "IF-AAAAA", "XYZ-AAAA"],
    )

    existing = await scan_existing_codes(session_factory, prefix="IFL-", limit=100)

    assert existing == {"IFL-AAAA", "IFL-ZZZZ", "IFL-2345"}


async def test_scan_is_capped(session_factory) -> None:
    batch = await create_batch_row(session_factory)
    await add_codes(
        session_factory,
        batch_id=batch.id,
        codes=[f"CAP-{suffix}" for suffix in ("AAAA", "BBBB", "CCCC", "DDDD", "EEEE")],
    )

    existing = await scan_existing_codes(session_factory, prefix="CAP-", limit=3)

    assert existing == {"CAP-AAAA", "CAP-BBBB", "CAP-CCCC"}


async def test_scan_on_empty_store(session_factory) -> None:
    assert await scan_existing_codes(session_factory, prefix="NEW-", limit=10) == set()
