from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from batchcodes.core.config import Settings, get_settings
from batchcodes.db.models import Base
from batchcodes.db.session import build_session_factory


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'batchcodes.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield build_session_factory(engine)
    finally:
        await engine.dispose()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return get_settings().model_copy(
        update={
            "inline_threshold": 50,
            "inline_chunk_size": 4,
            "offload_chunk_size": 25,
            "scan_cap": 1_000,
            "delete_chunk_size": 3,
            "export_storage_dir": str(tmp_path / "exports"),
            "export_signing_secret": "test-export-secret",
            "public_base_url": "http://testserver",
        }
    )
