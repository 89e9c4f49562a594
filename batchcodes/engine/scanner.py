from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from batchcodes.db.repo.codes_repo import CodesRepo
from batchcodes.engine.alphabet import prefix_scan_bounds

logger = structlog.get_logger(__name__)


async def scan_existing_codes(
    session_factory: async_sessionmaker,
    *,
    prefix: str,
    limit: int,
) -> set[str]:
    """Return stored codes in ``[prefix, prefix + HIGH_SENTINEL)``, at most ``limit``.

    Hitting the cap means the result under-approximates the stored set, so
    collisions past the cap go undetected until the insert.
    """
    lower, upper = prefix_scan_bounds(prefix)
    async with session_factory() as session:
        existing = await CodesRepo.scan_ids_in_range(
            session,
            lower=lower,
            upper=upper,
            limit=limit,
        )

    if len(existing) >= limit:
        logger.warning(
            "generation_scan_cap_reached",
            prefix=prefix,
            scan_cap=limit,
        )
    logger.info("generation_existing_codes_scanned", prefix=prefix, existing=len(existing))
    return set(existing)
