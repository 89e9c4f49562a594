from __future__ import annotations

import structlog

from batchcodes.engine.errors import CodeBatchError
from batchcodes.engine.orchestrator import get_orchestrator
from batchcodes.workers.asyncio_runner import run_async_job
from batchcodes.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)


async def run_offloaded_generation_async(
    batch_id: str,
    run_token: str | None = None,
) -> dict[str, object]:
    orchestrator = get_orchestrator()
    try:
        outcome = await orchestrator.run_generation(
            batch_id,
            strategy=orchestrator.offloaded,
            run_token=run_token,
        )
    except CodeBatchError as exc:
        # Failed runs already recorded their state; retrying would not change it.
        result: dict[str, object] = {
            "batch_id": batch_id,
            "status": "error",
            "error_code": exc.code,
            "message": exc.message,
        }
        logger.warning("batch_generation_task_finished", **result)
        return result

    result = {
        "batch_id": outcome.batch_id,
        "status": outcome.status,
        "generated_count": outcome.generated_count,
        "strategy": outcome.strategy,
    }
    logger.info("batch_generation_task_finished", **result)
    return result


@celery_app.task(name="batchcodes.workers.tasks.batch_generation.generate_batch_codes")
def generate_batch_codes(batch_id: str, run_token: str | None = None) -> dict[str, object]:
    return run_async_job(run_offloaded_generation_async(batch_id, run_token))
