from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from batchcodes.engine.orchestrator import BatchOrchestrator

logger = structlog.get_logger(__name__)

STRATEGY_INLINE = "inline"
STRATEGY_OFFLOADED = "offloaded"


class GenerationStrategy:
    """How a generation run is started and how large its write chunks are."""

    name: str = ""

    def __init__(self, *, chunk_size: int) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size

    async def dispatch(
        self,
        orchestrator: BatchOrchestrator,
        batch_id: str,
        *,
        run_token: str,
    ) -> None:
        raise NotImplementedError


class InlineStrategy(GenerationStrategy):
    """Runs the pipeline as a detached task inside the calling process."""

    name = STRATEGY_INLINE

    async def dispatch(
        self,
        orchestrator: BatchOrchestrator,
        batch_id: str,
        *,
        run_token: str,
    ) -> None:
        orchestrator.spawn(batch_id, strategy=self, run_token=run_token)


class OffloadedStrategy(GenerationStrategy):
    """Hands the run to a Celery worker with a longer wall-clock budget."""

    name = STRATEGY_OFFLOADED

    def __init__(self, *, chunk_size: int, time_limit_seconds: int) -> None:
        super().__init__(chunk_size=chunk_size)
        if time_limit_seconds <= 0:
            raise ValueError("time_limit_seconds must be positive")
        self.time_limit_seconds = time_limit_seconds

    def _enqueue(self, batch_id: str, run_token: str) -> str:
        from batchcodes.workers.tasks.batch_generation import generate_batch_codes

        # The soft limit raises inside the task so the batch can still be marked failed.
        result = generate_batch_codes.apply_async(
            args=[batch_id, run_token],
            soft_time_limit=self.time_limit_seconds,
            time_limit=self.time_limit_seconds + 30,
        )
        return str(result.id)

    async def dispatch(
        self,
        orchestrator: BatchOrchestrator,
        batch_id: str,
        *,
        run_token: str,
    ) -> None:
        task_id = await asyncio.to_thread(self._enqueue, batch_id, run_token)
        logger.info("batch_generation_enqueued", batch_id=batch_id, task_id=task_id)
