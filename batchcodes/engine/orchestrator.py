from __future__ import annotations

import asyncio
import re
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from uuid import uuid4

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from batchcodes.core.config import Settings, get_settings
from batchcodes.db.models.code_batches import CodeBatch
from batchcodes.db.repo.batches_repo import (
    BATCH_STATUS_COMPLETED,
    BATCH_STATUS_GENERATING,
    BATCH_TERMINAL_STATUSES,
    BatchesRepo,
)
from batchcodes.db.repo.codes_repo import CodesRepo
from batchcodes.db.session import SessionLocal
from batchcodes.engine.alphabet import HIGH_SENTINEL
from batchcodes.engine.errors import (
    FailedPreconditionError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    UnauthenticatedError,
)
from batchcodes.engine.generator import generate_unique_codes
from batchcodes.engine.scanner import scan_existing_codes
from batchcodes.engine.strategies import (
    STRATEGY_INLINE,
    STRATEGY_OFFLOADED,
    GenerationStrategy,
    InlineStrategy,
    OffloadedStrategy,
)
from batchcodes.engine.types import BatchParams, CreateBatchResult, GenerationOutcome
from batchcodes.engine.writer import ChunkedWriter

logger = structlog.get_logger(__name__)

_PREFIX_PATTERN = re.compile(r"^[A-Z0-9-]+$")


class BatchOrchestrator:
    """Owns the batch lifecycle: create, dispatch, run and finalize.

    ``generating`` is the only non-terminal state. Every status write is
    guarded on ``status = 'generating'`` so a terminal batch is never touched
    again short of deleting it.

    At most one run holds a batch at a time: its ``run_token`` is stored on the
    row and fences every counter bump and the final transition. A lease older
    than ``generation_lease_seconds`` may be taken over by a new run.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        *,
        settings: Settings | None = None,
        inline: GenerationStrategy | None = None,
        offloaded: GenerationStrategy | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self.inline = inline or InlineStrategy(chunk_size=self._settings.inline_chunk_size)
        self.offloaded = offloaded or OffloadedStrategy(
            chunk_size=self._settings.offload_chunk_size,
            time_limit_seconds=self._settings.offload_time_limit_seconds,
        )
        self._background_tasks: set[asyncio.Task[GenerationOutcome]] = set()

    def validate_params(self, params: BatchParams) -> BatchParams:
        settings = self._settings
        if not (params.created_by or "").strip():
            raise UnauthenticatedError("Authentication required to create a batch")

        name = (params.name or "").strip()
        if not name:
            raise InvalidArgumentError("Batch name is required")

        prefix = (params.prefix or "").strip().upper()
        if not prefix:
            raise InvalidArgumentError("Prefix is required")
        if len(prefix) > settings.prefix_max_length:
            raise InvalidArgumentError(
                f"Prefix should be {settings.prefix_max_length} characters or less"
            )
        if _PREFIX_PATTERN.match(prefix) is None or HIGH_SENTINEL in prefix:
            raise InvalidArgumentError(
                "Prefix can only contain uppercase letters, numbers, and hyphens"
            )

        if isinstance(params.code_length, bool) or not isinstance(params.code_length, int):
            raise InvalidArgumentError("Code length must be an integer")
        if not settings.code_length_min <= params.code_length <= settings.code_length_max:
            raise InvalidArgumentError(
                f"Code length must be between {settings.code_length_min} "
                f"and {settings.code_length_max}"
            )

        if isinstance(params.quantity, bool) or not isinstance(params.quantity, int):
            raise InvalidArgumentError("Quantity must be an integer")
        if not 1 <= params.quantity <= settings.max_quantity:
            raise InvalidArgumentError(f"Quantity must be between 1 and {settings.max_quantity}")

        return replace(
            params,
            name=name,
            prefix=prefix,
            created_by=params.created_by.strip(),
            description=(params.description or "").strip(),
        )

    def select_strategy(self, quantity: int) -> GenerationStrategy:
        if quantity <= self._settings.inline_threshold:
            return self.inline
        return self.offloaded

    def strategy_by_name(self, name: str) -> GenerationStrategy:
        if name == STRATEGY_INLINE:
            return self.inline
        if name == STRATEGY_OFFLOADED:
            return self.offloaded
        raise InvalidArgumentError(f"Unknown generation strategy: {name}")

    async def create_batch(self, params: BatchParams) -> CreateBatchResult:
        params = self.validate_params(params)
        batch_id = str(uuid4())
        run_token = str(uuid4())
        now_utc = datetime.now(timezone.utc)

        async with self._session_factory.begin() as session:
            await BatchesRepo.create(
                session,
                batch=CodeBatch(
                    id=batch_id,
                    name=params.name,
                    description=params.description,
                    prefix=params.prefix,
                    code_length=params.code_length,
                    quantity=params.quantity,
                    status=BATCH_STATUS_GENERATING,
                    generated_count=0,
                    created_by=params.created_by,
                    created_at=now_utc,
                    completed_at=None,
                    run_token=run_token,
                    run_claimed_at=now_utc,
                    product_type=params.product_type,
                    distribution_channel=params.distribution_channel,
                    expiration_date=params.expiration_date,
                    cost_data=dict(params.cost_data),
                    manufacturing_details=dict(params.manufacturing_details),
                ),
            )

        strategy = self.select_strategy(params.quantity)
        logger.info(
            "batch_created",
            batch_id=batch_id,
            prefix=params.prefix,
            code_length=params.code_length,
            quantity=params.quantity,
            strategy=strategy.name,
            created_by=params.created_by,
        )
        await self._dispatch(batch_id, strategy, run_token=run_token)
        return CreateBatchResult(
            batch_id=batch_id,
            status=BATCH_STATUS_GENERATING,
            strategy=strategy.name,
        )

    async def _dispatch(
        self,
        batch_id: str,
        strategy: GenerationStrategy,
        *,
        run_token: str,
    ) -> None:
        try:
            await strategy.dispatch(self, batch_id, run_token=run_token)
        except Exception as exc:
            # The row exists already; without a run it would sit in generating forever.
            logger.exception("batch_generation_dispatch_failed", batch_id=batch_id)
            await self._mark_failed(batch_id, run_token=run_token)
            raise InternalError("Error dispatching code generation") from exc

    async def request_generation(self, batch_id: str) -> CreateBatchResult:
        """Re-dispatch generation for a batch whose previous run holds no live lease."""
        batch = await self._load_batch(batch_id)
        self._ensure_not_terminal(batch)
        run_token = await self._claim_run(batch_id)
        strategy = self.select_strategy(batch.quantity)
        await self._dispatch(batch_id, strategy, run_token=run_token)
        return CreateBatchResult(
            batch_id=batch_id,
            status=BATCH_STATUS_GENERATING,
            strategy=strategy.name,
        )

    async def _claim_run(self, batch_id: str) -> str:
        run_token = str(uuid4())
        now_utc = datetime.now(timezone.utc)
        async with self._session_factory.begin() as session:
            claimed = await BatchesRepo.claim_run(
                session,
                batch_id=batch_id,
                run_token=run_token,
                now_utc=now_utc,
                stale_before=now_utc - timedelta(seconds=self._settings.generation_lease_seconds),
            )
        if claimed == 0:
            raise FailedPreconditionError("Batch generation already in progress")
        logger.info("batch_generation_claimed", batch_id=batch_id)
        return run_token

    def spawn(
        self,
        batch_id: str,
        *,
        strategy: GenerationStrategy,
        run_token: str | None = None,
    ) -> asyncio.Task[GenerationOutcome]:
        task = asyncio.get_running_loop().create_task(
            self.run_generation(batch_id, strategy=strategy, run_token=run_token),
            name=f"batch-generation:{batch_id}",
        )
        self._background_tasks.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task[GenerationOutcome]) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            logger.warning("batch_generation_task_cancelled", task_name=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "batch_generation_task_failed",
                task_name=task.get_name(),
                error_code=getattr(exc, "code", None),
                error=str(exc),
            )

    async def wait_for_background(self) -> None:
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def run_generation(
        self,
        batch_id: str,
        *,
        strategy: GenerationStrategy,
        run_token: str | None = None,
    ) -> GenerationOutcome:
        """Run the pipeline under ``run_token``, claiming a fresh lease when none is given.

        A run whose token no longer matches the batch row is rejected before
        any write and leaves the batch to the run that holds the lease.
        """
        batch = await self._load_batch(batch_id)
        self._ensure_not_terminal(batch)
        if run_token is None:
            run_token = await self._claim_run(batch_id)
        elif batch.run_token != run_token:
            raise FailedPreconditionError("Batch generation is owned by another run")

        with structlog.contextvars.bound_contextvars(batch_id=batch_id, strategy=strategy.name):
            logger.info(
                "batch_generation_started",
                quantity=batch.quantity,
                generated_count=batch.generated_count,
                chunk_size=strategy.chunk_size,
            )
            try:
                await self._run_pipeline(batch, strategy, run_token=run_token)
            except asyncio.CancelledError:
                logger.warning("batch_generation_cancelled")
                await asyncio.shield(self._mark_failed(batch_id, run_token=run_token))
                raise
            except Exception as exc:
                logger.exception("batch_generation_failed")
                await self._mark_failed(batch_id, run_token=run_token)
                raise InternalError("Error generating codes") from exc

            logger.info("batch_generation_completed", quantity=batch.quantity)

        return GenerationOutcome(
            batch_id=batch_id,
            status=BATCH_STATUS_COMPLETED,
            generated_count=batch.quantity,
            strategy=strategy.name,
        )

    async def _run_pipeline(
        self,
        batch: CodeBatch,
        strategy: GenerationStrategy,
        *,
        run_token: str,
    ) -> None:
        avoid = await scan_existing_codes(
            self._session_factory,
            prefix=batch.prefix,
            limit=self._settings.scan_cap,
        )
        writer = ChunkedWriter(self._session_factory, chunk_size=strategy.chunk_size)

        # Rows, not the counter, so codes committed by an interrupted run are not redone.
        async with self._session_factory() as session:
            persisted = await CodesRepo.count_for_batch(session, batch.id)
        remaining = batch.quantity - persisted
        while remaining > 0:
            codes = generate_unique_codes(
                prefix=batch.prefix,
                code_length=batch.code_length,
                count=min(remaining, writer.chunk_size),
                avoid=avoid,
            )
            await writer.write(
                batch_id=batch.id,
                codes=codes,
                product_type=batch.product_type,
                expiration_date=batch.expiration_date,
                run_token=run_token,
            )
            avoid.update(codes)
            remaining -= len(codes)
            logger.info(
                "batch_generation_progress",
                generated=batch.quantity - remaining,
                quantity=batch.quantity,
            )

        async with self._session_factory.begin() as session:
            updated = await BatchesRepo.mark_completed(
                session,
                batch_id=batch.id,
                now_utc=datetime.now(timezone.utc),
                run_token=run_token,
            )
        if updated == 0:
            raise FailedPreconditionError(f"Batch {batch.id} could not be completed")

    async def _mark_failed(self, batch_id: str, *, run_token: str | None = None) -> None:
        try:
            async with self._session_factory.begin() as session:
                updated = await BatchesRepo.mark_failed(
                    session,
                    batch_id=batch_id,
                    run_token=run_token,
                )
        except Exception:
            logger.exception("batch_mark_failed_error", batch_id=batch_id)
            return
        if updated == 0:
            logger.warning("batch_mark_failed_skipped", batch_id=batch_id)

    async def _load_batch(self, batch_id: str) -> CodeBatch:
        async with self._session_factory() as session:
            batch = await BatchesRepo.get_by_id(session, batch_id)
        if batch is None:
            raise NotFoundError("Batch not found")
        return batch

    @staticmethod
    def _ensure_not_terminal(batch: CodeBatch) -> None:
        if batch.status in BATCH_TERMINAL_STATUSES:
            raise FailedPreconditionError(f"Batch already in {batch.status} state")


@lru_cache(maxsize=1)
def get_orchestrator() -> BatchOrchestrator:
    return BatchOrchestrator(SessionLocal)
