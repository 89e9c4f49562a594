from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

import structlog
from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from batchcodes.core.config import get_settings
from batchcodes.db.models.code_batches import CodeBatch
from batchcodes.db.models.codes import Code
from batchcodes.engine.alphabet import (
    generate_sample_codes,
    sanitize_prefix,
    validate_code_format,
)
from batchcodes.engine.deletion import get_deletion_pipeline
from batchcodes.engine.errors import (
    CodeBatchError,
    FailedPreconditionError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    UnauthenticatedError,
)
from batchcodes.engine.export import EXPORT_FORMAT_CSV, get_export_pipeline
from batchcodes.engine.orchestrator import get_orchestrator
from batchcodes.engine.queries import get_batch_queries
from batchcodes.engine.types import BatchParams
from batchcodes.services.internal_auth import (
    extract_principal_id,
    is_internal_request_authenticated,
)

router = APIRouter(tags=["internal", "code-batches"])
logger = structlog.get_logger(__name__)

ERROR_STATUS_CODES: dict[type[CodeBatchError], int] = {
    InvalidArgumentError: 422,
    NotFoundError: 404,
    FailedPreconditionError: 409,
    UnauthenticatedError: 401,
    InternalError: 500,
}
PREVIEW_MAX_COUNT = 20


class CreateBatchRequest(BaseModel):
    name: str = Field(max_length=128)
    prefix: str = Field(max_length=32)
    code_length: int
    quantity: int
    description: str = Field(default="", max_length=2000)
    product_type: str | None = Field(default=None, max_length=64)
    distribution_channel: str | None = Field(default=None, max_length=64)
    expiration_date: datetime | None = None
    cost_data: dict[str, object] = Field(default_factory=dict)
    manufacturing_details: dict[str, object] = Field(default_factory=dict)


class CreateBatchResponse(BaseModel):
    batch_id: str
    status: str
    strategy: str


class BatchResponse(BaseModel):
    id: str
    name: str
    description: str
    prefix: str
    code_length: int
    quantity: int
    status: str
    generated_count: int
    created_by: str
    created_at: datetime
    completed_at: datetime | None = None
    product_type: str | None = None
    distribution_channel: str | None = None
    expiration_date: datetime | None = None
    cost_data: dict[str, object] = Field(default_factory=dict)
    manufacturing_details: dict[str, object] = Field(default_factory=dict)


class BatchListResponse(BaseModel):
    batches: list[BatchResponse]
    has_more: bool
    cursor: str | None = None


class CodeResponse(BaseModel):
    code: str
    batch_id: str
    status: str
    created_at: datetime
    assigned_at: datetime | None = None
    assigned_to: str | None = None


class CodeListResponse(BaseModel):
    codes: list[CodeResponse]
    has_more: bool
    cursor: str | None = None


class CodeCountsResponse(BaseModel):
    available: int = Field(ge=0)
    assigned: int = Field(ge=0)
    disabled: int = Field(ge=0)
    total: int = Field(ge=0)


class ExportRequest(BaseModel):
    format: str = Field(default=EXPORT_FORMAT_CSV, max_length=16)
    include_status: bool = False


class ExportResponse(BaseModel):
    download_url: str
    file_name: str
    code_count: int = Field(ge=0)


class DeleteBatchResponse(BaseModel):
    success: bool
    message: str


class CodeStatusUpdateRequest(BaseModel):
    status: str = Field(min_length=1, max_length=16)
    assigned_to: str | None = Field(default=None, max_length=128)


class PreviewRequest(BaseModel):
    prefix: str = Field(default="", max_length=32)
    code_length: int = Field(default=8, ge=4, le=10)
    count: int = Field(default=3, ge=1, le=PREVIEW_MAX_COUNT)
    include_check_digit: bool = False


class PreviewResponse(BaseModel):
    prefix: str
    codes: list[str]


class ValidateCodeRequest(BaseModel):
    code: str = Field(default="", max_length=64)
    expected_prefix: str | None = Field(default=None, max_length=32)


class ValidateCodeResponse(BaseModel):
    valid: bool
    message: str


def _batch_as_response(batch: CodeBatch) -> BatchResponse:
    return BatchResponse(
        id=batch.id,
        name=batch.name,
        description=batch.description or "",
        prefix=batch.prefix,
        code_length=batch.code_length,
        quantity=batch.quantity,
        status=batch.status,
        generated_count=batch.generated_count,
        created_by=batch.created_by,
        created_at=batch.created_at,
        completed_at=batch.completed_at,
        product_type=batch.product_type,
        distribution_channel=batch.distribution_channel,
        expiration_date=batch.expiration_date,
        cost_data=batch.cost_data or {},
        manufacturing_details=batch.manufacturing_details or {},
    )


def _code_as_response(code: Code) -> CodeResponse:
    return CodeResponse(
        code=code.id,
        batch_id=code.batch_id,
        status=code.status,
        created_at=code.created_at,
        assigned_at=code.assigned_at,
        assigned_to=code.assigned_to,
    )


def _assert_internal_access(request: Request) -> None:
    settings = get_settings()
    if not is_internal_request_authenticated(
        request,
        expected_token=settings.internal_api_token,
    ):
        logger.warning("internal_code_batches_auth_failed", reason="invalid_credentials")
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})


def _http_error(exc: CodeBatchError) -> HTTPException:
    return HTTPException(
        status_code=ERROR_STATUS_CODES.get(type(exc), 500),
        detail={"code": exc.code, "message": exc.message},
    )


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except CodeBatchError as exc:
        raise _http_error(exc) from exc
    except (SQLAlchemyError, OSError) as exc:
        logger.exception("internal_code_batches_store_error", operation=operation)
        raise _http_error(InternalError(f"Error during {operation}")) from exc


@router.post("/internal/code-batches", response_model=CreateBatchResponse, status_code=202)
async def create_batch(payload: CreateBatchRequest, request: Request) -> CreateBatchResponse:
    _assert_internal_access(request)
    params = BatchParams(
        name=payload.name,
        prefix=payload.prefix,
        code_length=payload.code_length,
        quantity=payload.quantity,
        created_by=extract_principal_id(request) or "",
        description=payload.description,
        product_type=payload.product_type,
        distribution_channel=payload.distribution_channel,
        expiration_date=payload.expiration_date,
        cost_data=payload.cost_data,
        manufacturing_details=payload.manufacturing_details,
    )
    with _translate_errors("create_batch"):
        result = await get_orchestrator().create_batch(params)
    return CreateBatchResponse(
        batch_id=result.batch_id,
        status=result.status,
        strategy=result.strategy,
    )


@router.get("/internal/code-batches", response_model=BatchListResponse)
async def list_batches(
    request: Request,
    page_size: int = Query(default=10, ge=1, le=500),
    cursor: str | None = Query(default=None, max_length=512),
    status: str | None = Query(default=None, max_length=16),
    created_by: str | None = Query(default=None, max_length=128),
) -> BatchListResponse:
    _assert_internal_access(request)
    with _translate_errors("list_batches"):
        page = await get_batch_queries().list_batches(
            page_size=page_size,
            cursor=cursor,
            status=status.strip().lower() if status else None,
            created_by=created_by.strip() if created_by else None,
        )
    return BatchListResponse(
        batches=[_batch_as_response(batch) for batch in page.items],
        has_more=page.has_more,
        cursor=page.cursor,
    )


@router.post("/internal/code-batches/preview", response_model=PreviewResponse)
async def preview_codes(payload: PreviewRequest, request: Request) -> PreviewResponse:
    _assert_internal_access(request)
    prefix = sanitize_prefix(payload.prefix)
    codes = generate_sample_codes(
        prefix=prefix,
        code_length=payload.code_length,
        count=payload.count,
        include_check_digit=payload.include_check_digit,
    )
    return PreviewResponse(prefix=prefix, codes=codes)


@router.get("/internal/code-batches/{batch_id}", response_model=BatchResponse)
async def get_batch(batch_id: str, request: Request) -> BatchResponse:
    _assert_internal_access(request)
    with _translate_errors("get_batch"):
        batch = await get_batch_queries().get_batch(batch_id)
    return _batch_as_response(batch)


@router.get("/internal/code-batches/{batch_id}/codes", response_model=CodeListResponse)
async def list_codes(
    batch_id: str,
    request: Request,
    page_size: int = Query(default=50, ge=1, le=500),
    cursor: str | None = Query(default=None, max_length=512),
    status: str | None = Query(default=None, max_length=16),
) -> CodeListResponse:
    _assert_internal_access(request)
    with _translate_errors("list_codes"):
        page = await get_batch_queries().list_codes(
            batch_id=batch_id,
            page_size=page_size,
            cursor=cursor,
            status=status.strip().lower() if status else None,
        )
    return CodeListResponse(
        codes=[_code_as_response(code) for code in page.items],
        has_more=page.has_more,
        cursor=page.cursor,
    )


@router.get("/internal/code-batches/{batch_id}/counts", response_model=CodeCountsResponse)
async def get_code_counts(batch_id: str, request: Request) -> CodeCountsResponse:
    _assert_internal_access(request)
    with _translate_errors("get_code_counts"):
        counts = await get_batch_queries().get_code_counts(batch_id)
    return CodeCountsResponse(
        available=counts.available,
        assigned=counts.assigned,
        disabled=counts.disabled,
        total=counts.total,
    )


@router.post("/internal/code-batches/{batch_id}/export", response_model=ExportResponse)
async def export_codes(
    batch_id: str,
    payload: ExportRequest,
    request: Request,
) -> ExportResponse:
    _assert_internal_access(request)
    with _translate_errors("export_codes"):
        result = await get_export_pipeline().export_codes(
            batch_id=batch_id,
            fmt=payload.format,
            include_status=payload.include_status,
            user_id=extract_principal_id(request) or "",
        )
    return ExportResponse(
        download_url=result.download_url,
        file_name=result.file_name,
        code_count=result.code_count,
    )


@router.delete("/internal/code-batches/{batch_id}", response_model=DeleteBatchResponse)
async def delete_batch(batch_id: str, request: Request) -> DeleteBatchResponse:
    _assert_internal_access(request)
    with _translate_errors("delete_batch"):
        result = await get_deletion_pipeline().delete_batch(batch_id)
    logger.info(
        "internal_code_batch_deleted",
        batch_id=batch_id,
        deleted_by=extract_principal_id(request),
        deleted_codes=result.deleted_codes,
    )
    return DeleteBatchResponse(success=result.success, message=result.message)


@router.post(
    "/internal/code-batches/{batch_id}/generate",
    response_model=CreateBatchResponse,
    status_code=202,
)
async def generate_batch(batch_id: str, request: Request) -> CreateBatchResponse:
    _assert_internal_access(request)
    with _translate_errors("generate_batch"):
        result = await get_orchestrator().request_generation(batch_id)
    return CreateBatchResponse(
        batch_id=result.batch_id,
        status=result.status,
        strategy=result.strategy,
    )


@router.post("/internal/codes/validate", response_model=ValidateCodeResponse)
async def validate_code(payload: ValidateCodeRequest, request: Request) -> ValidateCodeResponse:
    _assert_internal_access(request)
    expected_prefix = payload.expected_prefix.strip().upper() if payload.expected_prefix else None
    valid, message = validate_code_format(
        payload.code.strip().upper(),
        expected_prefix=expected_prefix,
    )
    return ValidateCodeResponse(valid=valid, message=message)


@router.post("/internal/codes/{code}/status", response_model=CodeResponse)
async def update_code_status(
    code: str,
    payload: CodeStatusUpdateRequest,
    request: Request,
) -> CodeResponse:
    _assert_internal_access(request)
    with _translate_errors("update_code_status"):
        updated = await get_batch_queries().update_code_status(
            code=code,
            status=payload.status.strip().lower(),
            assigned_to=payload.assigned_to.strip() if payload.assigned_to else None,
        )
    return _code_as_response(updated)
