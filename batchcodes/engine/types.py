from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(slots=True)
class BatchParams:
    name: str
    prefix: str
    code_length: int
    quantity: int
    created_by: str
    description: str = ""
    product_type: str | None = None
    distribution_channel: str | None = None
    expiration_date: datetime | None = None
    cost_data: dict[str, object] = field(default_factory=dict)
    manufacturing_details: dict[str, object] = field(default_factory=dict)


@dataclass(slots=True)
class CreateBatchResult:
    batch_id: str
    status: str
    strategy: str


@dataclass(slots=True)
class GenerationOutcome:
    batch_id: str
    status: str
    generated_count: int
    strategy: str


@dataclass(slots=True)
class ExportResult:
    download_url: str
    file_name: str
    code_count: int


@dataclass(slots=True)
class DeleteResult:
    success: bool
    message: str
    deleted_codes: int = 0


@dataclass(slots=True)
class CodeCounts:
    available: int
    assigned: int
    disabled: int
    total: int


@dataclass(slots=True)
class Page(Generic[T]):
    items: list[T]
    has_more: bool
    cursor: str | None
