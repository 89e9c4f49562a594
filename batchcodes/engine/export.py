from __future__ import annotations

import csv
import io
import json
import re
from collections.abc import Sequence
from datetime import datetime, timezone
from functools import lru_cache

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from batchcodes.core.config import get_settings
from batchcodes.db.models.code_exports import CodeExport
from batchcodes.db.models.codes import Code
from batchcodes.db.repo.batches_repo import BatchesRepo
from batchcodes.db.repo.code_exports_repo import CodeExportsRepo
from batchcodes.db.repo.codes_repo import CodesRepo
from batchcodes.db.session import SessionLocal
from batchcodes.engine.errors import InvalidArgumentError, NotFoundError, UnauthenticatedError
from batchcodes.engine.types import ExportResult
from batchcodes.storage.blob_store import LocalBlobStore, build_blob_store

logger = structlog.get_logger(__name__)

EXPORT_FORMAT_CSV = "csv"
EXPORT_FORMAT_JSON = "json"
EXPORT_FORMAT_EXCEL = "excel"
EXPORT_CONTENT_TYPES = {
    EXPORT_FORMAT_CSV: "text/csv",
    EXPORT_FORMAT_JSON: "application/json",
}
_USER_PATH_UNSAFE = re.compile(r"[^A-Za-z0-9._@-]")


def user_path_segment(user_id: str) -> str:
    segment = _USER_PATH_UNSAFE.sub("_", user_id.strip())
    # "." and ".." would step out of the per-user directory.
    if not segment.strip("."):
        return "_" * max(len(segment), 1)
    return segment


def to_iso_utc(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def export_rows(codes: Sequence[Code], *, include_status: bool) -> list[dict[str, str | None]]:
    if include_status:
        return [
            {"code": code.id, "status": code.status, "createdAt": to_iso_utc(code.created_at)}
            for code in codes
        ]
    return [{"code": code.id} for code in codes]


def render_csv(rows: Sequence[dict[str, str | None]], *, include_status: bool) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    if include_status:
        writer.writerow(["Code", "Status", "CreatedAt"])
        writer.writerows([row["code"], row["status"], row["createdAt"] or ""] for row in rows)
    else:
        writer.writerow(["Code"])
        writer.writerows([row["code"]] for row in rows)
    return buf.getvalue()


def render_json(
    rows: Sequence[dict[str, str | None]],
    *,
    batch_id: str,
    batch_name: str,
    exported_at: datetime,
) -> str:
    return json.dumps(
        {
            "batchId": batch_id,
            "batchName": batch_name,
            "exportedAt": to_iso_utc(exported_at),
            "codes": list(rows),
        },
        indent=2,
    )


def validate_export_format(fmt: str) -> str:
    normalized = (fmt or "").strip().lower()
    if normalized == EXPORT_FORMAT_EXCEL:
        raise InvalidArgumentError("Excel export is not supported")
    if normalized not in EXPORT_CONTENT_TYPES:
        raise InvalidArgumentError("Invalid format specified")
    return normalized


class ExportPipeline:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        *,
        blob_store: LocalBlobStore,
        url_ttl_seconds: int,
    ) -> None:
        self._session_factory = session_factory
        self._blob_store = blob_store
        self._url_ttl_seconds = url_ttl_seconds

    async def export_codes(
        self,
        *,
        batch_id: str,
        fmt: str,
        include_status: bool,
        user_id: str,
    ) -> ExportResult:
        if not (user_id or "").strip():
            raise UnauthenticatedError("Authentication required to export codes")
        fmt = validate_export_format(fmt)

        async with self._session_factory() as session:
            batch = await BatchesRepo.get_by_id(session, batch_id)
            if batch is None:
                raise NotFoundError("Batch not found")
            codes = await CodesRepo.list_for_batch(session, batch_id)

        logger.info("codes_export_started", batch_id=batch_id, codes=len(codes), format=fmt)
        if not codes:
            raise NotFoundError("No codes found in this batch")

        now_utc = datetime.now(timezone.utc)
        rows = export_rows(codes, include_status=include_status)
        if fmt == EXPORT_FORMAT_CSV:
            content = render_csv(rows, include_status=include_status)
        else:
            content = render_json(
                rows,
                batch_id=batch_id,
                batch_name=batch.name,
                exported_at=now_utc,
            )

        file_name = f"codes_{batch_id}_{int(now_utc.timestamp() * 1000)}.{fmt}"
        storage_path = f"exports/{user_path_segment(user_id)}/{file_name}"
        file_size = await self._blob_store.put(
            storage_path,
            content.encode("utf-8"),
            content_type=EXPORT_CONTENT_TYPES[fmt],
            metadata={
                "batchId": batch_id,
                "exportedBy": user_id,
                "exportTime": to_iso_utc(now_utc),
            },
        )
        download_url = self._blob_store.signed_url(
            storage_path,
            expires_in_seconds=self._url_ttl_seconds,
        )

        async with self._session_factory.begin() as session:
            await CodeExportsRepo.append(
                session,
                entry=CodeExport(
                    batch_id=batch_id,
                    user_id=user_id,
                    file_name=file_name,
                    format=fmt,
                    file_size=file_size,
                    storage_path=storage_path,
                    code_count=len(codes),
                    created_at=now_utc,
                ),
            )

        logger.info(
            "codes_export_finished",
            batch_id=batch_id,
            file_name=file_name,
            file_size=file_size,
            code_count=len(codes),
        )
        return ExportResult(download_url=download_url, file_name=file_name, code_count=len(codes))


@lru_cache(maxsize=1)
def get_export_pipeline() -> ExportPipeline:
    return ExportPipeline(
        SessionLocal,
        blob_store=build_blob_store(),
        url_ttl_seconds=get_settings().export_url_ttl_seconds,
    )
