from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import FileResponse

from batchcodes.storage.blob_store import BlobPathError, build_blob_store

router = APIRouter(tags=["downloads"])
logger = structlog.get_logger(__name__)


@router.get("/downloads/{storage_path:path}")
async def download_export(
    storage_path: str,
    expires: int = Query(ge=0),
    signature: str = Query(min_length=1, max_length=128),
) -> FileResponse:
    blob_store = build_blob_store()
    if not blob_store.verify(storage_path, expires=expires, signature=signature):
        logger.warning("export_download_rejected", storage_path=storage_path, expires=expires)
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})

    try:
        target = blob_store.resolve(storage_path)
    except BlobPathError as exc:
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"}) from exc
    if not target.is_file():
        raise HTTPException(status_code=404, detail={"code": "E_NOT_FOUND"})

    metadata = blob_store.read_metadata(storage_path)
    return FileResponse(
        target,
        media_type=str(metadata.get("content_type") or "application/octet-stream"),
        filename=target.name,
    )
