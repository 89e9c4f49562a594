from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import time
from pathlib import Path, PurePosixPath
from urllib.parse import quote, urlencode

from batchcodes.core.config import get_settings

META_SUFFIX = ".meta.json"


class BlobPathError(ValueError):
    pass


def normalize_storage_path(storage_path: str) -> str:
    path = PurePosixPath(storage_path.strip().lstrip("/"))
    if not path.parts or any(part in ("", ".", "..") for part in path.parts):
        raise BlobPathError(f"invalid storage path: {storage_path!r}")
    return str(path)


def sign_storage_path(*, storage_path: str, expires: int, secret: str) -> str:
    digest = hmac.new(
        secret.encode("utf-8"),
        f"{storage_path}:{expires}".encode("utf-8"),
        hashlib.sha256,
    )
    return digest.hexdigest()


class LocalBlobStore:
    """Filesystem-backed artifact store that hands out HMAC-signed download links."""

    def __init__(
        self,
        root: Path | str,
        *,
        signing_secret: str,
        public_base_url: str,
        download_prefix: str = "/downloads",
    ) -> None:
        self.root = Path(root)
        self._signing_secret = signing_secret
        self._public_base_url = public_base_url.rstrip("/")
        self._download_prefix = "/" + download_prefix.strip("/")

    def resolve(self, storage_path: str) -> Path:
        return self.root / normalize_storage_path(storage_path)

    def _write(self, target: Path, content: bytes, metadata: dict[str, object]) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        meta_target = target.with_name(target.name + META_SUFFIX)
        meta_target.write_text(json.dumps(metadata, default=str), encoding="utf-8")

    async def put(
        self,
        storage_path: str,
        content: bytes,
        *,
        content_type: str,
        metadata: dict[str, object] | None = None,
    ) -> int:
        target = self.resolve(storage_path)
        meta = {"content_type": content_type, **(metadata or {})}
        await asyncio.to_thread(self._write, target, content, meta)
        return len(content)

    def read_metadata(self, storage_path: str) -> dict[str, object]:
        target = self.resolve(storage_path)
        meta_target = target.with_name(target.name + META_SUFFIX)
        if not meta_target.exists():
            return {}
        return json.loads(meta_target.read_text(encoding="utf-8"))

    def signed_url(
        self,
        storage_path: str,
        *,
        expires_in_seconds: int,
        now_ts: int | None = None,
    ) -> str:
        normalized = normalize_storage_path(storage_path)
        expires = int(now_ts if now_ts is not None else time.time()) + int(expires_in_seconds)
        signature = sign_storage_path(
            storage_path=normalized,
            expires=expires,
            secret=self._signing_secret,
        )
        query = urlencode({"expires": expires, "signature": signature})
        return f"{self._public_base_url}{self._download_prefix}/{quote(normalized)}?{query}"

    def verify(
        self,
        storage_path: str,
        *,
        expires: int,
        signature: str,
        now_ts: int | None = None,
    ) -> bool:
        try:
            normalized = normalize_storage_path(storage_path)
        except BlobPathError:
            return False
        if int(now_ts if now_ts is not None else time.time()) > expires:
            return False
        expected = sign_storage_path(
            storage_path=normalized,
            expires=expires,
            secret=self._signing_secret,
        )
        return hmac.compare_digest(expected, signature)


def build_blob_store() -> LocalBlobStore:
    settings = get_settings()
    return LocalBlobStore(
        settings.export_storage_dir,
        signing_secret=settings.export_signing_secret,
        public_base_url=settings.public_base_url,
    )
