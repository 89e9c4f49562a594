from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

import pytest

from batchcodes.storage.blob_store import (
    BlobPathError,
    LocalBlobStore,
    normalize_storage_path,
    sign_storage_path,
)


@pytest.fixture
def store(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(
        tmp_path,
        signing_secret="secret",
        public_base_url="https://codes.example.com/",
    )


@pytest.mark.parametrize("path", ["", "/", "../etc/passwd", "exports/../secret", "a/./b"])
def test_normalize_rejects_unsafe_paths(path: str) -> None:
    with pytest.raises(BlobPathError):
        normalize_storage_path(path)


def test_normalize_strips_leading_slash() -> None:
    assert normalize_storage_path("/exports/u/file.csv") == "exports/u/file.csv"


async def test_put_writes_content_and_metadata(store, tmp_path) -> None:
    size = await store.put(
        "exports/u1/codes.csv",
        b"Code\nA\n",
        content_type="text/csv",
        metadata={"batchId": "b1"},
    )

    assert size == 7
    assert (tmp_path / "exports/u1/codes.csv").read_bytes() == b"Code\nA\n"
    assert store.read_metadata("exports/u1/codes.csv") == {
        "content_type": "text/csv",
        "batchId": "b1",
    }
    assert store.read_metadata("exports/u1/missing.csv") == {}


def test_signed_url_round_trip(store) -> None:
    url = store.signed_url("exports/u1/codes.csv", expires_in_seconds=60, now_ts=1_000)

    parsed = urlsplit(url)
    assert f"{parsed.scheme}://{parsed.netloc}" == "https://codes.example.com"
    assert parsed.path == "/downloads/exports/u1/codes.csv"
    query = parse_qs(parsed.query)
    expires = int(query["expires"][0])
    signature = query["signature"][0]
    assert expires == 1_060
    assert signature == sign_storage_path(
        storage_path="exports/u1/codes.csv",
        expires=1_060,
        secret="secret",
    )

    assert store.verify("exports/u1/codes.csv", expires=expires, signature=signature, now_ts=1_059)
    assert not store.verify(
        "exports/u1/codes.csv", expires=expires, signature=signature, now_ts=1_061
    )
    assert not store.verify("exports/u1/other.csv", expires=expires, signature=signature, now_ts=0)
    assert not store.verify(
        "exports/u1/codes.csv", expires=expires + 1, signature=signature, now_ts=0
    )
    assert not store.verify("../codes.csv", expires=expires, signature=signature, now_ts=0)
