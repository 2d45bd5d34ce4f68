from __future__ import annotations

from pathlib import Path
from urllib.parse import parse_qs, urlsplit

import pytest

from taskfiles_backend.integrations.storage.local_storage import (
    LocalObjectStorage,
    compute_url_signature,
    verify_url_signature,
)


def _storage(tmp_path: Path) -> LocalObjectStorage:
    return LocalObjectStorage(
        root_dir=str(tmp_path / "objects"),
        url_base="http://localhost:8000/api/v1",
        secret="s3cret",
    )


@pytest.mark.anyio
async def test_local_storage_put_get_delete(tmp_path: Path):
    s = _storage(tmp_path)
    key = "tasks/1/attachments/2_abcd1234_notes.txt"

    await s.put_bytes(key, b"hello", content_type="text/plain")
    assert (tmp_path / "objects" / "tasks" / "1" / "attachments").is_dir()
    assert await s.get_bytes(key) == b"hello"

    await s.delete(key)
    assert not s.resolve_path(key).exists()
    # Deleting a missing object is a no-op.
    await s.delete(key)


def test_local_storage_rejects_path_traversal(tmp_path: Path):
    with pytest.raises(ValueError):
        _ = _storage(tmp_path).resolve_path("tasks/../../etc/passwd")


@pytest.mark.anyio
async def test_presigned_url_is_signed_and_verifiable(tmp_path: Path):
    s = _storage(tmp_path)
    key = "tasks/1/attachments/2_abcd1234_notes.txt"

    url = await s.presign_url(key, expires_in_seconds=3600)
    parts = urlsplit(url)
    assert f"{parts.scheme}://{parts.netloc}" == "http://localhost:8000"
    assert parts.path == f"/api/v1/attachments/files/{key}"

    query = parse_qs(parts.query)
    expires = int(query["expires"][0])
    signature = query["signature"][0]

    assert s.verify_signature(key, expires=expires, signature=signature)
    assert not s.verify_signature(key, expires=expires + 1, signature=signature)
    assert not s.verify_signature(key + "x", expires=expires, signature=signature)
    assert not s.verify_signature(key, expires=expires, signature="0" * 64)


def test_signature_expires():
    sig = compute_url_signature(secret="k", key="a/b", expires=1_000)
    assert verify_url_signature(secret="k", key="a/b", expires=1_000, signature=sig, now=999)
    assert not verify_url_signature(secret="k", key="a/b", expires=1_000, signature=sig, now=1_001)
    assert not verify_url_signature(secret="other", key="a/b", expires=1_000, signature=sig, now=999)
