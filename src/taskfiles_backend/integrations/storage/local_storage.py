from __future__ import annotations

import hashlib
import hmac
import time
from pathlib import Path, PurePosixPath
from urllib.parse import quote

from starlette.concurrency import run_in_threadpool

from .object_storage import StorageError


def _safe_join(root: Path, key: str) -> Path:
    parts = [p for p in PurePosixPath(key).parts if p not in {"/", ""}]
    if any(p in {"..", "."} for p in parts):
        raise ValueError("invalid storage key")
    return root.joinpath(*parts)


def compute_url_signature(*, secret: str, key: str, expires: int) -> str:
    message = f"{key}\n{expires}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_url_signature(
    *, secret: str, key: str, expires: int, signature: str, now: float | None = None
) -> bool:
    current = time.time() if now is None else now
    if expires < current:
        return False
    expected = compute_url_signature(secret=secret, key=key, expires=expires)
    return hmac.compare_digest(expected, signature)


class LocalObjectStorage:
    """Filesystem-backed storage.

    Presigned URLs point back at this service (``{url_base}/attachments/files/{key}``)
    and carry an HMAC over the key and expiry timestamp.
    """

    def __init__(self, *, root_dir: str, url_base: str, secret: str) -> None:
        self._root = Path(root_dir)
        self._url_base = url_base.rstrip("/")
        self._secret = secret

    def resolve_path(self, key: str) -> Path:
        return _safe_join(self._root, key)

    def verify_signature(self, key: str, *, expires: int, signature: str) -> bool:
        return verify_url_signature(
            secret=self._secret, key=key, expires=expires, signature=signature
        )

    async def put_bytes(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> None:
        _ = content_type, metadata
        path = self.resolve_path(key)
        tmp_path = path.with_name(path.name + ".tmp")

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            _ = tmp_path.write_bytes(data)
            _ = tmp_path.replace(path)

        try:
            await run_in_threadpool(_write)
        except OSError as exc:
            raise StorageError(f"failed to write object {key}") from exc

    async def get_bytes(self, key: str) -> bytes:
        path = self.resolve_path(key)
        try:
            return await run_in_threadpool(path.read_bytes)
        except OSError as exc:
            raise StorageError(f"failed to read object {key}") from exc

    async def delete(self, key: str) -> None:
        path = self.resolve_path(key)
        if not path.exists():
            return
        try:
            await run_in_threadpool(path.unlink)
        except OSError as exc:
            raise StorageError(f"failed to delete object {key}") from exc

    async def presign_url(self, key: str, *, expires_in_seconds: int) -> str:
        # Validates the key the same way reads do.
        _ = self.resolve_path(key)
        expires = int(time.time()) + int(expires_in_seconds)
        signature = compute_url_signature(secret=self._secret, key=key, expires=expires)
        return (
            f"{self._url_base}/attachments/files/{quote(key)}"
            f"?expires={expires}&signature={signature}"
        )
