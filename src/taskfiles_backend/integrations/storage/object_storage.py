from __future__ import annotations

from typing import Protocol

from taskfiles_backend.config import settings


class StorageError(RuntimeError):
    """Raised by storage backends when the underlying provider call fails."""


class ObjectStorage(Protocol):
    async def put_bytes(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> None: ...

    async def get_bytes(self, key: str) -> bytes: ...

    async def delete(self, key: str) -> None: ...

    async def presign_url(self, key: str, *, expires_in_seconds: int) -> str: ...


def get_object_storage() -> ObjectStorage:
    # Default to local storage when S3 config is incomplete.
    if settings.s3_configured():
        from .s3_storage import S3ObjectStorage

        return S3ObjectStorage(
            endpoint_url=settings.s3_endpoint_url,
            region=settings.s3_region,
            bucket=settings.s3_bucket,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
            force_path_style=settings.s3_force_path_style,
        )

    from .local_storage import LocalObjectStorage

    return LocalObjectStorage(
        root_dir=settings.attachments_local_dir,
        url_base=settings.public_base_url.rstrip("/") + settings.api_prefix,
        secret=settings.storage_url_secret,
    )
