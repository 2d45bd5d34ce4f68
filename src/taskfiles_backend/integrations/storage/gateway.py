"""Attachment-facing operations on top of an ObjectStorage backend.

Covers upload validation, storage-key layout and presigned URL minting.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from urllib.parse import quote

from taskfiles_backend.config import settings
from taskfiles_backend.models import utc_now

from .object_storage import ObjectStorage

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES: dict[str, str] = {
    # Images
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    # Documents
    "application/pdf": "pdf",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.ms-excel": "xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "application/vnd.ms-powerpoint": "ppt",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": "pptx",
    "text/plain": "txt",
    "text/csv": "csv",
    # Archives
    "application/zip": "zip",
    "application/x-rar-compressed": "rar",
    "application/x-7z-compressed": "7z",
    # Other
    "application/json": "json",
    "text/xml": "xml",
    "application/xml": "xml",
}

BLOCKED_EXTENSIONS = frozenset({"exe", "bat", "cmd", "scr", "com", "vbs", "js", "jar"})

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_REPEATED_UNDERSCORES = re.compile(r"_{2,}")


@dataclass(frozen=True)
class UploadedObject:
    storage_key: str
    presigned_url: str
    url_expires_at: datetime


def _file_extension(filename: str) -> str:
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1]


def validate_upload(
    *, filename: str | None, content_type: str | None, size: int, max_size: int
) -> None:
    if size <= 0:
        raise ValueError("File cannot be empty")

    if max_size > 0 and size > max_size:
        raise ValueError(f"File size exceeds maximum allowed size of {max_size} bytes")

    if not content_type or content_type not in ALLOWED_CONTENT_TYPES:
        allowed = ", ".join(sorted(set(ALLOWED_CONTENT_TYPES.values())))
        raise ValueError(f"File type not allowed. Allowed types: {allowed}")

    if not filename or not filename.strip():
        raise ValueError("File must have a valid filename")

    if _file_extension(filename).lower() in BLOCKED_EXTENSIONS:
        raise ValueError("File type not allowed for security reasons")


def build_attachment_storage_key(*, task_id: int, user_id: int, filename: str) -> str:
    # Layout: tasks/{task_id}/attachments/{user_id}_{uuid8}_{base}.{ext}
    extension = _file_extension(filename)
    sanitized = _REPEATED_UNDERSCORES.sub("_", _UNSAFE_CHARS.sub("_", filename))[:100]
    base = re.sub(r"\.[^.]*$", "", sanitized)
    suffix = f".{extension}" if extension else ""
    return f"tasks/{task_id}/attachments/{user_id}_{uuid.uuid4().hex[:8]}_{base}{suffix}"


def presigned_url_ttl() -> timedelta:
    return timedelta(hours=settings.presigned_url_ttl_hours)


async def mint_presigned_url(storage: ObjectStorage, storage_key: str) -> str:
    ttl_seconds = int(presigned_url_ttl().total_seconds())
    return await storage.presign_url(storage_key, expires_in_seconds=ttl_seconds)


async def upload_object(
    storage: ObjectStorage,
    *,
    data: bytes,
    filename: str | None,
    content_type: str | None,
    task_id: int,
    user_id: int,
) -> UploadedObject:
    validate_upload(
        filename=filename,
        content_type=content_type,
        size=len(data),
        max_size=settings.attachments_max_size_bytes,
    )
    name = filename or ""
    storage_key = build_attachment_storage_key(task_id=task_id, user_id=user_id, filename=name)

    metadata = {
        "task-id": str(task_id),
        "user-id": str(user_id),
        # S3 user metadata must be ASCII.
        "original-filename": quote(name),
        "upload-timestamp": utc_now().isoformat(),
    }
    await storage.put_bytes(storage_key, data, content_type=content_type, metadata=metadata)

    presigned_url = await mint_presigned_url(storage, storage_key)
    url_expires_at = utc_now() + presigned_url_ttl()

    logger.info("object stored key=%s size=%s", storage_key, len(data))
    return UploadedObject(
        storage_key=storage_key,
        presigned_url=presigned_url,
        url_expires_at=url_expires_at,
    )
