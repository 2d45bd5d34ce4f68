from __future__ import annotations

import logging
import math
import re
import time
import uuid
from dataclasses import dataclass
from datetime import datetime

from fastapi import HTTPException, status
from starlette.background import BackgroundTasks
from sqlmodel.ext.asyncio.session import AsyncSession

from taskfiles_backend.config import settings
from taskfiles_backend.db import session_scope
from taskfiles_backend.integrations.storage import gateway
from taskfiles_backend.integrations.storage.object_storage import ObjectStorage
from taskfiles_backend.models import Attachment, Project, Task, User, ensure_utc, utc_now
from taskfiles_backend.repositories import attachments_repo, tasks_repo
from taskfiles_backend.schemas_attachments import (
    AttachmentPage,
    AttachmentPreview,
    AttachmentResponse,
    AttachmentStatsResponse,
    AttachmentSummary,
    BulkDeleteResult,
    UploadResponse,
)
from taskfiles_backend.services import access_control, activity_service, attachment_mapper

logger = logging.getLogger(__name__)

PREVIEWABLE_IMAGE_TYPES = frozenset(
    {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp", "image/svg+xml"}
)
# PDF sits in this set for previewability but gets its own preview type.
PREVIEWABLE_DOCUMENT_TYPES = frozenset(
    {"application/pdf", "text/plain", "text/csv", "application/json", "text/xml", "application/xml"}
)
PREVIEWABLE_CODE_TYPES = frozenset(
    {"text/javascript", "text/css", "text/html", "application/javascript"}
)

_SECURE_NAME_UNSAFE = re.compile(r"[^a-zA-Z0-9._-]")
_SECURE_NAME_MAX_BASE = 50

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class StreamData:
    data: bytes
    content_type: str
    file_name: str


@dataclass(frozen=True)
class _AttachmentContext:
    task: Task
    project: Project | None
    uploader: User | None


def generate_secure_file_name(original_file_name: str | None, *, timestamp_ms: int | None = None) -> str:
    if original_file_name is None:
        return f"file_{uuid.uuid4().hex[:8]}"

    base = _SECURE_NAME_UNSAFE.sub("_", original_file_name)
    extension = ""
    last_dot = base.rfind(".")
    if last_dot > 0:
        extension = base[last_dot:]
        base = base[:last_dot]

    base = base[:_SECURE_NAME_MAX_BASE]
    stamp = int(time.time() * 1000) if timestamp_ms is None else timestamp_ms
    return f"{base}_{stamp}{extension}"


def is_previewable(content_type: str | None) -> bool:
    if not content_type:
        return False
    lower = content_type.lower()
    return (
        lower in PREVIEWABLE_IMAGE_TYPES
        or lower in PREVIEWABLE_DOCUMENT_TYPES
        or lower in PREVIEWABLE_CODE_TYPES
    )


def get_preview_type(content_type: str | None) -> str:
    if not content_type:
        return "unsupported"

    lower = content_type.lower()
    if lower in PREVIEWABLE_IMAGE_TYPES:
        return "image"
    if lower == "application/pdf":
        return "pdf"
    if lower in PREVIEWABLE_DOCUMENT_TYPES:
        return "text"
    if lower in PREVIEWABLE_CODE_TYPES:
        return "code"
    return "unsupported"


def is_url_expired(attachment: Attachment, *, now: datetime | None = None) -> bool:
    expires_at = ensure_utc(attachment.url_expires_at)
    if expires_at is None:
        return False
    return (now or utc_now()) > expires_at


def build_stream_url(attachment_id: int) -> str:
    base = settings.public_api_base_url.rstrip("/")
    return f"{base}/attachments/{attachment_id}/stream"


async def refresh_attachment_url(
    session: AsyncSession,
    storage: ObjectStorage,
    attachment: Attachment,
    *,
    now: datetime | None = None,
) -> Attachment:
    """Mint a new presigned URL from the stored key and push expiry forward."""
    url = await gateway.mint_presigned_url(storage, attachment.storage_key)
    attachment.presigned_url = url
    attachment.url_expires_at = (now or utc_now()) + gateway.presigned_url_ttl()
    session.add(attachment)
    await session.commit()
    return attachment


async def _load_context(session: AsyncSession, attachment: Attachment) -> _AttachmentContext:
    task = await tasks_repo.get_task(session, task_id=attachment.task_id)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="task not found")
    project = await tasks_repo.get_project(session, project_id=task.project_id)
    users = await tasks_repo.get_users_by_ids(session, [attachment.uploaded_by_id])
    return _AttachmentContext(
        task=task, project=project, uploader=users.get(attachment.uploaded_by_id)
    )


async def _summaries(session: AsyncSession, rows: list[Attachment]) -> list[AttachmentSummary]:
    users = await tasks_repo.get_users_by_ids(session, [a.uploaded_by_id for a in rows])
    return [
        attachment_mapper.to_attachment_summary(a, uploader=users.get(a.uploaded_by_id))
        for a in rows
    ]


# Detached jobs: queued on BackgroundTasks, own session, log-only failures.


async def persist_attachment_url(attachment_id: int, url: str, expires_at: datetime) -> None:
    try:
        async with session_scope() as session:
            _ = await attachments_repo.update_url(
                session, attachment_id=attachment_id, url=url, expires_at=expires_at
            )
            await session.commit()
    except Exception:
        logger.error("failed to persist refreshed url attachment_id=%s", attachment_id, exc_info=True)


async def delete_stored_object(storage: ObjectStorage, storage_key: str) -> None:
    try:
        await storage.delete(storage_key)
        logger.info("stored object deleted key=%s", storage_key)
    except Exception:
        logger.error("failed to delete stored object key=%s", storage_key, exc_info=True)


async def upload_attachment(
    *,
    session: AsyncSession,
    storage: ObjectStorage,
    background: BackgroundTasks,
    user: User,
    task_id: int,
    filename: str | None,
    content_type: str | None,
    data: bytes,
) -> UploadResponse:
    """Store the bytes, persist the row and report the outcome.

    Never raises: every failure becomes ``success=False`` with the error text.
    """
    try:
        task = await access_control.get_task_with_access(session, task_id=task_id, user=user)
        if not access_control.can_upload(user, task):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="you don't have permission to upload files to this task",
            )
        project = await tasks_repo.get_project(session, project_id=task.project_id)

        uploaded = await gateway.upload_object(
            storage,
            data=data,
            filename=filename,
            content_type=content_type,
            task_id=task_id,
            user_id=int(user.id or 0),
        )

        attachment = Attachment(
            file_name=generate_secure_file_name(filename),
            original_file_name=filename or "",
            file_size=len(data),
            content_type=content_type or "application/octet-stream",
            storage_key=uploaded.storage_key,
            presigned_url=uploaded.presigned_url,
            url_expires_at=uploaded.url_expires_at,
            task_id=task_id,
            uploaded_by_id=int(user.id or 0),
        )

        # Bytes are already stored; drop them again if the row can't be committed.
        # Nothing after the commit may touch the stored object.
        try:
            session.add(attachment)
            await session.commit()
        except Exception:
            await session.rollback()
            await delete_stored_object(storage, uploaded.storage_key)
            raise

        activity_service.queue_file_uploaded(
            background, user=user, task=task, file_name=attachment.original_file_name
        )

        logger.info(
            "file uploaded name=%s user=%s task_id=%s",
            attachment.original_file_name,
            user.username,
            task_id,
        )
        return UploadResponse(
            success=True,
            message="File uploaded successfully",
            attachment=attachment_mapper.to_attachment_response(
                attachment, uploader=user, task=task, project=project
            ),
        )
    except Exception as exc:
        logger.error(
            "failed to upload attachment task_id=%s user=%s", task_id, user.username, exc_info=True
        )
        error = str(exc.detail) if isinstance(exc, HTTPException) else str(exc)
        return UploadResponse(success=False, message="Failed to upload file", error=error)


async def get_attachment(
    *, session: AsyncSession, storage: ObjectStorage, user: User, attachment_id: int
) -> AttachmentResponse:
    attachment = await access_control.get_attachment_with_access(
        session, attachment_id=attachment_id, user=user
    )
    if is_url_expired(attachment):
        attachment = await refresh_attachment_url(session, storage, attachment)

    ctx = await _load_context(session, attachment)
    return attachment_mapper.to_attachment_response(
        attachment, uploader=ctx.uploader, task=ctx.task, project=ctx.project
    )


async def get_preview_data(
    *, session: AsyncSession, storage: ObjectStorage, user: User, attachment_id: int
) -> AttachmentPreview:
    attachment = await access_control.get_attachment_with_access(
        session, attachment_id=attachment_id, user=user
    )
    if is_url_expired(attachment):
        attachment = await refresh_attachment_url(session, storage, attachment)

    return attachment_mapper.to_preview(
        attachment,
        is_previewable=is_previewable(attachment.content_type),
        preview_type=get_preview_type(attachment.content_type),
        stream_url=build_stream_url(int(attachment.id or 0)),
    )


async def stream_attachment(
    *, session: AsyncSession, storage: ObjectStorage, user: User, attachment_id: int
) -> StreamData:
    attachment = await access_control.get_attachment_with_access(
        session, attachment_id=attachment_id, user=user
    )
    data = await storage.get_bytes(attachment.storage_key)
    return StreamData(
        data=data,
        content_type=attachment.content_type,
        file_name=attachment.original_file_name,
    )


async def get_download_url(
    *,
    session: AsyncSession,
    storage: ObjectStorage,
    background: BackgroundTasks,
    user: User,
    attachment_id: int,
) -> str:
    attachment = await access_control.get_attachment_with_access(
        session, attachment_id=attachment_id, user=user
    )
    fresh_url = await gateway.mint_presigned_url(storage, attachment.storage_key)
    expires_at = utc_now() + gateway.presigned_url_ttl()
    # The caller gets the URL now; the row catches up after the response.
    background.add_task(persist_attachment_url, attachment_id, fresh_url, expires_at)

    ctx = await _load_context(session, attachment)
    activity_service.queue_file_downloaded(
        background, user=user, task=ctx.task, attachment=attachment
    )

    logger.info(
        "download url generated attachment=%s user=%s",
        attachment.original_file_name,
        user.username,
    )
    return fresh_url


async def delete_attachment(
    *,
    session: AsyncSession,
    storage: ObjectStorage,
    background: BackgroundTasks,
    user: User,
    attachment_id: int,
) -> None:
    attachment = await access_control.get_attachment_with_access(
        session, attachment_id=attachment_id, user=user
    )
    ctx = await _load_context(session, attachment)
    if not access_control.can_delete(user, attachment, ctx.task, ctx.project):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="you don't have permission to delete this attachment",
        )

    attachment.is_deleted = True
    attachment.deleted_at = utc_now()
    session.add(attachment)
    await session.commit()

    background.add_task(delete_stored_object, storage, attachment.storage_key)
    activity_service.queue_file_deleted(
        background, user=user, task=ctx.task, attachment=attachment
    )

    logger.info(
        "attachment deleted name=%s user=%s task_id=%s",
        attachment.original_file_name,
        user.username,
        attachment.task_id,
    )


async def bulk_delete_attachments(
    *,
    session: AsyncSession,
    storage: ObjectStorage,
    background: BackgroundTasks,
    user: User,
    attachment_ids: list[int],
) -> BulkDeleteResult:
    successful = 0
    failed = 0
    for attachment_id in attachment_ids:
        try:
            await delete_attachment(
                session=session,
                storage=storage,
                background=background,
                user=user,
                attachment_id=attachment_id,
            )
            successful += 1
        except Exception:
            logger.error("failed to delete attachment id=%s", attachment_id, exc_info=True)
            await session.rollback()
            failed += 1

    total = len(attachment_ids)
    return BulkDeleteResult(
        total=total,
        successful=successful,
        failed=failed,
        message=f"Deleted {successful} of {total} attachments",
    )


async def list_task_attachments(
    *, session: AsyncSession, user: User, task_id: int
) -> list[AttachmentSummary]:
    _ = await access_control.get_task_with_access(session, task_id=task_id, user=user)
    rows = await attachments_repo.list_by_task(session, task_id=task_id)
    return await _summaries(session, rows)


async def search_task_attachments(
    *, session: AsyncSession, user: User, task_id: int, query: str
) -> list[AttachmentSummary]:
    _ = await access_control.get_task_with_access(session, task_id=task_id, user=user)
    rows = await attachments_repo.search_by_task(session, task_id=task_id, term=query)
    return await _summaries(session, rows)


async def list_user_attachments(
    *, session: AsyncSession, user: User, page: int = 0, size: int = DEFAULT_PAGE_SIZE
) -> AttachmentPage:
    page = max(page, 0)
    size = min(max(size, 1), MAX_PAGE_SIZE)
    rows, total = await attachments_repo.list_by_uploader(
        session, user_id=int(user.id or 0), offset=page * size, limit=size
    )
    return AttachmentPage(
        items=await _summaries(session, rows),
        page=page,
        size=size,
        total=total,
        total_pages=math.ceil(total / size) if total else 0,
    )


async def get_task_attachment_stats(
    *, session: AsyncSession, user: User, task_id: int
) -> AttachmentStatsResponse:
    _ = await access_control.get_task_with_access(session, task_id=task_id, user=user)
    stats = await attachments_repo.stats_by_task(session, task_id=task_id)
    return attachment_mapper.to_stats_response(stats)


async def get_user_attachment_stats(
    *, session: AsyncSession, user: User
) -> AttachmentStatsResponse:
    stats = await attachments_repo.stats_by_uploader(session, user_id=int(user.id or 0))
    return attachment_mapper.to_stats_response(stats)
