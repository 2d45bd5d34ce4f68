"""Task attachments router."""

from __future__ import annotations

from typing import Annotated
from urllib.parse import quote

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Body,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Response,
    UploadFile,
    status,
)
from fastapi.responses import FileResponse
from sqlmodel.ext.asyncio.session import AsyncSession

from taskfiles_backend.config import settings
from taskfiles_backend.db import get_session
from taskfiles_backend.deps import get_current_user
from taskfiles_backend.integrations.storage.local_storage import LocalObjectStorage
from taskfiles_backend.integrations.storage.object_storage import ObjectStorage, get_object_storage
from taskfiles_backend.models import User
from taskfiles_backend.schemas_attachments import (
    AttachmentPage,
    AttachmentPreview,
    AttachmentResponse,
    AttachmentStatsResponse,
    AttachmentSummary,
    BulkDeleteResult,
    DownloadUrlResponse,
    MessageResponse,
    UploadResponse,
)
from taskfiles_backend.services import attachments_service

router = APIRouter(prefix="/attachments", tags=["attachments"])


async def _read_upload_file_limited(*, file: UploadFile, max_bytes: int) -> bytes:
    # Read the file in chunks and hard-stop once size exceeds max_bytes.
    buf = bytearray()
    chunk_size = 1024 * 1024
    while True:
        chunk = await file.read(chunk_size)
        if not chunk:
            break
        buf.extend(chunk)
        if len(buf) > max_bytes:
            raise HTTPException(status_code=413, detail="attachment too large")
    return bytes(buf)


def _content_disposition(kind: str, filename: str) -> str:
    return f"{kind}; filename*=UTF-8''{quote(filename)}"


@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_attachment(
    response: Response,
    background: BackgroundTasks,
    file: Annotated[UploadFile, File()],
    task_id: Annotated[int, Form()],
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    storage: ObjectStorage = Depends(get_object_storage),
) -> UploadResponse:
    max_bytes = int(settings.attachments_max_size_bytes)
    if max_bytes > 0:
        data = await _read_upload_file_limited(file=file, max_bytes=max_bytes)
    else:
        data = await file.read()

    result = await attachments_service.upload_attachment(
        session=session,
        storage=storage,
        background=background,
        user=user,
        task_id=task_id,
        filename=file.filename,
        content_type=file.content_type,
        data=data,
    )
    if not result.success:
        response.status_code = status.HTTP_400_BAD_REQUEST
    return result


@router.get("/task/{task_id}", response_model=list[AttachmentSummary])
async def list_task_attachments(
    task_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[AttachmentSummary]:
    return await attachments_service.list_task_attachments(
        session=session, user=user, task_id=task_id
    )


@router.get("/task/{task_id}/search", response_model=list[AttachmentSummary])
async def search_task_attachments(
    task_id: int,
    query: str = Query(..., min_length=1),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[AttachmentSummary]:
    return await attachments_service.search_task_attachments(
        session=session, user=user, task_id=task_id, query=query
    )


@router.get("/task/{task_id}/stats", response_model=AttachmentStatsResponse)
async def task_attachment_stats(
    task_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> AttachmentStatsResponse:
    return await attachments_service.get_task_attachment_stats(
        session=session, user=user, task_id=task_id
    )


@router.get("/user/my-uploads", response_model=AttachmentPage)
async def my_uploads(
    page: int = Query(default=0, ge=0),
    size: int = Query(
        default=attachments_service.DEFAULT_PAGE_SIZE, ge=1, le=attachments_service.MAX_PAGE_SIZE
    ),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> AttachmentPage:
    return await attachments_service.list_user_attachments(
        session=session, user=user, page=page, size=size
    )


@router.get("/user/stats", response_model=AttachmentStatsResponse)
async def my_attachment_stats(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> AttachmentStatsResponse:
    return await attachments_service.get_user_attachment_stats(session=session, user=user)


@router.post("/bulk-delete", response_model=BulkDeleteResult)
async def bulk_delete_attachments(
    background: BackgroundTasks,
    attachment_ids: Annotated[list[int], Body()],
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    storage: ObjectStorage = Depends(get_object_storage),
) -> BulkDeleteResult:
    return await attachments_service.bulk_delete_attachments(
        session=session,
        storage=storage,
        background=background,
        user=user,
        attachment_ids=attachment_ids,
    )


@router.get("/files/{storage_key:path}", include_in_schema=False)
async def serve_signed_file(
    storage_key: str,
    expires: int = Query(...),
    signature: str = Query(..., min_length=1),
    storage: ObjectStorage = Depends(get_object_storage),
) -> Response:
    # Signed URLs only exist for local storage; S3 links point at the bucket.
    if not isinstance(storage, LocalObjectStorage):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="file not found")
    if not storage.verify_signature(storage_key, expires=expires, signature=signature):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="invalid or expired signature"
        )

    try:
        path = storage.resolve_path(storage_key)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="file not found") from None
    if not path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="file not found")
    return FileResponse(path, filename=path.name)


@router.get("/{attachment_id}", response_model=AttachmentResponse)
async def get_attachment(
    attachment_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    storage: ObjectStorage = Depends(get_object_storage),
) -> AttachmentResponse:
    return await attachments_service.get_attachment(
        session=session, storage=storage, user=user, attachment_id=attachment_id
    )


@router.get("/{attachment_id}/download", response_model=DownloadUrlResponse)
async def get_download_url(
    attachment_id: int,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    storage: ObjectStorage = Depends(get_object_storage),
) -> DownloadUrlResponse:
    url = await attachments_service.get_download_url(
        session=session,
        storage=storage,
        background=background,
        user=user,
        attachment_id=attachment_id,
    )
    return DownloadUrlResponse(download_url=url)


@router.get("/{attachment_id}/preview", response_model=AttachmentPreview)
async def get_preview(
    attachment_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    storage: ObjectStorage = Depends(get_object_storage),
) -> AttachmentPreview:
    return await attachments_service.get_preview_data(
        session=session, storage=storage, user=user, attachment_id=attachment_id
    )


@router.get("/{attachment_id}/stream")
async def stream_attachment(
    attachment_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    storage: ObjectStorage = Depends(get_object_storage),
) -> Response:
    stream = await attachments_service.stream_attachment(
        session=session, storage=storage, user=user, attachment_id=attachment_id
    )
    headers = {
        "Content-Disposition": _content_disposition("inline", stream.file_name),
        "Cache-Control": "private, max-age=3600",
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "SAMEORIGIN",
    }
    return Response(content=stream.data, media_type=stream.content_type, headers=headers)


@router.delete("/{attachment_id}", response_model=MessageResponse)
async def delete_attachment(
    attachment_id: int,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    storage: ObjectStorage = Depends(get_object_storage),
) -> MessageResponse:
    await attachments_service.delete_attachment(
        session=session,
        storage=storage,
        background=background,
        user=user,
        attachment_id=attachment_id,
    )
    return MessageResponse(message="Attachment deleted successfully")
