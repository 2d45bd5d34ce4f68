"""Pure conversions from persisted rows to response schemas."""

from __future__ import annotations

from taskfiles_backend.models import Attachment, Project, Task, User, ensure_utc
from taskfiles_backend.repositories.attachments_repo import (
    ARCHIVE_CONTENT_TYPES,
    DOCUMENT_CONTENT_TYPES,
    IMAGE_CONTENT_TYPE_PREFIX,
    AttachmentStats,
)
from taskfiles_backend.schemas_attachments import (
    AttachmentPreview,
    AttachmentResponse,
    AttachmentStatsResponse,
    AttachmentSummary,
    ProjectSummary,
    TaskSummary,
    UserSummary,
)

_KB = 1024
_MB = 1024 * 1024
_GB = 1024 * 1024 * 1024


def format_file_size(size_bytes: int | None) -> str:
    if size_bytes is None:
        return "0 B"
    if size_bytes < _KB:
        return f"{size_bytes} B"
    if size_bytes < _MB:
        return f"{size_bytes / _KB:.1f} KB"
    if size_bytes < _GB:
        return f"{size_bytes / _MB:.1f} MB"
    return f"{size_bytes / _GB:.1f} GB"


def file_extension(filename: str | None) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].lower()


def is_image(content_type: str | None) -> bool:
    return bool(content_type) and str(content_type).startswith(IMAGE_CONTENT_TYPE_PREFIX)


def is_document(content_type: str | None) -> bool:
    return content_type in DOCUMENT_CONTENT_TYPES


def is_archive(content_type: str | None) -> bool:
    return content_type in ARCHIVE_CONTENT_TYPES


def to_user_summary(user: User | None) -> UserSummary | None:
    if user is None or user.id is None:
        return None
    return UserSummary(
        id=int(user.id),
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        avatar=user.avatar,
        job_title=user.job_title,
    )


def to_task_summary(task: Task | None, project: Project | None) -> TaskSummary | None:
    if task is None or task.id is None:
        return None
    project_summary = None
    if project is not None and project.id is not None:
        project_summary = ProjectSummary(id=int(project.id), name=project.name, color=project.color)
    return TaskSummary(id=int(task.id), title=task.title, status=task.status, project=project_summary)


def _common_fields(attachment: Attachment) -> dict[str, object]:
    return {
        "id": int(attachment.id or 0),
        "file_name": attachment.file_name,
        "original_file_name": attachment.original_file_name,
        "file_size": attachment.file_size,
        "file_size_formatted": format_file_size(attachment.file_size),
        "content_type": attachment.content_type,
        "file_extension": file_extension(attachment.original_file_name),
        "is_image": is_image(attachment.content_type),
        "is_document": is_document(attachment.content_type),
        "is_archive": is_archive(attachment.content_type),
        "created_at": ensure_utc(attachment.created_at),
    }


def to_attachment_summary(attachment: Attachment, *, uploader: User | None) -> AttachmentSummary:
    return AttachmentSummary.model_validate(
        {**_common_fields(attachment), "uploaded_by": to_user_summary(uploader)}
    )


def to_attachment_response(
    attachment: Attachment,
    *,
    uploader: User | None,
    task: Task | None,
    project: Project | None,
) -> AttachmentResponse:
    return AttachmentResponse.model_validate(
        {
            **_common_fields(attachment),
            "uploaded_by": to_user_summary(uploader),
            "download_url": attachment.presigned_url,
            "url_expires_at": ensure_utc(attachment.url_expires_at),
            "task": to_task_summary(task, project),
        }
    )


def to_stats_response(stats: AttachmentStats) -> AttachmentStatsResponse:
    other = stats.total_count - stats.image_count - stats.document_count - stats.archive_count
    return AttachmentStatsResponse(
        total_attachments=stats.total_count,
        total_size_bytes=stats.total_size,
        total_size_formatted=format_file_size(stats.total_size),
        image_count=stats.image_count,
        document_count=stats.document_count,
        archive_count=stats.archive_count,
        other_count=other,
    )


def to_preview(
    attachment: Attachment, *, is_previewable: bool, preview_type: str, stream_url: str
) -> AttachmentPreview:
    return AttachmentPreview(
        id=int(attachment.id or 0),
        file_name=attachment.original_file_name,
        content_type=attachment.content_type,
        file_size=attachment.file_size,
        file_size_formatted=format_file_size(attachment.file_size),
        is_previewable=is_previewable,
        preview_type=preview_type,
        stream_url=stream_url,
        download_url=attachment.presigned_url,
        url_expires_at=ensure_utc(attachment.url_expires_at),
    )
