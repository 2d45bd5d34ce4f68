from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, computed_field


class UserSummary(BaseModel):
    id: int
    username: str
    first_name: str = ""
    last_name: str = ""
    avatar: str | None = None
    job_title: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def initials(self) -> str:
        return (self.first_name[:1] + self.last_name[:1]).upper()


class ProjectSummary(BaseModel):
    id: int
    name: str
    color: str


class TaskSummary(BaseModel):
    id: int
    title: str
    status: str
    project: ProjectSummary | None = None


class AttachmentSummary(BaseModel):
    id: int
    file_name: str
    original_file_name: str
    file_size: int
    file_size_formatted: str
    content_type: str
    file_extension: str
    is_image: bool
    is_document: bool
    is_archive: bool
    created_at: datetime
    uploaded_by: UserSummary | None = None


class AttachmentResponse(AttachmentSummary):
    download_url: str | None = None
    url_expires_at: datetime | None = None
    task: TaskSummary | None = None


class AttachmentStatsResponse(BaseModel):
    total_attachments: int
    total_size_bytes: int
    total_size_formatted: str
    image_count: int
    document_count: int
    archive_count: int
    other_count: int


class AttachmentPreview(BaseModel):
    id: int
    file_name: str
    content_type: str
    file_size: int
    file_size_formatted: str
    is_previewable: bool
    preview_type: str
    stream_url: str
    download_url: str | None = None
    url_expires_at: datetime | None = None


class UploadResponse(BaseModel):
    success: bool
    message: str
    attachment: AttachmentResponse | None = None
    error: str | None = None


class DownloadUrlResponse(BaseModel):
    download_url: str
    message: str = "Download URL generated successfully"


class AttachmentPage(BaseModel):
    items: list[AttachmentSummary]
    page: int
    size: int
    total: int
    total_pages: int


class BulkDeleteResult(BaseModel):
    total: int
    successful: int
    failed: int
    message: str


class MessageResponse(BaseModel):
    message: str
