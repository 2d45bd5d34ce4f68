from __future__ import annotations

import re
from datetime import datetime, timezone

import pytest

from taskfiles_backend.models import Attachment, Project, Task, User
from taskfiles_backend.repositories.attachments_repo import AttachmentStats
from taskfiles_backend.services import attachment_mapper
from taskfiles_backend.services.attachments_service import (
    generate_secure_file_name,
    get_preview_type,
    is_previewable,
)


@pytest.mark.parametrize(
    ("size", "expected"),
    [
        (0, "0 B"),
        (500, "500 B"),
        (2048, "2.0 KB"),
        (5_242_880, "5.0 MB"),
        (3 * 1024**3, "3.0 GB"),
        (None, "0 B"),
    ],
)
def test_format_file_size(size: int | None, expected: str):
    assert attachment_mapper.format_file_size(size) == expected


def test_secure_file_name_replaces_unsafe_characters():
    name = generate_secure_file_name("My File (1).PNG")
    assert re.fullmatch(r"My_File__1__\d+\.PNG", name)


def test_secure_file_name_caps_base_and_keeps_extension():
    name = generate_secure_file_name("a" * 80 + ".tar.gz", timestamp_ms=42)
    assert name == "a" * 50 + "_42.gz"


def test_secure_file_name_handles_dotfiles_and_missing_names():
    assert generate_secure_file_name(".env", timestamp_ms=7) == ".env_7"
    assert re.fullmatch(r"file_[0-9a-f]{8}", generate_secure_file_name(None))


@pytest.mark.parametrize(
    ("content_type", "preview_type", "previewable"),
    [
        ("image/PNG", "image", True),
        ("application/pdf", "pdf", True),
        ("text/csv", "text", True),
        ("application/javascript", "code", True),
        ("application/zip", "unsupported", False),
        (None, "unsupported", False),
    ],
)
def test_preview_type(content_type: str | None, preview_type: str, previewable: bool):
    assert get_preview_type(content_type) == preview_type
    assert is_previewable(content_type) is previewable


def test_attachment_response_carries_task_project_and_uploader():
    uploader = User(id=3, username="jdoe", first_name="Jane", last_name="Doe")
    project = Project(id=9, name="Launch", owner_id=3, color="#FF0000")
    task = Task(id=7, title="Ship it", project_id=9, creator_id=3)
    attachment = Attachment(
        id=11,
        file_name="diagram_1.PNG",
        original_file_name="Diagram.PNG",
        file_size=2048,
        content_type="image/png",
        storage_key="tasks/7/attachments/3_abcd1234_Diagram.PNG",
        presigned_url="https://files.test/x",
        task_id=7,
        uploaded_by_id=3,
    )

    resp = attachment_mapper.to_attachment_response(
        attachment, uploader=uploader, task=task, project=project
    )

    assert resp.file_extension == "png"
    assert resp.file_size_formatted == "2.0 KB"
    assert (resp.is_image, resp.is_document, resp.is_archive) == (True, False, False)
    assert resp.download_url == "https://files.test/x"
    assert resp.uploaded_by is not None
    assert resp.uploaded_by.full_name == "Jane Doe"
    assert resp.uploaded_by.initials == "JD"
    assert resp.task is not None and resp.task.project is not None
    assert resp.task.project.color == "#FF0000"

    summary = attachment_mapper.to_attachment_summary(attachment, uploader=None)
    assert summary.uploaded_by is None
    assert "download_url" not in summary.model_dump()


def test_stats_other_count_is_the_remainder():
    stats = AttachmentStats(
        total_count=10, total_size=1536, image_count=3, document_count=2, archive_count=1
    )
    resp = attachment_mapper.to_stats_response(stats)
    assert resp.other_count == 4
    assert resp.total_size_formatted == "1.5 KB"


def test_naive_timestamps_are_returned_as_utc():
    # SQLite drops tzinfo on read.
    attachment = Attachment(
        id=12,
        file_name="notes_1.txt",
        original_file_name="notes.txt",
        file_size=5,
        content_type="text/plain",
        storage_key="tasks/7/attachments/3_abcd1234_notes.txt",
        presigned_url="https://files.test/y",
        url_expires_at=datetime(2026, 10, 20, 8, 30),
        created_at=datetime(2026, 10, 19, 8, 30),
        task_id=7,
        uploaded_by_id=3,
    )

    resp = attachment_mapper.to_attachment_response(
        attachment, uploader=None, task=None, project=None
    )
    preview = attachment_mapper.to_preview(
        attachment, is_previewable=True, preview_type="text", stream_url="http://x/stream"
    )
    summary = attachment_mapper.to_attachment_summary(attachment, uploader=None)

    expected_expiry = datetime(2026, 10, 20, 8, 30, tzinfo=timezone.utc)
    assert resp.url_expires_at == expected_expiry
    assert resp.url_expires_at is not None and resp.url_expires_at.tzinfo is not None
    assert preview.url_expires_at == expected_expiry
    assert summary.created_at == datetime(2026, 10, 19, 8, 30, tzinfo=timezone.utc)
    assert summary.created_at.tzinfo is not None
