"""Audit trail for attachment events.

Writes are queued on the response's BackgroundTasks and run in their own
session after the response is sent. Failures are logged and dropped; the
caller never learns about them.
"""

from __future__ import annotations

import logging
from typing import Any

from starlette.background import BackgroundTasks

from taskfiles_backend.db import session_scope
from taskfiles_backend.models import Activity, Attachment, Task, User, utc_now
from taskfiles_backend.services.attachment_mapper import file_extension

logger = logging.getLogger(__name__)

FILE_UPLOADED = "FILE_UPLOADED"
FILE_DOWNLOADED = "FILE_DOWNLOADED"
FILE_DELETED = "FILE_DELETED"


def _display_name(user: User) -> str:
    full = f"{user.first_name} {user.last_name}".strip()
    return full or user.username


def _task_metadata(task: Task) -> dict[str, Any]:
    return {"task_id": task.id, "task_title": task.title, "project_id": task.project_id}


async def record_activity(
    *,
    activity_type: str,
    user_id: int,
    project_id: int | None,
    task_id: int | None,
    description: str,
    metadata: dict[str, Any],
) -> None:
    try:
        async with session_scope() as session:
            session.add(
                Activity(
                    type=activity_type,
                    description=description,
                    user_id=user_id,
                    project_id=project_id,
                    task_id=task_id,
                    metadata_json=metadata,
                )
            )
            await session.commit()
    except Exception:
        logger.warning(
            "activity write failed type=%s user_id=%s task_id=%s",
            activity_type,
            user_id,
            task_id,
            exc_info=True,
        )


def _queue(
    background: BackgroundTasks,
    *,
    activity_type: str,
    user: User,
    task: Task,
    description: str,
    metadata: dict[str, Any],
) -> None:
    if user.id is None:
        return
    background.add_task(
        record_activity,
        activity_type=activity_type,
        user_id=int(user.id),
        project_id=task.project_id,
        task_id=task.id,
        description=description,
        metadata=metadata,
    )


def queue_file_uploaded(
    background: BackgroundTasks, *, user: User, task: Task, file_name: str
) -> None:
    _queue(
        background,
        activity_type=FILE_UPLOADED,
        user=user,
        task=task,
        description=f'{_display_name(user)} uploaded file "{file_name}" to task "{task.title}"',
        metadata={**_task_metadata(task), "file_name": file_name},
    )


def queue_file_downloaded(
    background: BackgroundTasks, *, user: User, task: Task, attachment: Attachment
) -> None:
    _queue(
        background,
        activity_type=FILE_DOWNLOADED,
        user=user,
        task=task,
        description=(
            f'{_display_name(user)} downloaded file "{attachment.original_file_name}" '
            f'from task "{task.title}"'
        ),
        metadata={
            **_task_metadata(task),
            "file_name": attachment.original_file_name,
            "file_size": attachment.file_size,
            "content_type": attachment.content_type,
            "attachment_id": attachment.id,
            "download_timestamp": utc_now().isoformat(),
        },
    )


def queue_file_deleted(
    background: BackgroundTasks, *, user: User, task: Task, attachment: Attachment
) -> None:
    _queue(
        background,
        activity_type=FILE_DELETED,
        user=user,
        task=task,
        description=(
            f'{_display_name(user)} deleted file "{attachment.original_file_name}" '
            f'from task "{task.title}"'
        ),
        metadata={
            **_task_metadata(task),
            "file_name": attachment.original_file_name,
            "file_size": attachment.file_size,
            "content_type": attachment.content_type,
            "attachment_id": attachment.id,
            "file_extension": file_extension(attachment.original_file_name),
        },
    )
