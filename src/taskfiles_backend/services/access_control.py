from __future__ import annotations

from fastapi import HTTPException, status
from sqlmodel.ext.asyncio.session import AsyncSession

from taskfiles_backend.models import Attachment, Project, Task, User
from taskfiles_backend.repositories import attachments_repo, tasks_repo


def _user_id(user: User) -> int:
    if user.id is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="user missing id",
        )
    return int(user.id)


def can_upload(user: User, task: Task) -> bool:
    if task.assignee_id is not None and task.assignee_id == user.id:
        return True
    if task.creator_id == user.id:
        return True
    # Anyone who passed the task access check may upload.
    return True


def can_delete(user: User, attachment: Attachment, task: Task, project: Project | None) -> bool:
    if attachment.uploaded_by_id == user.id:
        return True
    if task.assignee_id is not None and task.assignee_id == user.id:
        return True
    if project is not None and project.owner_id == user.id:
        return True
    return False


async def get_task_with_access(session: AsyncSession, *, task_id: int, user: User) -> Task:
    task = await tasks_repo.get_task(session, task_id=task_id)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="task not found")

    if not await tasks_repo.has_user_access_to_task(
        session, user_id=_user_id(user), task_id=task_id
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="you don't have access to this task",
        )
    return task


async def get_attachment_with_access(
    session: AsyncSession, *, attachment_id: int, user: User
) -> Attachment:
    attachment = await attachments_repo.get_attachment_active(session, attachment_id=attachment_id)
    if attachment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="attachment not found")

    if not await attachments_repo.has_user_access_to_attachment(
        session, user_id=_user_id(user), attachment_id=attachment_id
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="you don't have access to this attachment",
        )
    return attachment
