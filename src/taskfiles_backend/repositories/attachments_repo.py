from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, cast

import sqlalchemy as sa
from sqlalchemy import case, func
from sqlalchemy.ext.asyncio import AsyncSession as SAAsyncSession
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import col, or_, select
from sqlmodel.ext.asyncio.session import AsyncSession

from taskfiles_backend.models import Attachment, Project, ProjectMember, Task

IMAGE_CONTENT_TYPE_PREFIX = "image/"
DOCUMENT_CONTENT_TYPES = (
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
)
ARCHIVE_CONTENT_TYPES = (
    "application/zip",
    "application/x-rar-compressed",
    "application/x-7z-compressed",
)


@dataclass(frozen=True)
class AttachmentStats:
    total_count: int
    total_size: int
    image_count: int
    document_count: int
    archive_count: int


def _not_deleted() -> ColumnElement[bool]:
    return col(Attachment.is_deleted).is_(False)


def _newest_first() -> tuple[Any, Any]:
    return col(Attachment.created_at).desc(), col(Attachment.id).desc()


async def get_attachment_active(session: AsyncSession, *, attachment_id: int) -> Attachment | None:
    stmt = select(Attachment).where(Attachment.id == attachment_id).where(_not_deleted())
    return (await session.exec(stmt)).first()


async def has_user_access_to_attachment(
    session: AsyncSession, *, user_id: int, attachment_id: int
) -> bool:
    # Project owner, project member, or uploader; deleted rows never grant access.
    member_exists = (
        select(ProjectMember.id)
        .where(ProjectMember.project_id == Project.id)
        .where(ProjectMember.user_id == user_id)
        .exists()
    )
    stmt = (
        select(Attachment.id)
        .join(Task, cast(ColumnElement[bool], Attachment.task_id == Task.id))
        .join(Project, cast(ColumnElement[bool], Task.project_id == Project.id))
        .where(Attachment.id == attachment_id)
        .where(_not_deleted())
        .where(
            or_(
                Project.owner_id == user_id,
                member_exists,
                Attachment.uploaded_by_id == user_id,
            )
        )
        .limit(1)
    )
    return (await session.exec(stmt)).first() is not None


async def list_by_task(session: AsyncSession, *, task_id: int) -> list[Attachment]:
    stmt = (
        select(Attachment)
        .where(Attachment.task_id == task_id)
        .where(_not_deleted())
        .order_by(*_newest_first())
    )
    return list((await session.exec(stmt)).all())


async def list_by_uploader(
    session: AsyncSession, *, user_id: int, offset: int, limit: int
) -> tuple[list[Attachment], int]:
    base = select(Attachment).where(Attachment.uploaded_by_id == user_id).where(_not_deleted())
    total = (
        await session.exec(select(func.count()).select_from(base.subquery()))
    ).one()
    rows = (
        await session.exec(base.order_by(*_newest_first()).offset(offset).limit(limit))
    ).all()
    return list(rows), int(total)


async def search_by_task(session: AsyncSession, *, task_id: int, term: str) -> list[Attachment]:
    needle = term.strip().lower()
    stmt = (
        select(Attachment)
        .where(Attachment.task_id == task_id)
        .where(_not_deleted())
        .where(
            or_(
                func.lower(col(Attachment.file_name)).contains(needle, autoescape=True),
                func.lower(col(Attachment.original_file_name)).contains(needle, autoescape=True),
            )
        )
        .order_by(*_newest_first())
    )
    return list((await session.exec(stmt)).all())


async def _stats(session: AsyncSession, *where: ColumnElement[bool]) -> AttachmentStats:
    content_type = col(Attachment.content_type)
    stmt = sa.select(
        func.count(col(Attachment.id)),
        func.coalesce(func.sum(col(Attachment.file_size)), 0),
        func.coalesce(
            func.sum(case((content_type.startswith(IMAGE_CONTENT_TYPE_PREFIX), 1), else_=0)), 0
        ),
        func.coalesce(
            func.sum(case((content_type.in_(DOCUMENT_CONTENT_TYPES), 1), else_=0)), 0
        ),
        func.coalesce(func.sum(case((content_type.in_(ARCHIVE_CONTENT_TYPES), 1), else_=0)), 0),
    ).where(_not_deleted(), *where)
    sa_session = cast(SAAsyncSession, session)
    row = (await sa_session.execute(stmt)).one()
    total_count, total_size, image_count, document_count, archive_count = row
    return AttachmentStats(
        total_count=int(total_count or 0),
        total_size=int(total_size or 0),
        image_count=int(image_count or 0),
        document_count=int(document_count or 0),
        archive_count=int(archive_count or 0),
    )


async def stats_by_task(session: AsyncSession, *, task_id: int) -> AttachmentStats:
    return await _stats(session, cast(ColumnElement[bool], Attachment.task_id == task_id))


async def stats_by_uploader(session: AsyncSession, *, user_id: int) -> AttachmentStats:
    return await _stats(session, cast(ColumnElement[bool], Attachment.uploaded_by_id == user_id))


async def list_urls_expiring_before(
    session: AsyncSession, *, threshold: datetime
) -> list[Attachment]:
    stmt = (
        select(Attachment)
        .where(col(Attachment.url_expires_at) < threshold)
        .where(_not_deleted())
        .order_by(col(Attachment.id))
    )
    return list((await session.exec(stmt)).all())


async def update_url(
    session: AsyncSession, *, attachment_id: int, url: str, expires_at: datetime
) -> int:
    stmt = (
        sa.update(Attachment)
        .where(col(Attachment.id) == attachment_id)
        .values(presigned_url=url, url_expires_at=expires_at)
        .execution_options(synchronize_session=False)
    )
    result = await cast(SAAsyncSession, session).execute(stmt)
    return int(getattr(result, "rowcount", 0) or 0)


async def purge_deleted_before(session: AsyncSession, *, cutoff: datetime) -> int:
    stmt = (
        sa.delete(Attachment)
        .where(col(Attachment.is_deleted).is_(True))
        .where(col(Attachment.deleted_at) < cutoff)
        .execution_options(synchronize_session=False)
    )
    result = await cast(SAAsyncSession, session).execute(stmt)
    return int(getattr(result, "rowcount", 0) or 0)
