from __future__ import annotations

from typing import Iterable, cast

from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import col, or_, select
from sqlmodel.ext.asyncio.session import AsyncSession

from taskfiles_backend.models import Project, ProjectMember, Task, User


async def get_task(session: AsyncSession, *, task_id: int) -> Task | None:
    return await session.get(Task, task_id)


async def get_project(session: AsyncSession, *, project_id: int) -> Project | None:
    return await session.get(Project, project_id)


async def has_user_access_to_task(session: AsyncSession, *, user_id: int, task_id: int) -> bool:
    # Project owner, project member, or task assignee.
    member_exists = (
        select(ProjectMember.id)
        .where(ProjectMember.project_id == Project.id)
        .where(ProjectMember.user_id == user_id)
        .exists()
    )
    stmt = (
        select(Task.id)
        .join(Project, cast(ColumnElement[bool], Task.project_id == Project.id))
        .where(Task.id == task_id)
        .where(
            or_(
                Project.owner_id == user_id,
                member_exists,
                Task.assignee_id == user_id,
            )
        )
        .limit(1)
    )
    return (await session.exec(stmt)).first() is not None


async def get_users_by_ids(session: AsyncSession, user_ids: Iterable[int]) -> dict[int, User]:
    ids = sorted(set(user_ids))
    if not ids:
        return {}
    rows = (await session.exec(select(User).where(col(User.id).in_(ids)))).all()
    return {int(u.id): u for u in rows if u.id is not None}
