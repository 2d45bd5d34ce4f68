# basedpyright: reportAssignmentType=false
# basedpyright: reportIncompatibleVariableOverride=false

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Column, Index, Text, UniqueConstraint
from sqlalchemy.types import JSON as SAJSON
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; every stored value is UTC.
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class User(SQLModel, table=True):
    __tablename__ = "users"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True, min_length=1, max_length=64)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    avatar: Optional[str] = Field(default=None, max_length=500)
    job_title: Optional[str] = Field(default=None, max_length=200)

    # Bearer token for API access; issued by the auth service.
    api_token: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utc_now, index=True)


class Project(SQLModel, table=True):
    __tablename__ = "projects"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(min_length=1, max_length=200)
    color: str = Field(default="#3B82F6", max_length=20)
    owner_id: int = Field(index=True, foreign_key="users.id")
    created_at: datetime = Field(default_factory=utc_now, index=True)


class ProjectMember(SQLModel, table=True):
    __tablename__ = "project_members"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_members_project_id_user_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(index=True, foreign_key="projects.id")
    user_id: int = Field(index=True, foreign_key="users.id")
    created_at: datetime = Field(default_factory=utc_now)


class Task(SQLModel, table=True):
    __tablename__ = "tasks"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(min_length=1, max_length=500)
    status: str = Field(default="TODO", max_length=30, index=True)

    project_id: int = Field(index=True, foreign_key="projects.id")
    creator_id: int = Field(index=True, foreign_key="users.id")
    assignee_id: Optional[int] = Field(default=None, index=True, foreign_key="users.id")

    created_at: datetime = Field(default_factory=utc_now, index=True)


class Attachment(SQLModel, table=True):
    __tablename__ = "task_attachments"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]
    __table_args__ = (
        Index("ix_task_attachments_task_id_created_at", "task_id", "created_at"),
        Index("ix_task_attachments_uploaded_by_id_created_at", "uploaded_by_id", "created_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    # Storage-safe generated name; original_file_name is kept for display.
    file_name: str = Field(min_length=1, max_length=255)
    original_file_name: str = Field(min_length=1, max_length=255)
    file_size: int = Field(default=0)
    content_type: str = Field(min_length=1, max_length=255)

    # Set once on upload and never rewritten.
    storage_key: str = Field(unique=True, min_length=1, max_length=512)
    presigned_url: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    url_expires_at: Optional[datetime] = Field(default=None, index=True)

    task_id: int = Field(foreign_key="tasks.id")
    uploaded_by_id: int = Field(foreign_key="users.id")

    is_deleted: bool = Field(default=False, index=True)
    deleted_at: Optional[datetime] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utc_now)


class Activity(SQLModel, table=True):
    __tablename__ = "activities"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]

    id: Optional[int] = Field(default=None, primary_key=True)
    type: str = Field(max_length=50, index=True)
    description: str = Field(default="", sa_column=Column(Text, nullable=False))

    user_id: int = Field(index=True, foreign_key="users.id")
    project_id: Optional[int] = Field(default=None, index=True, foreign_key="projects.id")
    task_id: Optional[int] = Field(default=None, index=True, foreign_key="tasks.id")

    metadata_json: dict[str, Any] = Field(default_factory=dict, sa_column=Column(SAJSON))
    created_at: datetime = Field(default_factory=utc_now, index=True)
