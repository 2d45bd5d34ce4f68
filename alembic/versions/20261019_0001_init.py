"""init schema (users + projects + tasks + task_attachments + activities)

Revision ID: 20261019_0001
Revises: None
Create Date: 2026-10-19 00:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(table_name: str) -> bool:
    bind = op.get_bind()
    insp = inspect(bind)
    return table_name in insp.get_table_names()


def upgrade() -> None:
    if not _table_exists("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
            sa.Column("username", sa.String(length=64), nullable=False),
            sa.Column("first_name", sa.String(length=100), nullable=False, server_default=""),
            sa.Column("last_name", sa.String(length=100), nullable=False, server_default=""),
            sa.Column("avatar", sa.String(length=500), nullable=True),
            sa.Column("job_title", sa.String(length=200), nullable=True),
            sa.Column("api_token", sa.Text(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_users_username", "users", ["username"], unique=True)
        op.create_index("ix_users_is_active", "users", ["is_active"], unique=False)
        op.create_index("ix_users_created_at", "users", ["created_at"], unique=False)

    if not _table_exists("projects"):
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("color", sa.String(length=20), nullable=False, server_default="#3B82F6"),
            sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_projects_owner_id", "projects", ["owner_id"], unique=False)
        op.create_index("ix_projects_created_at", "projects", ["created_at"], unique=False)

    if not _table_exists("project_members"):
        op.create_table(
            "project_members",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
            sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.UniqueConstraint(
                "project_id", "user_id", name="uq_project_members_project_id_user_id"
            ),
        )
        op.create_index(
            "ix_project_members_project_id", "project_members", ["project_id"], unique=False
        )
        op.create_index("ix_project_members_user_id", "project_members", ["user_id"], unique=False)

    if not _table_exists("tasks"):
        op.create_table(
            "tasks",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
            sa.Column("title", sa.String(length=500), nullable=False),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="TODO"),
            sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id"), nullable=False),
            sa.Column("creator_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("assignee_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_tasks_status", "tasks", ["status"], unique=False)
        op.create_index("ix_tasks_project_id", "tasks", ["project_id"], unique=False)
        op.create_index("ix_tasks_creator_id", "tasks", ["creator_id"], unique=False)
        op.create_index("ix_tasks_assignee_id", "tasks", ["assignee_id"], unique=False)
        op.create_index("ix_tasks_created_at", "tasks", ["created_at"], unique=False)

    if not _table_exists("task_attachments"):
        op.create_table(
            "task_attachments",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
            sa.Column("file_name", sa.String(length=255), nullable=False),
            sa.Column("original_file_name", sa.String(length=255), nullable=False),
            sa.Column("file_size", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("content_type", sa.String(length=255), nullable=False),
            sa.Column("storage_key", sa.String(length=512), nullable=False),
            sa.Column("presigned_url", sa.Text(), nullable=True),
            sa.Column("url_expires_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("task_id", sa.Integer(), sa.ForeignKey("tasks.id"), nullable=False),
            sa.Column("uploaded_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index(
            "ix_task_attachments_storage_key", "task_attachments", ["storage_key"], unique=True
        )
        op.create_index(
            "ix_task_attachments_url_expires_at",
            "task_attachments",
            ["url_expires_at"],
            unique=False,
        )
        op.create_index(
            "ix_task_attachments_is_deleted", "task_attachments", ["is_deleted"], unique=False
        )
        op.create_index(
            "ix_task_attachments_deleted_at", "task_attachments", ["deleted_at"], unique=False
        )
        op.create_index(
            "ix_task_attachments_task_id_created_at",
            "task_attachments",
            ["task_id", "created_at"],
            unique=False,
        )
        op.create_index(
            "ix_task_attachments_uploaded_by_id_created_at",
            "task_attachments",
            ["uploaded_by_id", "created_at"],
            unique=False,
        )

    if not _table_exists("activities"):
        op.create_table(
            "activities",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
            sa.Column("type", sa.String(length=50), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id"), nullable=True),
            sa.Column("task_id", sa.Integer(), sa.ForeignKey("tasks.id"), nullable=True),
            sa.Column("metadata_json", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_activities_type", "activities", ["type"], unique=False)
        op.create_index("ix_activities_user_id", "activities", ["user_id"], unique=False)
        op.create_index("ix_activities_project_id", "activities", ["project_id"], unique=False)
        op.create_index("ix_activities_task_id", "activities", ["task_id"], unique=False)
        op.create_index("ix_activities_created_at", "activities", ["created_at"], unique=False)


def downgrade() -> None:
    for table in (
        "activities",
        "task_attachments",
        "tasks",
        "project_members",
        "projects",
        "users",
    ):
        if _table_exists(table):
            op.drop_table(table)
