from __future__ import annotations

import inspect
from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import pytest

from taskfiles_backend.config import settings
from taskfiles_backend.db import (
    dispose_engine_cache,
    get_engine,
    init_db,
    reset_engine_cache,
    session_scope,
)
from taskfiles_backend.integrations.storage.object_storage import StorageError
from taskfiles_backend.models import Attachment, Project, ProjectMember, Task, User, utc_now


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
async def _dispose_engine_cache_per_test(  # pyright: ignore[reportUnusedFunction]
    anyio_backend: object,  # noqa: ARG001
) -> AsyncGenerator[None, None]:
    # Dispose the cached AsyncEngine (aiosqlite worker thread) while the
    # per-test event loop is still alive.
    _ = anyio_backend
    yield

    try:
        engine = get_engine()
    except Exception:
        engine = None

    if engine is not None:
        try:
            result = engine.dispose()
            if inspect.isawaitable(result):
                await result
        except Exception:
            # Best-effort: fall back to sync pool dispose below.
            pass

    dispose_engine_cache()


def pytest_sessionfinish(session: object, exitstatus: int) -> None:  # noqa: ARG001
    _ = session, exitstatus
    dispose_engine_cache()


class FakeObjectStorage:
    """In-memory ObjectStorage with switchable failures."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.metadata: dict[str, dict[str, str]] = {}
        self.deleted: list[str] = []
        self.presign_calls = 0
        self.fail_put = False
        self.fail_delete = False
        self.fail_presign_keys: set[str] = set()

    async def put_bytes(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> None:
        _ = content_type
        if self.fail_put:
            raise StorageError(f"failed to upload object {key}")
        self.objects[key] = data
        self.metadata[key] = dict(metadata or {})

    async def get_bytes(self, key: str) -> bytes:
        if key not in self.objects:
            raise StorageError(f"failed to read object {key}")
        return self.objects[key]

    async def delete(self, key: str) -> None:
        if self.fail_delete:
            raise StorageError(f"failed to delete object {key}")
        self.deleted.append(key)
        _ = self.objects.pop(key, None)

    async def presign_url(self, key: str, *, expires_in_seconds: int) -> str:
        if key in self.fail_presign_keys:
            raise StorageError(f"failed to presign object {key}")
        self.presign_calls += 1
        return f"https://files.test/{key}?n={self.presign_calls}&ttl={expires_in_seconds}"


@dataclass
class World:
    owner: User
    member: User
    peer: User
    assignee: User
    outsider: User
    project: Project
    task: Task

    @property
    def task_id(self) -> int:
        assert self.task.id is not None
        return int(self.task.id)


@pytest.fixture
def storage() -> FakeObjectStorage:
    return FakeObjectStorage()


@pytest.fixture
async def db(tmp_path: Path, anyio_backend: object) -> AsyncGenerator[None, None]:
    _ = anyio_backend
    old_db = settings.database_url
    old_dir = settings.attachments_local_dir
    try:
        settings.database_url = f"sqlite:///{tmp_path / 'test.db'}"
        settings.attachments_local_dir = str(tmp_path / "attachments")
        reset_engine_cache()
        await init_db()
        yield
    finally:
        settings.database_url = old_db
        settings.attachments_local_dir = old_dir


@pytest.fixture
async def world(db: None) -> World:
    _ = db
    async with session_scope() as session:
        users = {
            name: User(
                username=name,
                first_name=name.capitalize(),
                last_name="Tester",
                api_token=f"tok-{name}",
            )
            for name in ("owner", "member", "peer", "assignee", "outsider")
        }
        session.add_all(list(users.values()))
        await session.commit()
        for u in users.values():
            await session.refresh(u)

        project = Project(name="Launch", owner_id=int(users["owner"].id or 0))
        session.add(project)
        await session.commit()
        await session.refresh(project)

        for name in ("member", "peer", "assignee"):
            session.add(
                ProjectMember(project_id=int(project.id or 0), user_id=int(users[name].id or 0))
            )
        task = Task(
            title="Ship it",
            project_id=int(project.id or 0),
            creator_id=int(users["member"].id or 0),
            assignee_id=int(users["assignee"].id or 0),
        )
        session.add(task)
        await session.commit()
        await session.refresh(task)

    return World(
        owner=users["owner"],
        member=users["member"],
        peer=users["peer"],
        assignee=users["assignee"],
        outsider=users["outsider"],
        project=project,
        task=task,
    )


InsertAttachment = Callable[..., Awaitable[Attachment]]


@pytest.fixture
def insert_attachment(world: World) -> InsertAttachment:
    counter = {"n": 0}

    async def _insert(
        *,
        uploader: User | None = None,
        original_file_name: str = "notes.txt",
        content_type: str = "text/plain",
        file_size: int = 5,
        url_expires_at: datetime | None = None,
        is_deleted: bool = False,
        deleted_at: datetime | None = None,
    ) -> Attachment:
        counter["n"] += 1
        by = uploader or world.member
        row = Attachment(
            file_name=f"stored_{counter['n']}_{original_file_name}",
            original_file_name=original_file_name,
            file_size=file_size,
            content_type=content_type,
            storage_key=f"tasks/{world.task_id}/attachments/key-{counter['n']}",
            presigned_url=f"https://files.test/original-{counter['n']}",
            url_expires_at=url_expires_at or utc_now(),
            task_id=world.task_id,
            uploaded_by_id=int(by.id or 0),
            is_deleted=is_deleted,
            deleted_at=deleted_at,
        )
        async with session_scope() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
        return row

    return _insert
