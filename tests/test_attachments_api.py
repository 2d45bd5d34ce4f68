from __future__ import annotations

from pathlib import Path
from typing import cast

import httpx
import pytest
from sqlmodel import select

from taskfiles_backend.config import settings
from taskfiles_backend.db import session_scope
from taskfiles_backend.main import app  # pyright: ignore[reportMissingTypeStubs]
from taskfiles_backend.models import Activity

from conftest import World


def _make_async_client() -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=app)
    return httpx.AsyncClient(transport=transport, base_url="http://test")


def _auth(name: str) -> dict[str, str]:
    return {"Authorization": f"Bearer tok-{name}"}


@pytest.mark.anyio
async def test_upload_download_stream_and_delete_with_local_storage(world: World):
    async with _make_async_client() as client:
        r = await client.post(
            "/api/v1/attachments/upload",
            headers=_auth("member"),
            files={"file": ("hello.txt", b"hello", "text/plain")},
            data={"task_id": str(world.task_id)},
        )
        assert r.status_code == 201
        body = cast(dict[str, object], r.json())
        assert body["success"] is True
        attachment = cast(dict[str, object], body["attachment"])
        attachment_id = cast(int, attachment["id"])
        assert attachment["original_file_name"] == "hello.txt"
        assert attachment["file_size_formatted"] == "5 B"
        assert cast(str, attachment["download_url"]).startswith(
            "http://localhost:8000/api/v1/attachments/files/tasks/"
        )

        r = await client.get(f"/api/v1/attachments/{attachment_id}", headers=_auth("owner"))
        assert r.status_code == 200
        assert r.json()["id"] == attachment_id

        r = await client.get(
            f"/api/v1/attachments/{attachment_id}/download", headers=_auth("member")
        )
        assert r.status_code == 200
        download = r.json()
        assert download["message"] == "Download URL generated successfully"

        # The signed link is served without a bearer token.
        r = await client.get(cast(str, download["download_url"]))
        assert r.status_code == 200
        assert r.content == b"hello"

        r = await client.get(
            f"/api/v1/attachments/{attachment_id}/stream", headers=_auth("peer")
        )
        assert r.status_code == 200
        assert r.content == b"hello"
        assert r.headers["x-content-type-options"] == "nosniff"
        assert r.headers["x-frame-options"] == "SAMEORIGIN"
        assert r.headers["content-disposition"].startswith("inline;")

        r = await client.get(
            f"/api/v1/attachments/{attachment_id}/preview", headers=_auth("member")
        )
        assert r.status_code == 200
        assert r.json()["preview_type"] == "text"

        r = await client.get(
            f"/api/v1/attachments/task/{world.task_id}", headers=_auth("assignee")
        )
        assert [a["id"] for a in r.json()] == [attachment_id]

        r = await client.delete(f"/api/v1/attachments/{attachment_id}", headers=_auth("member"))
        assert r.status_code == 200
        assert r.json() == {"message": "Attachment deleted successfully"}

        r = await client.get(
            f"/api/v1/attachments/{attachment_id}",
            headers={**_auth("member"), "X-Request-Id": "req-123"},
        )
        assert r.status_code == 404
        assert r.headers["x-request-id"] == "req-123"
        assert r.json() == {
            "error": "not_found",
            "message": "attachment not found",
            "request_id": "req-123",
        }

    # Background jobs ran with the responses: object gone, activities written.
    stored = list(Path(settings.attachments_local_dir).rglob("*.txt"))
    assert stored == []
    async with session_scope() as session:
        types = [a.type for a in (await session.exec(select(Activity))).all()]
    assert sorted(types) == ["FILE_DELETED", "FILE_DOWNLOADED", "FILE_UPLOADED"]


@pytest.mark.anyio
async def test_upload_failure_is_a_400_result(world: World):
    async with _make_async_client() as client:
        r = await client.post(
            "/api/v1/attachments/upload",
            headers=_auth("outsider"),
            files={"file": ("hello.txt", b"hello", "text/plain")},
            data={"task_id": str(world.task_id)},
        )
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert body["message"] == "Failed to upload file"
    assert body["error"] == "you don't have access to this task"


@pytest.mark.anyio
async def test_upload_rejects_too_large(world: World):
    old_max = settings.attachments_max_size_bytes
    try:
        settings.attachments_max_size_bytes = 4
        async with _make_async_client() as client:
            r = await client.post(
                "/api/v1/attachments/upload",
                headers=_auth("member"),
                files={"file": ("big.txt", b"hello", "text/plain")},
                data={"task_id": str(world.task_id)},
            )
        assert r.status_code == 413
        assert r.json()["error"] == "payload_too_large"
    finally:
        settings.attachments_max_size_bytes = old_max


@pytest.mark.anyio
async def test_requests_without_valid_token_are_rejected(world: World):
    async with _make_async_client() as client:
        r = await client.get(f"/api/v1/attachments/task/{world.task_id}")
        assert r.status_code == 401
        assert r.json()["error"] == "unauthorized"

        r = await client.get(
            f"/api/v1/attachments/task/{world.task_id}",
            headers={"Authorization": "Bearer nope"},
        )
        assert r.status_code == 401


@pytest.mark.anyio
async def test_signed_file_route_rejects_bad_signature(world: World):
    _ = world
    async with _make_async_client() as client:
        r = await client.get(
            "/api/v1/attachments/files/tasks/1/attachments/x.txt",
            params={"expires": "9999999999", "signature": "deadbeef"},
        )
    assert r.status_code == 403
    assert r.json()["error"] == "forbidden"


@pytest.mark.anyio
async def test_bulk_delete_and_user_endpoints(world: World):
    async with _make_async_client() as client:
        ids: list[int] = []
        for name in ("a.txt", "b.csv"):
            content_type = "text/plain" if name.endswith(".txt") else "text/csv"
            r = await client.post(
                "/api/v1/attachments/upload",
                headers=_auth("member"),
                files={"file": (name, b"1,2,3", content_type)},
                data={"task_id": str(world.task_id)},
            )
            assert r.status_code == 201
            ids.append(cast(int, r.json()["attachment"]["id"]))

        r = await client.get("/api/v1/attachments/user/my-uploads", headers=_auth("member"))
        page = r.json()
        assert page["total"] == 2
        assert [a["id"] for a in page["items"]] == list(reversed(ids))

        r = await client.get("/api/v1/attachments/user/stats", headers=_auth("member"))
        assert r.json()["total_attachments"] == 2
        assert r.json()["document_count"] == 1

        r = await client.get(
            f"/api/v1/attachments/task/{world.task_id}/search",
            params={"query": "B.CSV"},
            headers=_auth("owner"),
        )
        assert [a["id"] for a in r.json()] == [ids[1]]

        r = await client.post(
            "/api/v1/attachments/bulk-delete", headers=_auth("member"), json=[*ids, 98765]
        )
        assert r.status_code == 200
        assert r.json() == {
            "total": 3,
            "successful": 2,
            "failed": 1,
            "message": "Deleted 2 of 3 attachments",
        }

        r = await client.get(
            f"/api/v1/attachments/task/{world.task_id}/stats", headers=_auth("owner")
        )
        assert r.json()["total_attachments"] == 0


@pytest.mark.anyio
async def test_my_uploads_rejects_oversized_pages(world: World):
    _ = world
    async with _make_async_client() as client:
        r = await client.get(
            "/api/v1/attachments/user/my-uploads",
            params={"size": 101},
            headers=_auth("member"),
        )
        assert r.status_code == 422
        assert r.json()["error"] == "validation_error"

        r = await client.get(
            "/api/v1/attachments/user/my-uploads",
            params={"size": 100},
            headers=_auth("member"),
        )
        assert r.status_code == 200
        assert r.json()["size"] == 100
