"""Periodic attachment upkeep: presigned URL refresh and soft-delete purge."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from sqlmodel.ext.asyncio.session import AsyncSession

from taskfiles_backend.config import settings
from taskfiles_backend.db import session_scope
from taskfiles_backend.integrations.storage.object_storage import ObjectStorage, get_object_storage
from taskfiles_backend.models import Attachment, utc_now
from taskfiles_backend.repositories import attachments_repo
from taskfiles_backend.services.attachments_service import refresh_attachment_url

logger = logging.getLogger(__name__)


async def refresh_expiring_urls(
    session: AsyncSession, storage: ObjectStorage, *, now: datetime | None = None
) -> int:
    current = now or utc_now()
    threshold = current + timedelta(hours=settings.url_refresh_window_hours)
    expiring = await attachments_repo.list_urls_expiring_before(session, threshold=threshold)

    # Work from ids; a rollback expires every loaded instance.
    targets = [(int(a.id), a.storage_key) for a in expiring if a.id is not None]

    refreshed = 0
    for attachment_id, storage_key in targets:
        try:
            attachment = await session.get(Attachment, attachment_id)
            if attachment is None or attachment.is_deleted:
                continue
            _ = await refresh_attachment_url(session, storage, attachment, now=current)
            refreshed += 1
            logger.debug("refreshed url for attachment key=%s", storage_key)
        except Exception:
            logger.error("failed to refresh url for attachment key=%s", storage_key, exc_info=True)
            await session.rollback()

    if expiring:
        logger.info("refreshed urls for %s of %s attachments", refreshed, len(expiring))
    return refreshed


async def purge_deleted_attachments(session: AsyncSession, *, now: datetime | None = None) -> int:
    cutoff = (now or utc_now()) - timedelta(days=settings.deleted_retention_days)
    purged = await attachments_repo.purge_deleted_before(session, cutoff=cutoff)
    await session.commit()
    logger.info("purged %s deleted attachments older than %s", purged, cutoff.isoformat())
    return purged


async def run_url_refresh_job() -> int:
    async with session_scope() as session:
        return await refresh_expiring_urls(session, get_object_storage())


async def run_purge_job() -> int:
    async with session_scope() as session:
        return await purge_deleted_attachments(session)


async def run_periodically(
    name: str, interval_seconds: float, job: Callable[[], Awaitable[object]]
) -> None:
    """Run now, then once per interval until cancelled. A failed run is logged and the loop goes on."""
    while True:
        try:
            _ = await job()
        except Exception:
            logger.error("maintenance job failed name=%s", name, exc_info=True)
        await asyncio.sleep(interval_seconds)


def start_maintenance_tasks() -> list[asyncio.Task[None]]:
    tasks = [
        asyncio.create_task(
            run_periodically(
                "url_refresh", settings.url_refresh_interval_seconds, run_url_refresh_job
            )
        ),
        asyncio.create_task(
            run_periodically("deleted_purge", settings.purge_interval_seconds, run_purge_job)
        ),
    ]
    logger.info("maintenance tasks started")
    return tasks


async def stop_maintenance_tasks(tasks: list[asyncio.Task[None]]) -> None:
    for task in tasks:
        _ = task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
    logger.info("maintenance tasks stopped")
