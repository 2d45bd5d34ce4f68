from __future__ import annotations

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from taskfiles_backend.config import settings
from taskfiles_backend.db_urls import normalize_database_url_for_async


@lru_cache(maxsize=4)
def get_engine() -> AsyncEngine:
    # Rebuilt after tests/deployments override settings.database_url.
    url = normalize_database_url_for_async(settings.database_url)
    return create_async_engine(url, echo=False, pool_pre_ping=True)


def reset_engine_cache() -> None:
    get_engine.cache_clear()


def dispose_engine_cache() -> None:
    if get_engine.cache_info().currsize:
        get_engine().sync_engine.dispose()
    get_engine.cache_clear()


async def init_db() -> None:
    """Create missing tables for local runs and tests; deployments run Alembic."""
    from taskfiles_backend import models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    # expire_on_commit=False: services keep reading rows after commit.
    maker = async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        yield session


async def get_session() -> AsyncIterator[AsyncSession]:
    async with session_scope() as session:
        yield session
