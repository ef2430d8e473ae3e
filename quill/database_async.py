"""Async engine for fastapi-users and refresh-token rotation."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from quill.config import settings
from quill.database import enable_sqlite_foreign_keys

async_engine = create_async_engine(
    settings.resolved_async_database_url,
    echo=settings.db_echo,
    pool_pre_ping=True,
)
enable_sqlite_foreign_keys(async_engine.sync_engine)

# Rows stay readable after commit; the token service returns them to routers.
AsyncSessionLocal = async_sessionmaker(bind=async_engine, expire_on_commit=False)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


async def dispose_async_engine() -> None:
    await async_engine.dispose()
