"""
Database engine and session factory.

The sync engine never shares a session between concurrent record workers:
SqlIntegrationStore opens a short-lived session from ``async_session`` per
operation, so the pool has to cover ``sync_concurrency`` workers per running sync.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from hospient.config import Settings, get_settings


def build_engine(settings: Settings | None = None) -> AsyncEngine:
    settings = settings or get_settings()
    return create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
    )


engine = build_engine()

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
