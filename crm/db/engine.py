"""Async SQLAlchemy engine and session factory.

With DATABASE_URL set, this module builds an asyncpg engine and a
session factory; without it, both are None and the service runs on the
in-memory repositories.

One request is one session is one transaction.  Row locks taken by a
role change, the transaction-local ``app.current_user_id`` read by the
RLS policies and the audit SAVEPOINTs all end with the request.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from crm.core.config import SETTINGS

logger = logging.getLogger(__name__)

APPLICATION_NAME = "crm-tenancy"


class Base(DeclarativeBase):
    """Declarative base for crm/db/tables.py."""


def _build_engine(url: str) -> AsyncEngine:
    return create_async_engine(
        url,
        echo=SETTINGS.is_dev,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        # Shows up in pg_stat_activity next to lock waits.
        connect_args={"server_settings": {"application_name": APPLICATION_NAME}},
    )


engine: AsyncEngine | None = (
    _build_engine(SETTINGS.database_url) if SETTINGS.database_url else None
)
async_session_factory: async_sessionmaker[AsyncSession] | None = (
    async_sessionmaker(engine, expire_on_commit=False) if engine is not None else None
)


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Yield a session whose transaction commits on success, rolls back on error."""
    if async_session_factory is None:
        raise RuntimeError("DATABASE_URL is not configured")
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        await session.commit()


@asynccontextmanager
async def lifespan_db():
    if engine is None:
        logger.info("No DATABASE_URL configured, using in-memory repositories")
        yield
        return

    logger.info("Database engine ready: %s", engine.url.render_as_string())
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Database engine disposed")
