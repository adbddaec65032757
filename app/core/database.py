"""Async SQLAlchemy 2.0 database setup and raw-SQL helpers.

The reporting schema is owned outside this service, so most queries are
hand-written SQL executed through ``text()`` with named bind parameters.
Array parameters are passed as Python lists and cast in SQL
(``CAST(:codes AS text[])``).
"""

from collections.abc import AsyncGenerator, Mapping
from functools import lru_cache
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import get_settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""

    pass


@lru_cache
def get_engine() -> AsyncEngine:
    """Create the process-wide async engine from settings."""
    settings = get_settings()
    engine: AsyncEngine = create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_pre_ping=True,
    )
    return engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Create async session maker bound to the shared engine."""
    return async_sessionmaker(
        get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions.

    Yields:
        AsyncSession: Database session that auto-commits on success.
    """
    session_maker = get_session_maker()
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def fetch_all(
    db: AsyncSession,
    sql: str,
    params: Mapping[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """Execute a SELECT and return every row as a dict.

    Args:
        db: Database session.
        sql: SQL text with ``:name`` placeholders.
        params: Bind parameters.

    Returns:
        List of rows keyed by column label.
    """
    result = await db.execute(text(sql), dict(params or {}))
    return [dict(row) for row in result.mappings().all()]


async def fetch_one(
    db: AsyncSession,
    sql: str,
    params: Mapping[str, Any] | None = None,
) -> dict[str, Any] | None:
    """Execute a SELECT and return the first row, or None."""
    result = await db.execute(text(sql), dict(params or {}))
    row = result.mappings().first()
    return dict(row) if row is not None else None


async def execute(
    db: AsyncSession,
    sql: str,
    params: Mapping[str, Any] | None = None,
) -> None:
    """Execute a statement that returns no rows (DDL, REFRESH, ...)."""
    await db.execute(text(sql), dict(params or {}))
