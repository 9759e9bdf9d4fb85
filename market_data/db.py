"""
Market Data: Database helpers

Engine/session construction and dialect-aware INSERT ... ON CONFLICT.

Every pipeline write is an upsert on a natural key, so repeated or racing
runs converge on the same rows. PostgreSQL runs production; SQLite backs the
test suite. Both dialects expose the same on_conflict_do_* API.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from market_data.config import settings

logger = structlog.get_logger(__name__)


def create_db_engine(database_url: str | None = None) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """
    Create SQLAlchemy async engine and session factory.

    Returns:
        (engine, session_factory) tuple.
    """
    url = database_url or settings.DATABASE_URL
    kwargs: dict[str, Any] = {"echo": False, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        kwargs.update(pool_size=5, max_overflow=10)

    engine = create_async_engine(url, **kwargs)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    logger.info("database_engine_ready", dialect=engine.dialect.name)
    return engine, session_factory


def insert_for(session: AsyncSession, model: Any) -> Any:
    """INSERT construct with on_conflict support for the session's dialect."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)


async def upsert(
    session: AsyncSession,
    model: Any,
    values: dict[str, Any],
    conflict_columns: list[str],
    update_columns: list[str] | None = None,
    where: Any | None = None,
) -> Any:
    """
    Insert a row or update it in place on natural-key conflict.

    Args:
        session: Async DB session (not committed here).
        model: ORM class.
        values: Column values for the insert.
        conflict_columns: Columns of the unique constraint.
        update_columns: Columns overwritten on conflict. Defaults to every
            non-key column in values. An empty list means insert-or-ignore.
        where: Optional condition limiting which existing rows are updated.

    Returns:
        The execution result; rowcount is 0 when an insert-or-ignore hit
        an existing row.
    """
    if update_columns is None:
        update_columns = [k for k in values if k not in conflict_columns and k != "id"]

    stmt = insert_for(session, model).values(**values)
    if update_columns:
        stmt = stmt.on_conflict_do_update(
            index_elements=conflict_columns,
            set_={col: getattr(stmt.excluded, col) for col in update_columns},
            where=where,
        )
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=conflict_columns)

    return await session.execute(stmt)
