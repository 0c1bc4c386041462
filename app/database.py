"""Database utilities for the Cinetrack service."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import MetaData, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

WATCHLIST_UNIQUE_INDEX = "uq_watchlist_user_catalog"


class Base(DeclarativeBase):
    """Declarative base with consistent naming conventions."""

    metadata = MetaData()


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    """SQLite only honours ``ON DELETE CASCADE`` once foreign keys are enabled."""

    module = type(dbapi_connection).__module__
    if "sqlite" not in module:
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Thin wrapper managing the SQLAlchemy async engine and sessions."""

    def __init__(self, database_url: str):
        self._engine: AsyncEngine = create_async_engine(database_url, future=True)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self._engine, expire_on_commit=False
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_all(self) -> None:
        """Create database tables if they do not yet exist."""

        # Imported for its side effect of registering the mapped tables.
        from . import db_models  # noqa: F401

        async with self._engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
            await connection.run_sync(self._apply_schema_migrations)

    @staticmethod
    def _apply_schema_migrations(sync_connection) -> None:
        """Bring tables created by older releases up to the current schema."""

        inspector = inspect(sync_connection)
        table_names = inspector.get_table_names()
        if "watchlist" not in table_names:
            return

        unique_names = {
            constraint.get("name")
            for constraint in inspector.get_unique_constraints("watchlist")
        }
        unique_names.update(
            index.get("name")
            for index in inspector.get_indexes("watchlist")
            if index.get("unique")
        )
        if WATCHLIST_UNIQUE_INDEX in unique_names:
            return

        # Older databases relied on the handler's duplicate check alone; drop
        # any duplicates it let through before the index can be created.
        sync_connection.execute(
            text(
                "DELETE FROM watchlist WHERE id NOT IN ("
                "SELECT MIN(id) FROM watchlist GROUP BY user_id, catalog_id)"
            )
        )
        sync_connection.execute(
            text(
                f"CREATE UNIQUE INDEX {WATCHLIST_UNIQUE_INDEX} "
                "ON watchlist (user_id, catalog_id)"
            )
        )

    async def dispose(self) -> None:
        """Dispose of the underlying database engine."""

        await self._engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Provide a transactional scope around a series of operations."""

        async with self.session_factory() as session:
            yield session
