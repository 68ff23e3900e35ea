"""Async relational store: engine factory, ambient-connection access, error classification.

Repositories never open connections themselves. ``Storage.connection()``
hands out the connection of the ambient transaction when one is attached
(see ``infrastructure.db.transactor``) and otherwise a short-lived pooled
connection wrapped in its own transaction.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from config import StorageSettings
from infrastructure.db.tables import metadata
from infrastructure.db.transactor import current_transaction
from shared.logging import get_logger

log = get_logger(__name__)

UNIQUE_VIOLATION = "23505"
CHECK_VIOLATION = "23514"


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_unique_violation(exc: BaseException) -> bool:
    if not isinstance(exc, DBAPIError):
        return False
    if _sqlstate(exc) == UNIQUE_VIOLATION:
        return True
    return "UNIQUE constraint failed" in str(exc.orig)


def is_check_violation(exc: BaseException) -> bool:
    if not isinstance(exc, DBAPIError):
        return False
    if _sqlstate(exc) == CHECK_VIOLATION:
        return True
    return "CHECK constraint failed" in str(exc.orig)


def _enable_sqlite_transactions(engine: AsyncEngine) -> None:
    # Let SQLite honour BEGIN / SAVEPOINT and ON DELETE CASCADE the way Postgres does.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")


class Storage:
    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine

    @classmethod
    def from_settings(cls, settings: StorageSettings) -> "Storage":
        kwargs: dict[str, Any] = {"echo": settings.echo, "pool_pre_ping": True}
        if not settings.dsn.startswith("sqlite"):
            kwargs["pool_size"] = settings.pool_size
            kwargs["max_overflow"] = settings.max_overflow
        return cls.from_url(settings.dsn, **kwargs)

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "Storage":
        engine = create_async_engine(url, **kwargs)
        if engine.dialect.name == "sqlite":
            _enable_sqlite_transactions(engine)
        log.info("storage_engine_created", dialect=engine.dialect.name)
        return cls(engine)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[AsyncConnection]:
        tx = current_transaction()
        if tx is not None:
            yield tx.connection
            return
        async with self.engine.begin() as conn:
            yield conn

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        log.info("storage_schema_ready")

    async def ping(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(sa.text("SELECT 1"))

    async def dispose(self) -> None:
        await self.engine.dispose()
