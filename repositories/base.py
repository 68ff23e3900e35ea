"""
Shared repository plumbing.

Every repository talks to the relational store through ``Storage.connection()``
(ambient transaction when attached, pooled connection otherwise) and maps
store exceptions the same way:

- unique violation          → AlreadyExistsError
- zero rows on update/delete → NotFoundError
- anything else             → StorageError tagged with the operation name
"""

from __future__ import annotations

import uuid
from typing import Any, Iterable, Mapping, Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from errors import (
    AlreadyExistsError,
    AppError,
    InvalidFieldsError,
    InvalidValuesError,
    NotFoundError,
    StorageError,
)
from infrastructure.db.storage import Storage, is_unique_violation

INCREMENT = "+"
DECREMENT = "-"


def as_uuid(value: uuid.UUID | str, *, field: str = "id") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise InvalidValuesError(f"{field} is not a valid uuid", field=field) from None


def page_offset(amount: int, page: int) -> int:
    """1-based page → row offset."""
    if amount < 1 or page < 1:
        raise InvalidValuesError("amount and page must be >= 1")
    return amount * (page - 1)


def compose_update(
    table: sa.Table,
    fields: Mapping[str, Any],
    *,
    writable: Sequence[str] = (),
    counters: Sequence[str] = (),
) -> dict[str, Any]:
    """Validate *fields* against the whitelist and build SET values.

    Columns come out in table order regardless of the mapping's order.
    Counter columns take ``"+"`` / ``"-"`` and never drop below zero.
    """
    if not fields:
        raise InvalidFieldsError("nothing to update")
    allowed = set(writable) | set(counters)
    unknown = sorted(set(fields) - allowed)
    if unknown:
        raise InvalidFieldsError(
            f"fields not allowed: {', '.join(unknown)}", details={"fields": unknown}
        )

    values: dict[str, Any] = {}
    for column in table.columns:
        name = column.name
        if name not in fields:
            continue
        value = fields[name]
        if name in counters:
            if value == INCREMENT:
                values[name] = column + 1
            elif value == DECREMENT:
                values[name] = sa.case((column > 0, column - 1), else_=0)
            else:
                raise InvalidValuesError(
                    f"counter {name} accepts only '+' or '-'", field=name
                )
        else:
            values[name] = value
    return values


class BaseRepository:
    """Statement helpers that consume results before the connection is released."""

    name: str = "repository"

    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    def _op(self, action: str) -> str:
        return f"{self.name}.{action}"

    def _map_error(self, op: str, exc: SQLAlchemyError, what: str) -> AppError:
        if is_unique_violation(exc):
            return AlreadyExistsError(f"{what} already exists")
        return StorageError(op, exc)

    async def _fetch_one(self, op: str, stmt: sa.Executable, what: str) -> Optional[sa.Row]:
        async with self._storage.connection() as conn:
            try:
                result = await conn.execute(stmt)
                return result.first()
            except SQLAlchemyError as exc:
                raise self._map_error(op, exc, what) from exc

    async def _fetch_required(self, op: str, stmt: sa.Executable, what: str) -> sa.Row:
        row = await self._fetch_one(op, stmt, what)
        if row is None:
            raise NotFoundError(f"{what} not found")
        return row

    async def _fetch_all(self, op: str, stmt: sa.Executable, what: str) -> list[sa.Row]:
        async with self._storage.connection() as conn:
            try:
                result = await conn.execute(stmt)
                return list(result.all())
            except SQLAlchemyError as exc:
                raise self._map_error(op, exc, what) from exc

    async def _write(self, op: str, stmt: sa.Executable, what: str) -> int:
        """Run an INSERT/UPDATE/DELETE and return the affected row count."""
        async with self._storage.connection() as conn:
            try:
                result = await conn.execute(stmt)
                return result.rowcount
            except SQLAlchemyError as exc:
                raise self._map_error(op, exc, what) from exc

    async def _write_one(self, op: str, stmt: sa.Executable, what: str) -> None:
        if await self._write(op, stmt, what) == 0:
            raise NotFoundError(f"{what} not found")

    async def _insert_once(self, op: str, stmt: sa.Executable, what: str) -> bool:
        """INSERT inside a savepoint; False when the row already exists.

        The savepoint keeps an enclosing transaction usable after the
        unique violation.
        """
        async with self._storage.connection() as conn:
            try:
                async with conn.begin_nested():
                    await conn.execute(stmt)
            except DBAPIError as exc:
                if is_unique_violation(exc):
                    return False
                raise StorageError(op, exc) from exc
            except SQLAlchemyError as exc:
                raise StorageError(op, exc) from exc
        return True


def ordered_by_ids(items: Iterable[Any], ids: Sequence[uuid.UUID]) -> list[Any]:
    """Reorder loaded aggregates to follow *ids*, skipping ones not found."""
    by_id = {item.id: item for item in items}
    return [by_id[i] for i in ids if i in by_id]
