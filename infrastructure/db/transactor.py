"""Transactor: run a block inside one relational transaction.

The open transaction is attached to the current task context through a
ContextVar, so repositories pick it up without it being threaded through
every call. Nested ``run()`` calls join the outer transaction.

Commit and rollback run shielded from the caller's cancellation and are
bounded by their own short timeout, so a cancelled request still releases
its connection.
"""

from __future__ import annotations

import asyncio
from contextvars import ContextVar
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncConnection

from shared.logging import get_logger

if TYPE_CHECKING:
    from infrastructure.db.storage import Storage

log = get_logger(__name__)

T = TypeVar("T")
Hook = Callable[[], Awaitable[None]]

FINALIZE_TIMEOUT_SECONDS = 5.0


class Transaction:
    """An open transaction plus the hooks to run once it is resolved."""

    def __init__(self, connection: AsyncConnection) -> None:
        self.connection = connection
        self._on_rollback: list[Hook] = []
        self._on_commit: list[Hook] = []

    def on_rollback(self, hook: Hook) -> None:
        self._on_rollback.append(hook)

    def on_commit(self, hook: Hook) -> None:
        self._on_commit.append(hook)

    async def _run_hooks(self, hooks: list[Hook], stage: str) -> None:
        for hook in hooks:
            try:
                await hook()
            except Exception as e:
                log.warning(
                    "transaction_hook_failed",
                    stage=stage,
                    error=str(e),
                    error_type=type(e).__name__,
                )


_current: ContextVar[Optional[Transaction]] = ContextVar(
    "readmeow_transaction", default=None
)


def current_transaction() -> Optional[Transaction]:
    return _current.get()


class Transactor:
    def __init__(
        self, storage: "Storage", finalize_timeout: float = FINALIZE_TIMEOUT_SECONDS
    ) -> None:
        self._storage = storage
        self._finalize_timeout = finalize_timeout

    async def run(self, block: Callable[[], Awaitable[T]]) -> T:
        """Run *block* in a transaction: commit on return, roll back on any exception."""
        if _current.get() is not None:
            return await block()

        connection = await self._storage.engine.connect()
        try:
            await connection.begin()
        except BaseException:
            await self._finalize(self._close(connection))
            raise

        tx = Transaction(connection)
        token = _current.set(tx)
        try:
            result = await block()
        except BaseException:
            _current.reset(token)
            await self._finalize(self._rollback(tx))
            raise
        _current.reset(token)
        await self._finalize(self._commit(tx))
        return result

    async def _finalize(self, step: Awaitable[None]) -> None:
        await asyncio.shield(asyncio.wait_for(step, timeout=self._finalize_timeout))

    async def _commit(self, tx: Transaction) -> None:
        try:
            await tx.connection.commit()
        except BaseException:
            log.error("transaction_commit_failed")
            await self._rollback(tx)
            raise
        await self._close(tx.connection)
        await tx._run_hooks(tx._on_commit, "commit")

    async def _rollback(self, tx: Transaction) -> None:
        try:
            await tx.connection.rollback()
        finally:
            await self._close(tx.connection)
        await tx._run_hooks(tx._on_rollback, "rollback")

    @staticmethod
    async def _close(connection: AsyncConnection) -> None:
        await connection.close()
