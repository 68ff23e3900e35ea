"""Pending-registration repository.

The attempt budget is enforced by the ``attempts >= 0`` check constraint:
a wrong code costs one atomic ``attempts = attempts - 1``; when that would
go negative the statement fails, the row is deleted and the caller learns
the budget is exhausted. There is no read-then-write of the counter.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from errors import NotFoundError, StorageError
from infrastructure.db.storage import is_check_violation
from infrastructure.db.tables import verifications
from repositories.base import BaseRepository
from schemas.models.verification import CodeCheck, Credentials, PendingVerification
from shared.datetime_utils import ensure_utc, utc_now


class VerificationRepository(BaseRepository):
    name = "verifications"

    async def add(self, pending: PendingVerification) -> bool:
        """Insert a pending row; False when one already exists for the email."""
        stmt = sa.insert(verifications).values(
            email=pending.email,
            login=pending.login,
            nickname=pending.nickname,
            password=pending.password,
            code=pending.code,
            expired_time=pending.expired_time,
            attempts=pending.attempts,
        )
        return await self._insert_once(self._op("add"), stmt, "verification")

    async def resend(
        self,
        email: str,
        code: bytes,
        expired_time: datetime,
        attempts: int,
        *,
        login: Optional[str] = None,
        nickname: Optional[str] = None,
        password: Optional[bytes] = None,
    ) -> None:
        """Overwrite code, expiry and budget (and optionally the pending credentials)."""
        values: dict = {"code": code, "expired_time": expired_time, "attempts": attempts}
        if login is not None:
            values["login"] = login
        if nickname is not None:
            values["nickname"] = nickname
        if password is not None:
            values["password"] = password
        stmt = sa.update(verifications).where(verifications.c.email == email).values(**values)
        await self._write_one(self._op("resend"), stmt, "verification")

    async def check_code(self, email: str, code: bytes) -> CodeCheck:
        """Match *code* for *email* and settle the attempt budget.

        Raises NotFoundError when no pending row exists for the email.
        """
        op = self._op("check_code")
        match = sa.select(verifications.c.expired_time).where(
            verifications.c.email == email, verifications.c.code == code
        )
        row = await self._fetch_one(op, match, "verification")

        if row is not None:
            if ensure_utc(row.expired_time) <= utc_now():
                await self.delete(email)
                return CodeCheck.EXPIRED
            return CodeCheck.VALID

        decrement = (
            sa.update(verifications)
            .where(verifications.c.email == email)
            .values(attempts=verifications.c.attempts - 1)
        )
        async with self._storage.connection() as conn:
            try:
                async with conn.begin_nested():
                    result = await conn.execute(decrement)
            except DBAPIError as exc:
                if not is_check_violation(exc):
                    raise StorageError(op, exc) from exc
                try:
                    await conn.execute(
                        sa.delete(verifications).where(verifications.c.email == email)
                    )
                except SQLAlchemyError as delete_exc:
                    raise StorageError(op, delete_exc) from delete_exc
                return CodeCheck.EXHAUSTED
            except SQLAlchemyError as exc:
                raise StorageError(op, exc) from exc

        if result.rowcount == 0:
            raise NotFoundError("verification not found")
        return CodeCheck.INVALID

    async def get(self, email: str) -> PendingVerification:
        stmt = sa.select(verifications).where(verifications.c.email == email)
        return PendingVerification.from_row(
            await self._fetch_required(self._op("get"), stmt, "verification")
        )

    async def fetch_credentials(self, email: str) -> Credentials:
        stmt = sa.select(
            verifications.c.email,
            verifications.c.login,
            verifications.c.nickname,
            verifications.c.password,
        ).where(verifications.c.email == email)
        return Credentials.from_row(
            await self._fetch_required(self._op("fetch_credentials"), stmt, "verification")
        )

    async def delete(self, email: str) -> None:
        stmt = sa.delete(verifications).where(verifications.c.email == email)
        await self._write_one(self._op("delete"), stmt, "verification")

    async def delete_expired(self) -> int:
        stmt = sa.delete(verifications).where(verifications.c.expired_time <= utc_now())
        return await self._write(self._op("delete_expired"), stmt, "verification")
