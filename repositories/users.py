"""User repository (relational only; users are not cached)."""

from __future__ import annotations

import uuid
from typing import Any, Mapping, Sequence

import sqlalchemy as sa

from infrastructure.db.tables import users
from repositories.base import BaseRepository, as_uuid, compose_update, ordered_by_ids
from schemas.models.user import User, UserCard

WRITABLE = ("nickname", "avatar")
COUNTERS = ("num_of_templates", "num_of_readmes")

_PUBLIC_COLUMNS = (
    users.c.id,
    users.c.nickname,
    users.c.login,
    users.c.email,
    users.c.avatar,
    users.c.time_of_register,
    users.c.num_of_templates,
    users.c.num_of_readmes,
)


class UserRepository(BaseRepository):
    name = "users"

    async def create(self, user: User) -> None:
        stmt = sa.insert(users).values(
            id=user.id,
            nickname=user.nickname,
            login=user.login,
            email=user.email,
            avatar=user.avatar,
            password=user.password,
            time_of_register=user.time_of_register,
            num_of_templates=user.num_of_templates,
            num_of_readmes=user.num_of_readmes,
        )
        await self._write(self._op("create"), stmt, "user")

    async def get(self, id: uuid.UUID | str) -> User:
        stmt = sa.select(*_PUBLIC_COLUMNS).where(users.c.id == as_uuid(id))
        return User.from_row(await self._fetch_required(self._op("get"), stmt, "user"))

    async def get_by_login(self, login: str) -> User:
        """Full row including the password hash, for login."""
        stmt = sa.select(users).where(users.c.login == login)
        return User.from_row(
            await self._fetch_required(self._op("get_by_login"), stmt, "user")
        )

    async def get_by_ids(self, ids: Sequence[uuid.UUID | str]) -> list[UserCard]:
        wanted = [as_uuid(i) for i in ids]
        if not wanted:
            return []
        stmt = sa.select(users.c.id, users.c.nickname, users.c.avatar).where(
            users.c.id.in_(wanted)
        )
        rows = await self._fetch_all(self._op("get_by_ids"), stmt, "user")
        return ordered_by_ids((UserCard.from_row(r) for r in rows), wanted)

    async def exists(self, login: str, email: str, nickname: str) -> bool:
        stmt = (
            sa.select(users.c.id)
            .where(
                sa.or_(
                    users.c.login == login,
                    users.c.email == email,
                    users.c.nickname == nickname,
                )
            )
            .limit(1)
        )
        return await self._fetch_one(self._op("exists"), stmt, "user") is not None

    async def update(self, fields: Mapping[str, Any], id: uuid.UUID | str) -> None:
        values = compose_update(users, fields, writable=WRITABLE, counters=COUNTERS)
        stmt = sa.update(users).where(users.c.id == as_uuid(id)).values(**values)
        await self._write_one(self._op("update"), stmt, "user")

    async def get_password(self, id: uuid.UUID | str) -> bytes:
        stmt = sa.select(users.c.password).where(users.c.id == as_uuid(id))
        row = await self._fetch_required(self._op("get_password"), stmt, "user")
        return row.password

    async def change_password(self, id: uuid.UUID | str, password: bytes) -> None:
        stmt = sa.update(users).where(users.c.id == as_uuid(id)).values(password=password)
        await self._write_one(self._op("change_password"), stmt, "user")

    async def get_avatar(self, id: uuid.UUID | str) -> str:
        stmt = sa.select(users.c.avatar).where(users.c.id == as_uuid(id))
        row = await self._fetch_required(self._op("get_avatar"), stmt, "user")
        return row.avatar

    async def delete(self, id: uuid.UUID | str) -> None:
        stmt = sa.delete(users).where(users.c.id == as_uuid(id))
        await self._write_one(self._op("delete"), stmt, "user")
