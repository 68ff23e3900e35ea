"""Readme repository (relational only)."""

from __future__ import annotations

import uuid
from typing import Any, Mapping

import sqlalchemy as sa

from infrastructure.db.tables import readmes
from repositories.base import BaseRepository, as_uuid, compose_update, page_offset
from schemas.models.readme import Readme

WRITABLE = (
    "title",
    "image",
    "text",
    "links",
    "widgets",
    "render_order",
    "last_update_time",
)


class ReadmeRepository(BaseRepository):
    name = "readmes"

    async def create(self, readme: Readme) -> None:
        stmt = sa.insert(readmes).values(**readme.model_dump())
        await self._write(self._op("create"), stmt, "readme")

    async def get(self, id: uuid.UUID | str) -> Readme:
        stmt = sa.select(readmes).where(readmes.c.id == as_uuid(id))
        return Readme.from_row(await self._fetch_required(self._op("get"), stmt, "readme"))

    async def get_image(self, id: uuid.UUID | str) -> str:
        stmt = sa.select(readmes.c.image).where(readmes.c.id == as_uuid(id))
        row = await self._fetch_required(self._op("get_image"), stmt, "readme")
        return row.image

    async def fetch_by_owner(
        self, owner_id: uuid.UUID | str, amount: int, page: int
    ) -> list[Readme]:
        stmt = (
            sa.select(readmes)
            .where(readmes.c.owner_id == as_uuid(owner_id, field="owner_id"))
            .order_by(readmes.c.last_update_time.desc(), readmes.c.id)
            .offset(page_offset(amount, page))
            .limit(amount)
        )
        rows = await self._fetch_all(self._op("fetch_by_owner"), stmt, "readme")
        return [Readme.from_row(r) for r in rows]

    async def update(self, fields: Mapping[str, Any], id: uuid.UUID | str) -> None:
        values = compose_update(readmes, fields, writable=WRITABLE)
        stmt = sa.update(readmes).where(readmes.c.id == as_uuid(id)).values(**values)
        await self._write_one(self._op("update"), stmt, "readme")

    async def delete(self, id: uuid.UUID | str) -> None:
        stmt = sa.delete(readmes).where(readmes.c.id == as_uuid(id))
        await self._write_one(self._op("delete"), stmt, "readme")
