"""Template repository: relational rows, read-through cache, search index."""

from __future__ import annotations

import uuid
from typing import Any, Mapping, Optional, Sequence

import sqlalchemy as sa
from elasticsearch import ApiError, TransportError

from errors import InvalidValuesError, StorageError
from infrastructure.cache.aggregate_cache import AggregateCache
from infrastructure.db.storage import Storage
from infrastructure.db.tables import favorite_templates, templates
from infrastructure.search.elastic import SearchIndex
from repositories.base import as_uuid, compose_update, ordered_by_ids, page_offset
from repositories.cached import CachedRepository
from schemas.models.template import Template
from shared.logging import get_logger

log = get_logger(__name__)

WRITABLE = (
    "title",
    "image",
    "description",
    "text",
    "links",
    "widgets",
    "render_order",
    "is_public",
    "last_update_time",
)
COUNTERS = ("likes", "num_of_users")
SORTABLE = ("num_of_users", "likes", "create_time", "last_update_time")


def search_document(template: Template) -> dict[str, Any]:
    return {
        "id": str(template.id),
        "title": template.title,
        "description": template.description,
        "likes": template.likes,
        "num_of_users": template.num_of_users,
        "last_update_time": template.last_update_time.isoformat(),
        "is_public": template.is_public,
    }


def search_query(text: str) -> dict[str, Any]:
    text = text.strip()
    if text:
        must: dict[str, Any] = {
            "multi_match": {
                "query": text,
                "fields": ["title^2", "description"],
                "fuzziness": "AUTO",
            }
        }
    else:
        must = {"match_all": {}}
    return {"bool": {"must": [must], "filter": [{"term": {"is_public": True}}]}}


class TemplateRepository(CachedRepository[Template]):
    name = "templates"
    model = Template

    def __init__(
        self,
        storage: Storage,
        cache: AggregateCache,
        search: SearchIndex,
        index: str = "templates",
    ) -> None:
        super().__init__(storage, cache)
        self._search = search
        self.index = index

    async def _load(self, id: uuid.UUID) -> Template:
        stmt = sa.select(templates).where(templates.c.id == id)
        return Template.from_row(
            await self._fetch_required(self._op("get"), stmt, "template")
        )

    async def create(self, template: Template) -> None:
        stmt = sa.insert(templates).values(**template.model_dump())
        await self._write(self._op("create"), stmt, "template")

    async def get(self, id: uuid.UUID | str) -> Template:
        return await self._read_through(as_uuid(id))

    async def get_by_ids(self, ids: Sequence[uuid.UUID | str]) -> list[Template]:
        wanted = [as_uuid(i) for i in ids]
        if not wanted:
            return []
        stmt = sa.select(templates).where(templates.c.id.in_(wanted))
        rows = await self._fetch_all(self._op("get_by_ids"), stmt, "template")
        return ordered_by_ids((Template.from_row(r) for r in rows), wanted)

    async def _page(self, op: str, stmt: sa.Select, amount: int, page: int) -> list[Template]:
        stmt = stmt.offset(page_offset(amount, page)).limit(amount)
        rows = await self._fetch_all(self._op(op), stmt, "template")
        return [Template.from_row(r) for r in rows]

    async def fetch(self, amount: int, page: int) -> list[Template]:
        stmt = (
            sa.select(templates)
            .where(templates.c.is_public.is_(True))
            .order_by(templates.c.likes.desc(), templates.c.id)
        )
        return await self._page("fetch", stmt, amount, page)

    async def fetch_by_owner(
        self,
        owner_id: uuid.UUID | str,
        amount: int,
        page: int,
        public_only: bool = False,
    ) -> list[Template]:
        stmt = sa.select(templates).where(
            templates.c.owner_id == as_uuid(owner_id, field="owner_id")
        )
        if public_only:
            stmt = stmt.where(templates.c.is_public.is_(True))
        stmt = stmt.order_by(templates.c.last_update_time.desc(), templates.c.id)
        return await self._page("fetch_by_owner", stmt, amount, page)

    async def sort(
        self, amount: int, page: int, field: str, direction: str = "desc"
    ) -> list[Template]:
        if field not in SORTABLE:
            raise InvalidValuesError(f"cannot sort templates by {field}", field="field")
        column = templates.c[field]
        ordering = column.asc() if direction.lower() == "asc" else column.desc()
        stmt = (
            sa.select(templates)
            .where(templates.c.is_public.is_(True))
            .order_by(ordering, templates.c.id)
        )
        return await self._page("sort", stmt, amount, page)

    async def update(self, fields: Mapping[str, Any], id: uuid.UUID | str) -> Template:
        """Whitelisted update, then the cache entry is rewritten under its current TTL."""
        template_id = as_uuid(id)
        values = compose_update(templates, fields, writable=WRITABLE, counters=COUNTERS)
        stmt = sa.update(templates).where(templates.c.id == template_id).values(**values)
        await self._write_one(self._op("update"), stmt, "template")
        return await self._refresh(template_id)

    async def delete(self, id: uuid.UUID | str) -> None:
        template_id = as_uuid(id)
        stmt = sa.delete(templates).where(templates.c.id == template_id)
        await self._write_one(self._op("delete"), stmt, "template")
        await self._evict(template_id)

    async def like(self, id: uuid.UUID | str, user_id: uuid.UUID | str) -> bool:
        """Add to the user's favorites; False when it was already there."""
        stmt = sa.insert(favorite_templates).values(
            template_id=as_uuid(id), user_id=as_uuid(user_id, field="user_id")
        )
        return await self._insert_once(self._op("like"), stmt, "favorite")

    async def dislike(self, id: uuid.UUID | str, user_id: uuid.UUID | str) -> bool:
        """Remove from the user's favorites; False when it was not there."""
        stmt = sa.delete(favorite_templates).where(
            favorite_templates.c.template_id == as_uuid(id),
            favorite_templates.c.user_id == as_uuid(user_id, field="user_id"),
        )
        return await self._write(self._op("dislike"), stmt, "favorite") > 0

    async def fetch_favorite(
        self, user_id: uuid.UUID | str, amount: int, page: int
    ) -> list[Template]:
        stmt = (
            sa.select(templates)
            .join(favorite_templates, favorite_templates.c.template_id == templates.c.id)
            .where(favorite_templates.c.user_id == as_uuid(user_id, field="user_id"))
            .order_by(templates.c.likes.desc(), templates.c.id)
        )
        return await self._page("fetch_favorite", stmt, amount, page)

    async def liked_by(self, user_id: uuid.UUID | str) -> list[uuid.UUID]:
        stmt = (
            sa.select(favorite_templates.c.template_id)
            .where(favorite_templates.c.user_id == as_uuid(user_id, field="user_id"))
            .order_by(favorite_templates.c.template_id)
        )
        rows = await self._fetch_all(self._op("liked_by"), stmt, "favorite")
        return [row.template_id for row in rows]

    async def search(self, query: str, amount: int, page: int) -> list[Template]:
        op = self._op("search")
        try:
            ids = await self._search.search_ids(
                self.index,
                search_query(query),
                offset=page_offset(amount, page),
                size=amount,
            )
        except (ApiError, TransportError) as exc:
            raise StorageError(op, exc) from exc
        return await self.get_by_ids(ids)

    async def bulk_index(self, page_size: int = 500) -> int:
        """Upsert every template into the search index, paging through the store.

        Documents absent from the store are left in the index.
        """
        op = self._op("bulk_index")
        indexed = 0
        last_id: Optional[uuid.UUID] = None
        while True:
            stmt = sa.select(templates).order_by(templates.c.id).limit(page_size)
            if last_id is not None:
                stmt = stmt.where(templates.c.id > last_id)
            rows = await self._fetch_all(op, stmt, "template")
            if not rows:
                break
            batch = [Template.from_row(r) for r in rows]
            try:
                indexed += await self._search.bulk_upsert(
                    self.index, (search_document(t) for t in batch)
                )
            except (ApiError, TransportError) as exc:
                raise StorageError(op, exc) from exc
            last_id = batch[-1].id
            if len(rows) < page_size:
                break
        log.info("search_bulk_indexed", index=self.index, documents=indexed)
        return indexed
