"""Widget repository: catalog rows with counter-only updates, cache and search."""

from __future__ import annotations

import uuid
from typing import Any, Mapping, Optional, Sequence

import sqlalchemy as sa
from elasticsearch import ApiError, TransportError

from errors import InvalidValuesError, StorageError
from infrastructure.cache.aggregate_cache import AggregateCache
from infrastructure.db.storage import Storage
from infrastructure.db.tables import favorite_widgets, widgets
from infrastructure.search.elastic import SearchIndex
from repositories.base import as_uuid, compose_update, ordered_by_ids, page_offset
from repositories.cached import CachedRepository
from schemas.models.widget import Widget
from shared.logging import get_logger

log = get_logger(__name__)

COUNTERS = ("likes", "num_of_users")
SORTABLE = ("likes", "num_of_users")


def search_document(widget: Widget) -> dict[str, Any]:
    return {
        "id": str(widget.id),
        "title": widget.title,
        "description": widget.description,
        "type": widget.type,
        "tags": widget.tags,
        "likes": widget.likes,
        "num_of_users": widget.num_of_users,
    }


def search_request(
    text: str,
    *,
    types: Sequence[str] = (),
    tags: Sequence[str] = (),
    sort_field: Optional[str] = None,
    sort_direction: str = "desc",
) -> dict[str, Any]:
    """Build query / post_filter / sort for a widget search."""
    text = text.strip()
    if text:
        query: dict[str, Any] = {
            "multi_match": {
                "query": text,
                "fields": ["title^3", "type^2", "description"],
                "fuzziness": "AUTO",
            }
        }
    else:
        query = {"match_all": {}}

    filters: list[dict[str, Any]] = [{"exists": {"field": f"tags.{tag}"}} for tag in tags]
    if types:
        filters.append({"terms": {"type.keyword": list(types)}})

    request: dict[str, Any] = {"query": query}
    if filters:
        request["post_filter"] = {"bool": {"filter": filters}}
    if sort_field:
        if sort_field not in SORTABLE:
            raise InvalidValuesError(f"cannot sort widgets by {sort_field}", field="sort")
        order = "asc" if sort_direction.lower() == "asc" else "desc"
        request["sort"] = [{sort_field: {"order": order}}, {"_score": {"order": "desc"}}]
    return request


class WidgetRepository(CachedRepository[Widget]):
    name = "widgets"
    model = Widget

    def __init__(
        self,
        storage: Storage,
        cache: AggregateCache,
        search: SearchIndex,
        index: str = "widgets",
        *,
        popular_threshold: int = 100,
        popular_ttl_seconds: int = 48 * 60 * 60,
    ) -> None:
        super().__init__(storage, cache)
        self._search = search
        self.index = index
        self.popular_threshold = popular_threshold
        self.popular_ttl_seconds = popular_ttl_seconds

    def _ttl_for(self, item: Widget) -> Optional[int]:
        # widely used widgets stay cached longer
        if item.num_of_users >= self.popular_threshold:
            return self.popular_ttl_seconds
        return None

    async def _load(self, id: uuid.UUID) -> Widget:
        stmt = sa.select(widgets).where(widgets.c.id == id)
        return Widget.from_row(await self._fetch_required(self._op("get"), stmt, "widget"))

    async def create(self, widget: Widget) -> None:
        """Catalog seeding only; widgets are not created through the API."""
        stmt = sa.insert(widgets).values(**widget.model_dump())
        await self._write(self._op("create"), stmt, "widget")

    async def get(self, id: uuid.UUID | str) -> Widget:
        return await self._read_through(as_uuid(id))

    async def get_by_ids(self, ids: Sequence[uuid.UUID | str]) -> list[Widget]:
        wanted = [as_uuid(i) for i in ids]
        if not wanted:
            return []
        stmt = sa.select(widgets).where(widgets.c.id.in_(wanted))
        rows = await self._fetch_all(self._op("get_by_ids"), stmt, "widget")
        return ordered_by_ids((Widget.from_row(r) for r in rows), wanted)

    async def fetch(self, amount: int, page: int) -> list[Widget]:
        stmt = (
            sa.select(widgets)
            .order_by(widgets.c.likes.desc(), widgets.c.id)
            .offset(page_offset(amount, page))
            .limit(amount)
        )
        rows = await self._fetch_all(self._op("fetch"), stmt, "widget")
        return [Widget.from_row(r) for r in rows]

    async def update(self, fields: Mapping[str, Any], id: uuid.UUID | str) -> Widget:
        """Counter-only update, then the cache entry is rewritten under its current TTL."""
        widget_id = as_uuid(id)
        values = compose_update(widgets, fields, counters=COUNTERS)
        stmt = sa.update(widgets).where(widgets.c.id == widget_id).values(**values)
        await self._write_one(self._op("update"), stmt, "widget")
        return await self._refresh(widget_id)

    async def like(self, id: uuid.UUID | str, user_id: uuid.UUID | str) -> bool:
        stmt = sa.insert(favorite_widgets).values(
            widget_id=as_uuid(id), user_id=as_uuid(user_id, field="user_id")
        )
        return await self._insert_once(self._op("like"), stmt, "favorite")

    async def dislike(self, id: uuid.UUID | str, user_id: uuid.UUID | str) -> bool:
        stmt = sa.delete(favorite_widgets).where(
            favorite_widgets.c.widget_id == as_uuid(id),
            favorite_widgets.c.user_id == as_uuid(user_id, field="user_id"),
        )
        return await self._write(self._op("dislike"), stmt, "favorite") > 0

    async def fetch_favorite(
        self, user_id: uuid.UUID | str, amount: int, page: int
    ) -> list[Widget]:
        stmt = (
            sa.select(widgets)
            .join(favorite_widgets, favorite_widgets.c.widget_id == widgets.c.id)
            .where(favorite_widgets.c.user_id == as_uuid(user_id, field="user_id"))
            .order_by(widgets.c.likes.desc(), widgets.c.id)
            .offset(page_offset(amount, page))
            .limit(amount)
        )
        rows = await self._fetch_all(self._op("fetch_favorite"), stmt, "widget")
        return [Widget.from_row(r) for r in rows]

    async def liked_by(self, user_id: uuid.UUID | str) -> list[uuid.UUID]:
        stmt = (
            sa.select(favorite_widgets.c.widget_id)
            .where(favorite_widgets.c.user_id == as_uuid(user_id, field="user_id"))
            .order_by(favorite_widgets.c.widget_id)
        )
        rows = await self._fetch_all(self._op("liked_by"), stmt, "favorite")
        return [row.widget_id for row in rows]

    async def search(
        self,
        query: str,
        amount: int,
        page: int,
        *,
        types: Sequence[str] = (),
        tags: Sequence[str] = (),
        sort_field: Optional[str] = None,
        sort_direction: str = "desc",
    ) -> list[Widget]:
        op = self._op("search")
        request = search_request(
            query, types=types, tags=tags, sort_field=sort_field, sort_direction=sort_direction
        )
        try:
            ids = await self._search.search_ids(
                self.index,
                request["query"],
                offset=page_offset(amount, page),
                size=amount,
                sort=request.get("sort"),
                post_filter=request.get("post_filter"),
            )
        except (ApiError, TransportError) as exc:
            raise StorageError(op, exc) from exc
        return await self.get_by_ids(ids)

    async def bulk_index(self, page_size: int = 500) -> int:
        """Upsert every widget into the search index, paging through the store."""
        op = self._op("bulk_index")
        indexed = 0
        last_id: Optional[uuid.UUID] = None
        while True:
            stmt = sa.select(widgets).order_by(widgets.c.id).limit(page_size)
            if last_id is not None:
                stmt = stmt.where(widgets.c.id > last_id)
            rows = await self._fetch_all(op, stmt, "widget")
            if not rows:
                break
            batch = [Widget.from_row(r) for r in rows]
            try:
                indexed += await self._search.bulk_upsert(
                    self.index, (search_document(w) for w in batch)
                )
            except (ApiError, TransportError) as exc:
                raise StorageError(op, exc) from exc
            last_id = batch[-1].id
            if len(rows) < page_size:
                break
        log.info("search_bulk_indexed", index=self.index, documents=indexed)
        return indexed
