"""Full-text search adapter over Elasticsearch.

The index is never authoritative: searches return ids only and callers
load the aggregates from the cache / relational store. Documents are
upserted by the scheduled bulk refresh, keyed by aggregate id.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from elasticsearch import AsyncElasticsearch
from elasticsearch.helpers import async_bulk

from config import SearchSettings
from shared.logging import get_logger

log = get_logger(__name__)


def create_search_client(settings: SearchSettings) -> AsyncElasticsearch:
    basic_auth = (settings.user, settings.password) if settings.user else None
    return AsyncElasticsearch(
        settings.host,
        basic_auth=basic_auth,
        request_timeout=settings.timeout_seconds,
    )


class SearchIndex:
    def __init__(self, client: AsyncElasticsearch) -> None:
        self._client = client

    async def search_ids(
        self,
        index: str,
        query: Mapping[str, Any],
        *,
        offset: int,
        size: int,
        sort: Optional[list[Mapping[str, Any]]] = None,
        post_filter: Optional[Mapping[str, Any]] = None,
    ) -> list[str]:
        kwargs: dict[str, Any] = {}
        if sort:
            kwargs["sort"] = sort
        if post_filter:
            kwargs["post_filter"] = post_filter
        resp = await self._client.search(
            index=index,
            query=query,
            from_=offset,
            size=size,
            source=False,
            **kwargs,
        )
        return [hit["_id"] for hit in resp["hits"]["hits"]]

    async def bulk_upsert(self, index: str, docs: Iterable[Mapping[str, Any]]) -> int:
        """Index *docs* (each carrying an ``id``) and return how many succeeded."""
        actions = (
            {"_op_type": "index", "_index": index, "_id": str(doc["id"]), "_source": dict(doc)}
            for doc in docs
        )
        success, errors = await async_bulk(self._client, actions, raise_on_error=False)
        if errors:
            log.warning("search_bulk_partial_failure", index=index, failed=len(errors))
        return success

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def aclose(self) -> None:
        await self._client.close()
