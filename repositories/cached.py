"""Cache-aside behaviour shared by the Template and Widget repositories."""

from __future__ import annotations

import uuid
from typing import Generic, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError

from infrastructure.cache.aggregate_cache import AggregateCache, CacheError
from infrastructure.db.storage import Storage
from infrastructure.db.transactor import current_transaction
from repositories.base import BaseRepository
from schemas.models.base import RowModel
from shared.logging import get_logger

log = get_logger(__name__)

M = TypeVar("M", bound=RowModel)


class CachedRepository(BaseRepository, Generic[M]):
    model: type[M]

    def __init__(self, storage: Storage, cache: AggregateCache) -> None:
        super().__init__(storage)
        self._cache = cache

    async def _load(self, id: uuid.UUID) -> M:
        raise NotImplementedError

    def _ttl_for(self, item: M) -> Optional[int]:
        return None

    def _forget_on_rollback(self, key: str) -> None:
        tx = current_transaction()
        if tx is not None:
            tx.on_rollback(lambda: self._cache.delete(key))

    async def _read_through(self, id: uuid.UUID) -> M:
        key = str(id)
        raw = await self._cache.get(key)
        if raw is not None:
            try:
                return self.model.from_cache(raw)
            except (PydanticValidationError, ValueError):
                log.warning("cache_entry_corrupt", key=key, repository=self.name)
                await self._cache.delete(key)

        item = await self._load(id)
        self._forget_on_rollback(key)
        try:
            await self._cache.set(key, item.to_cache(), self._ttl_for(item))
        except CacheError as e:
            log.warning("cache_backfill_failed", key=key, error=str(e))
        return item

    async def _refresh(self, id: uuid.UUID) -> M:
        """Reload *id* from the store and rewrite its cache entry under the same TTL.

        Inside a transaction a cache failure propagates so the write aborts;
        outside one it is only logged and the next read back-fills.
        """
        item = await self._load(id)
        key = str(id)
        in_tx = current_transaction() is not None
        self._forget_on_rollback(key)
        try:
            await self._cache.refresh_keep_ttl(key, item.to_cache())
        except CacheError as e:
            if in_tx:
                raise
            log.warning("cache_refresh_failed", key=key, error=str(e))
        return item

    async def _evict(self, id: uuid.UUID) -> None:
        await self._cache.delete(str(id))
