"""Aggregate cache over Redis.

Values are the JSON projection of an aggregate row, keyed by the raw
aggregate id. Reads are read-through (the repository back-fills on miss);
writes after an update keep the key's remaining TTL.

The TTL-preserving write runs as one Lua script (PTTL then SET) so no
other client can slip between reading the TTL and writing the value.
"""

from __future__ import annotations

from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from errors import InternalError
from shared.logging import get_logger

log = get_logger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60

# KEYS[1] = key, ARGV[1] = value, ARGV[2] = default ttl (ms) for a missing key.
# PTTL 0 means the key is expiring right now; SET PX rejects 0.
REFRESH_KEEP_TTL = """
local ttl = redis.call('PTTL', KEYS[1])
if ttl == -1 then
    redis.call('SET', KEYS[1], ARGV[1])
elseif ttl <= 0 then
    redis.call('SET', KEYS[1], ARGV[1], 'PX', ARGV[2])
else
    redis.call('SET', KEYS[1], ARGV[1], 'PX', ttl)
end
return ttl
"""


class CacheError(InternalError):
    """A cache write failed; callers decide whether it is fatal."""

    error_code = "cache_error"


class AggregateCache:
    def __init__(
        self,
        redis_client: Optional[aioredis.Redis],
        default_ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ) -> None:
        self._redis = redis_client
        self.default_ttl_seconds = default_ttl_seconds
        self._refresh_script = (
            redis_client.register_script(REFRESH_KEEP_TTL)
            if redis_client is not None
            else None
        )

    @property
    def enabled(self) -> bool:
        return self._redis is not None

    async def get(self, key: str) -> Optional[str]:
        """Return the cached JSON for *key*; errors count as a miss."""
        if self._redis is None:
            return None
        try:
            return await self._redis.get(key)
        except RedisError as e:
            log.warning("cache_get_error", key=key, error=str(e))
            return None

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """Store *value* with *ttl_seconds* (default TTL when omitted)."""
        if self._redis is None:
            return
        ttl = ttl_seconds or self.default_ttl_seconds
        try:
            await self._redis.set(key, value, ex=ttl)
        except RedisError as e:
            raise CacheError(f"cache set failed for {key}: {e}") from e

    async def refresh_keep_ttl(self, key: str, value: str) -> int:
        """Overwrite *key* keeping its remaining TTL.

        A missing key is written with the default TTL; a key without expiry
        stays without expiry. Returns the PTTL observed before the write.
        """
        if self._refresh_script is None:
            return -2
        try:
            return int(
                await self._refresh_script(
                    keys=[key], args=[value, self.default_ttl_seconds * 1000]
                )
            )
        except RedisError as e:
            raise CacheError(f"cache refresh failed for {key}: {e}") from e

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds (-2 missing, -1 persistent)."""
        if self._redis is None:
            return -2
        return int(await self._redis.ttl(key))

    async def delete(self, key: str) -> None:
        """Remove *key*; failure is logged, never raised."""
        if self._redis is None:
            return
        try:
            await self._redis.delete(key)
        except RedisError as e:
            log.warning("cache_delete_error", key=key, error=str(e))
