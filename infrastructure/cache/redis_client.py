"""Async Redis connection factory.

Returns a redis.asyncio client, or None when the cache is unreachable at
startup. The aggregate cache treats a None client as "always miss", so the
service keeps working straight from the relational store.
"""

from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from config import CacheSettings
from shared.logging import get_logger

log = get_logger(__name__)


async def create_redis_client(settings: CacheSettings) -> Optional[aioredis.Redis]:
    """Connect to Redis and return a client, or None on failure."""
    dsn = settings.dsn
    try:
        client: aioredis.Redis = aioredis.from_url(dsn, decode_responses=True)
        await client.ping()
    except (RedisError, OSError) as e:
        log.warning(
            "redis_connection_failed",
            target=dsn.split("@")[-1],  # mask credentials
            error=str(e),
            error_type=type(e).__name__,
        )
        return None
    log.info("redis_connected", target=dsn.split("@")[-1])
    return client
