"""
Per-IP token-bucket rate limiter.

Each client IP owns a bucket holding up to ``burst`` tokens that refills at
``rate`` tokens per second; a request spends one token or is rejected.
Buckets for IPs idle longer than ``idle_seconds`` are dropped by a sweep
task the application lifespan starts and stops.

All bucket operations are synchronous and run on the event loop thread,
so no lock is needed around the map.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional

from shared.logging import get_logger

log = get_logger(__name__)

Clock = Callable[[], float]


@dataclass
class TokenBucket:
    rate: float
    burst: int
    tokens: float
    updated_at: float
    last_seen: float

    def take(self, now: float) -> bool:
        elapsed = max(0.0, now - self.updated_at)
        self.tokens = min(float(self.burst), self.tokens + elapsed * self.rate)
        self.updated_at = now
        self.last_seen = now
        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return True
        return False


class IpRateLimiter:
    def __init__(
        self,
        rate: float,
        burst: int,
        *,
        idle_seconds: float = 15 * 60,
        sweep_interval: float = 60.0,
        clock: Clock = time.monotonic,
    ) -> None:
        if rate <= 0 or burst < 1:
            raise ValueError("rate must be > 0 and burst >= 1")
        self.rate = rate
        self.burst = burst
        self.idle_seconds = idle_seconds
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._buckets: dict[str, TokenBucket] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._buckets)

    def __contains__(self, ip: str) -> bool:
        return ip in self._buckets

    def allow(self, ip: str) -> bool:
        """Spend one token from *ip*'s bucket; False when it is empty."""
        now = self._clock()
        bucket = self._buckets.get(ip)
        if bucket is None:
            bucket = TokenBucket(
                rate=self.rate,
                burst=self.burst,
                tokens=float(self.burst),
                updated_at=now,
                last_seen=now,
            )
            self._buckets[ip] = bucket
        return bucket.take(now)

    def sweep(self) -> int:
        """Evict buckets idle for at least ``idle_seconds``; return how many."""
        now = self._clock()
        stale = [
            ip
            for ip, bucket in self._buckets.items()
            if now - bucket.last_seen >= self.idle_seconds
        ]
        for ip in stale:
            del self._buckets[ip]
        if stale:
            log.debug("rate_limiter_swept", evicted=len(stale), tracked=len(self._buckets))
        return len(stale)

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep()

    def start(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(
                self._sweep_forever(), name="rate-limiter-sweep"
            )

    async def stop(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
