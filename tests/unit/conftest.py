"""
Unit test configuration.

Patches dotenv so pydantic-settings never reads the project's real .env file
during unit tests, and points CONFIG_PATH at a file that does not exist so
the shipped config.yaml stays out of the way. Tests control config
exclusively through monkeypatch.setenv().

Repository and service tests run against a throwaway SQLite database file
and an in-process Redis stand-in that understands the handful of commands
(and the TTL-keeping script) the aggregate cache uses.
"""

import time
from typing import Any, Optional
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import RedisError

from config import _read_yaml
from infrastructure.cache.aggregate_cache import AggregateCache
from infrastructure.db.storage import Storage
from infrastructure.db.transactor import Transactor
from infrastructure.search.elastic import SearchIndex
from repositories.readmes import ReadmeRepository
from repositories.templates import TemplateRepository
from repositories.users import UserRepository
from repositories.verifications import VerificationRepository
from repositories.widgets import WidgetRepository
from shared.crypto import configure_password_hasher


@pytest.fixture(autouse=True)
def disable_dotenv_loading(monkeypatch):
    """Prevent pydantic-settings from loading .env files in all unit tests."""
    import pydantic_settings.sources.providers.dotenv as ps_dotenv

    monkeypatch.setattr(ps_dotenv, "dotenv_values", lambda *a, **kw: {})


@pytest.fixture(autouse=True)
def isolated_config_file(monkeypatch, tmp_path):
    monkeypatch.setenv("CONFIG_PATH", str(tmp_path / "absent.yaml"))
    _read_yaml.cache_clear()
    yield
    _read_yaml.cache_clear()


@pytest.fixture(autouse=True)
def fast_password_hasher():
    configure_password_hasher(time_cost=1, memory_cost=8, parallelism=1)


# ── Redis stand-in ────────────────────────────────────────────────────────────


class FakeRedis:
    """Dict-backed async Redis with millisecond expiry."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.expires_at: dict[str, float] = {}
        self.fail_writes = False

    def _alive(self, key: str) -> bool:
        deadline = self.expires_at.get(key)
        if deadline is not None and deadline <= time.monotonic():
            self.data.pop(key, None)
            self.expires_at.pop(key, None)
        return key in self.data

    def _store(self, key: str, value: str, px: Optional[int]) -> None:
        if self.fail_writes:
            raise RedisError("write refused")
        self.data[key] = value
        if px is None:
            self.expires_at.pop(key, None)
        else:
            self.expires_at[key] = time.monotonic() + int(px) / 1000

    async def get(self, key: str) -> Optional[str]:
        return self.data[key] if self._alive(key) else None

    async def set(self, key: str, value: str, ex: Optional[int] = None, px: Optional[int] = None) -> bool:
        if ex is not None:
            px = int(ex) * 1000
        self._store(key, value, px)
        return True

    async def pttl(self, key: str) -> int:
        if not self._alive(key):
            return -2
        deadline = self.expires_at.get(key)
        if deadline is None:
            return -1
        return int((deadline - time.monotonic()) * 1000)

    async def ttl(self, key: str) -> int:
        remaining = await self.pttl(key)
        return remaining if remaining < 0 else round(remaining / 1000)

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._alive(key):
                removed += 1
            self.data.pop(key, None)
            self.expires_at.pop(key, None)
        return removed

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None

    def register_script(self, source: str) -> "_KeepTtlScript":
        return _KeepTtlScript(self)


class _KeepTtlScript:
    """Python rendition of the cache's PTTL-then-SET script."""

    def __init__(self, redis: FakeRedis) -> None:
        self._redis = redis

    async def __call__(self, keys: list[str], args: list[Any]) -> int:
        key, (value, default_px) = keys[0], args
        ttl = await self._redis.pttl(key)
        if ttl == -1:
            self._redis._store(key, value, None)
        elif ttl <= 0:
            self._redis._store(key, value, int(default_px))
        else:
            self._redis._store(key, value, ttl)
        return ttl


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(fake_redis) -> AggregateCache:
    return AggregateCache(fake_redis, default_ttl_seconds=86400)


@pytest.fixture
def search() -> AsyncMock:
    index = AsyncMock(spec=SearchIndex)
    index.search_ids.return_value = []
    index.bulk_upsert.side_effect = lambda index_name, docs: len(list(docs))
    return index


# ── Relational store ──────────────────────────────────────────────────────────


@pytest.fixture
async def storage(tmp_path):
    store = Storage.from_url(f"sqlite+aiosqlite:///{tmp_path / 'readmeow.db'}")
    await store.create_schema()
    yield store
    await store.dispose()


@pytest.fixture
def transactor(storage) -> Transactor:
    return Transactor(storage)


@pytest.fixture
def users(storage) -> UserRepository:
    return UserRepository(storage)


@pytest.fixture
def verifications(storage) -> VerificationRepository:
    return VerificationRepository(storage)


@pytest.fixture
def templates(storage, cache, search) -> TemplateRepository:
    return TemplateRepository(storage, cache, search)


@pytest.fixture
def widgets(storage, cache, search) -> WidgetRepository:
    return WidgetRepository(storage, cache, search)


@pytest.fixture
def readmes(storage) -> ReadmeRepository:
    return ReadmeRepository(storage)
