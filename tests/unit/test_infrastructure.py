"""Unit tests for the infrastructure layer: cache, limiter, search, mail, images."""

import asyncio
import json
import uuid
from unittest.mock import AsyncMock, MagicMock

import fakeredis
import httpx
import pytest
from redis.exceptions import RedisError

from config import CloudStorageSettings, EmailSettings
from infrastructure.cache.aggregate_cache import AggregateCache, CacheError
from infrastructure.email.zeptomail import ZeptoMailProvider
from infrastructure.http_client import HttpClient
from infrastructure.images.cloudinary import (
    CloudinaryImageHost,
    ImageHostError,
    public_id_from_url,
    sign_params,
)
from infrastructure.images.protocol import UploadedImage
from infrastructure.rate_limiter import IpRateLimiter
from infrastructure.search.elastic import SearchIndex
from services.media import AVATARS, MediaStore


# ── Helpers ───────────────────────────────────────────────────────────────────


class _Clock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _response(status: int, body=None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body or {}
    resp.text = json.dumps(body or {})
    return resp


def _http(response=None, exc=None) -> MagicMock:
    http = MagicMock(spec=HttpClient)
    http.post = AsyncMock(return_value=response, side_effect=exc)
    return http


# ── AggregateCache ────────────────────────────────────────────────────────────


class TestAggregateCache:
    async def test_disabled_without_client(self):
        cache = AggregateCache(None)
        assert not cache.enabled
        assert await cache.get("k") is None
        await cache.set("k", "v")
        assert await cache.refresh_keep_ttl("k", "v") == -2
        assert await cache.ttl("k") == -2

    async def test_set_uses_default_ttl(self, fake_redis):
        cache = AggregateCache(fake_redis, default_ttl_seconds=120)
        await cache.set("k", "v")
        assert await cache.get("k") == "v"
        assert 119 <= await cache.ttl("k") <= 120

    async def test_set_explicit_ttl(self, fake_redis):
        cache = AggregateCache(fake_redis, default_ttl_seconds=120)
        await cache.set("k", "v", 3600)
        assert 3599 <= await cache.ttl("k") <= 3600

    async def test_refresh_keeps_remaining_ttl(self, fake_redis):
        cache = AggregateCache(fake_redis, default_ttl_seconds=86400)
        await fake_redis.set("k", "old", ex=3600)
        observed = await cache.refresh_keep_ttl("k", "new")
        assert await cache.get("k") == "new"
        assert 3599 <= await cache.ttl("k") <= 3601
        assert 3590_000 < observed <= 3600_000

    async def test_refresh_missing_key_gets_default_ttl(self, fake_redis):
        cache = AggregateCache(fake_redis, default_ttl_seconds=600)
        assert await cache.refresh_keep_ttl("k", "v") == -2
        assert 599 <= await cache.ttl("k") <= 600

    async def test_refresh_persistent_key_stays_persistent(self, fake_redis):
        cache = AggregateCache(fake_redis, default_ttl_seconds=600)
        await fake_redis.set("k", "old")
        await cache.refresh_keep_ttl("k", "new")
        assert await cache.ttl("k") == -1

    async def test_get_error_is_a_miss(self):
        redis = MagicMock()
        redis.get = AsyncMock(side_effect=RedisError("down"))
        cache = AggregateCache(redis)
        assert await cache.get("k") is None

    async def test_set_error_raises_cache_error(self, fake_redis):
        cache = AggregateCache(fake_redis)
        fake_redis.fail_writes = True
        with pytest.raises(CacheError):
            await cache.set("k", "v")
        with pytest.raises(CacheError):
            await cache.refresh_keep_ttl("k", "v")

    async def test_delete_is_best_effort(self):
        redis = MagicMock()
        redis.delete = AsyncMock(side_effect=RedisError("down"))
        cache = AggregateCache(redis)
        await cache.delete("k")
        redis.delete.assert_awaited_once_with("k")


class TestRefreshKeepTtlScript:
    """The Lua script itself, evaluated by fakeredis."""

    @pytest.fixture
    async def lua_redis(self):
        client = fakeredis.FakeAsyncRedis(decode_responses=True)
        yield client
        await client.aclose()

    async def test_keeps_remaining_ttl(self, lua_redis):
        cache = AggregateCache(lua_redis, default_ttl_seconds=86400)
        await lua_redis.set("k", "old", ex=3600)
        observed = await cache.refresh_keep_ttl("k", "new")
        assert await lua_redis.get("k") == "new"
        assert 3590_000 < observed <= 3600_000
        assert 3590 <= await lua_redis.ttl("k") <= 3600

    async def test_missing_key_gets_default(self, lua_redis):
        cache = AggregateCache(lua_redis, default_ttl_seconds=600)
        assert await cache.refresh_keep_ttl("k", "v") == -2
        assert await lua_redis.get("k") == "v"
        assert 590 <= await lua_redis.ttl("k") <= 600

    async def test_expired_key_gets_default(self, lua_redis):
        cache = AggregateCache(lua_redis, default_ttl_seconds=600)
        await lua_redis.set("k", "old", px=1)
        await asyncio.sleep(0.01)
        assert await cache.refresh_keep_ttl("k", "new") <= 0
        assert 590 <= await lua_redis.ttl("k") <= 600

    async def test_persistent_key_stays_persistent(self, lua_redis):
        cache = AggregateCache(lua_redis, default_ttl_seconds=600)
        await lua_redis.set("k", "old")
        assert await cache.refresh_keep_ttl("k", "new") == -1
        assert await lua_redis.get("k") == "new"
        assert await lua_redis.ttl("k") == -1


# ── IpRateLimiter ─────────────────────────────────────────────────────────────


class TestIpRateLimiter:
    def test_burst_then_reject(self):
        limiter = IpRateLimiter(rate=1, burst=3, clock=_Clock())
        assert [limiter.allow("1.1.1.1") for _ in range(4)] == [True, True, True, False]

    def test_refills_at_rate(self):
        clock = _Clock()
        limiter = IpRateLimiter(rate=2, burst=2, clock=clock)
        assert limiter.allow("ip") and limiter.allow("ip")
        assert not limiter.allow("ip")
        clock.now += 1.0
        assert limiter.allow("ip") and limiter.allow("ip")
        assert not limiter.allow("ip")

    def test_bounded_by_burst_plus_rate_times_interval(self):
        clock = _Clock()
        limiter = IpRateLimiter(rate=5, burst=10, clock=clock)
        allowed = 0
        for _ in range(100):
            allowed += limiter.allow("ip")
            clock.now += 0.01  # one second in total
        assert allowed <= 10 + 5 * 1

    def test_ips_are_independent(self):
        limiter = IpRateLimiter(rate=1, burst=1, clock=_Clock())
        assert limiter.allow("a")
        assert not limiter.allow("a")
        assert limiter.allow("b")

    def test_sweep_evicts_idle_ips(self):
        clock = _Clock()
        limiter = IpRateLimiter(rate=1, burst=1, idle_seconds=900, clock=clock)
        limiter.allow("old")
        clock.now += 600
        limiter.allow("recent")
        clock.now += 300
        assert limiter.sweep() == 1
        assert "old" not in limiter
        assert "recent" in limiter
        assert len(limiter) == 1

    def test_rejects_bad_parameters(self):
        with pytest.raises(ValueError):
            IpRateLimiter(rate=0, burst=1)

    async def test_start_and_stop(self):
        limiter = IpRateLimiter(rate=1, burst=1, sweep_interval=0.01)
        limiter.start()
        await asyncio.sleep(0.03)
        await limiter.stop()
        await limiter.stop()


# ── SearchIndex ───────────────────────────────────────────────────────────────


class TestSearchIndex:
    async def test_search_ids_returns_hit_ids(self):
        client = MagicMock()
        client.search = AsyncMock(
            return_value={"hits": {"hits": [{"_id": "a"}, {"_id": "b"}]}}
        )
        index = SearchIndex(client)
        ids = await index.search_ids("templates", {"match_all": {}}, offset=20, size=10)
        assert ids == ["a", "b"]
        kwargs = client.search.call_args.kwargs
        assert kwargs["from_"] == 20
        assert kwargs["size"] == 10
        assert kwargs["source"] is False
        assert "sort" not in kwargs

    async def test_search_ids_passes_sort_and_post_filter(self):
        client = MagicMock()
        client.search = AsyncMock(return_value={"hits": {"hits": []}})
        index = SearchIndex(client)
        await index.search_ids(
            "widgets",
            {"match_all": {}},
            offset=0,
            size=5,
            sort=[{"likes": {"order": "desc"}}],
            post_filter={"bool": {"filter": []}},
        )
        kwargs = client.search.call_args.kwargs
        assert kwargs["sort"] == [{"likes": {"order": "desc"}}]
        assert kwargs["post_filter"] == {"bool": {"filter": []}}

    async def test_bulk_upsert_builds_index_actions(self, mocker):
        captured = {}

        def fake_bulk(client, actions, raise_on_error):
            captured["actions"] = list(actions)
            return len(captured["actions"]), []

        mocker.patch("infrastructure.search.elastic.async_bulk", side_effect=fake_bulk)
        index = SearchIndex(MagicMock())
        count = await index.bulk_upsert("widgets", [{"id": "w1", "title": "A"}])
        assert count == 1
        action = captured["actions"][0]
        assert action["_op_type"] == "index"
        assert action["_index"] == "widgets"
        assert action["_id"] == "w1"
        assert action["_source"]["title"] == "A"


# ── ZeptoMailProvider ─────────────────────────────────────────────────────────


class TestZeptoMailProvider:
    def _provider(self, http) -> ZeptoMailProvider:
        return ZeptoMailProvider(EmailSettings(api_token="tok"), http, code_ttl_minutes=10)

    def test_render_contains_code_and_name(self):
        html = self._provider(_http()).render_verification("Whiskers", "123456")
        assert "123456" in html
        assert "Whiskers" in html

    async def test_send_success(self):
        http = _http(_response(201))
        assert await self._provider(http).send_verification_email("a@x.io", "A", "123456")
        payload = http.post.call_args.kwargs["json"]
        assert payload["to"][0]["email_address"]["address"] == "a@x.io"
        assert "123456" in payload["textbody"]
        assert http.post.call_args.kwargs["headers"]["Authorization"] == "Zoho-enczapikey tok"

    async def test_resend_subject(self):
        http = _http(_response(200))
        await self._provider(http).send_verification_email("a@x.io", "A", "1", resend=True)
        assert "new" in http.post.call_args.kwargs["json"]["subject"]

    async def test_rejected_returns_false(self):
        http = _http(_response(500))
        assert not await self._provider(http).send_verification_email("a@x.io", "A", "1")

    async def test_transport_error_returns_false(self):
        http = _http(exc=httpx.ConnectError("refused"))
        assert not await self._provider(http).send_verification_email("a@x.io", "A", "1")

    async def test_missing_token_returns_false(self):
        http = _http(_response(200))
        provider = ZeptoMailProvider(EmailSettings(api_token=""), http)
        assert not await provider.send_verification_email("a@x.io", "A", "1")
        http.post.assert_not_awaited()


# ── Cloudinary ────────────────────────────────────────────────────────────────


class TestCloudinary:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("https://res.cloudinary.com/demo/image/upload/v1712/readmes/abc-1712.png", "readmes/abc-1712"),
            ("https://res.cloudinary.com/demo/image/upload/avatars/u-1.jpg", "avatars/u-1"),
            ("https://example.com/no-marker.png", ""),
        ],
    )
    def test_public_id_from_url(self, url, expected):
        assert public_id_from_url(url) == expected

    def test_sign_params_sorted_and_skips_empty(self):
        a = sign_params({"b": 2, "a": 1, "c": ""}, "secret")
        b = sign_params({"a": 1, "b": 2}, "secret")
        assert a == b
        assert len(a) == 40

    def _host(self, http) -> CloudinaryImageHost:
        settings = CloudStorageSettings(cloud_name="demo", api_key="key", api_secret="shh")
        return CloudinaryImageHost(settings, http)

    async def test_upload(self):
        http = _http(_response(200, {"secure_url": "https://cdn/x.png", "public_id": "avatars/x"}))
        image = await self._host(http).upload(b"png-bytes", "x", "avatars")
        assert image == UploadedImage(url="https://cdn/x.png", public_id="avatars/x")
        assert http.post.call_args.args[0].endswith("/demo/image/upload")
        assert http.post.call_args.kwargs["data"]["api_key"] == "key"

    async def test_upload_failure_raises(self):
        with pytest.raises(ImageHostError):
            await self._host(_http(_response(400))).upload(b"x", "x", "avatars")

    async def test_delete(self):
        http = _http(_response(200, {"result": "ok"}))
        await self._host(http).delete("avatars/x")
        assert http.post.call_args.args[0].endswith("/demo/image/destroy")


# ── MediaStore ────────────────────────────────────────────────────────────────


class TestMediaStore:
    async def test_no_data_no_upload(self):
        host = MagicMock()
        host.upload = AsyncMock()
        assert await MediaStore(host).upload(None, uuid.uuid4(), AVATARS) is None
        host.upload.assert_not_awaited()

    async def test_upload_names_file_after_owner(self):
        host = MagicMock()
        host.upload = AsyncMock(return_value=UploadedImage("u", "p"))
        owner = uuid.uuid4()
        await MediaStore(host).upload(b"img", owner, AVATARS)
        data, filename, folder = host.upload.call_args.args
        assert filename.startswith(f"{owner}-")
        assert folder == AVATARS

    async def test_discard_failure_is_swallowed(self):
        host = MagicMock()
        host.public_id_from_url = MagicMock(return_value="avatars/x")
        host.delete = AsyncMock(side_effect=ImageHostError("nope"))
        await MediaStore(host).discard_url("https://cdn/avatars/x.png")
        host.delete.assert_awaited_once_with("avatars/x")

    async def test_discard_empty_url_is_noop(self):
        host = MagicMock()
        host.delete = AsyncMock()
        await MediaStore(host).discard_url("")
        host.delete.assert_not_awaited()
