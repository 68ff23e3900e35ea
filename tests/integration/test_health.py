"""Integration tests for GET /health."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

from fastapi import FastAPI
from fastapi.testclient import TestClient

from errors import register_error_handlers
from routes.health_routes import router as health_router


def _build_test_app(
    storage_ok: bool = True,
    redis_ok: bool = True,
    redis_configured: bool = True,
    search_ok: bool = True,
) -> FastAPI:
    """
    Build a minimal FastAPI app with mocked storage/cache/search injected via lifespan.
    No real network connections are made.
    """
    mock_storage = MagicMock()
    if storage_ok:
        mock_storage.ping = AsyncMock(return_value=None)
    else:
        mock_storage.ping = AsyncMock(side_effect=Exception("connection refused"))

    if not redis_configured:
        mock_redis = None
    else:
        mock_redis = AsyncMock()
        if redis_ok:
            mock_redis.ping = AsyncMock(return_value=True)
        else:
            mock_redis.ping = AsyncMock(side_effect=Exception("redis down"))

    mock_search = MagicMock()
    mock_search.ping = AsyncMock(return_value=search_ok)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.storage = mock_storage
        app.state.redis = mock_redis
        app.state.search = mock_search
        yield

    app = FastAPI(lifespan=lifespan)
    register_error_handlers(app)
    app.include_router(health_router)
    return app


def _get_health(app: FastAPI):
    with TestClient(app) as client:
        return client.get("/health")


class TestHealthEndpoint:
    def test_healthy_when_all_ok(self):
        resp = _get_health(_build_test_app())
        assert resp.status_code == 200
        assert resp.json() == {
            "status": "healthy",
            "checks": {"storage": "ok", "cache": "ok", "search": "ok"},
        }

    def test_unhealthy_when_storage_fails(self):
        resp = _get_health(_build_test_app(storage_ok=False))
        assert resp.status_code == 503
        body = resp.json()
        assert body["status"] == "unhealthy"
        assert body["checks"]["storage"] == "error"

    def test_storage_failure_wins_over_degradation(self):
        resp = _get_health(_build_test_app(storage_ok=False, redis_ok=False, search_ok=False))
        assert resp.status_code == 503
        assert resp.json()["status"] == "unhealthy"

    def test_degraded_when_redis_fails(self):
        resp = _get_health(_build_test_app(redis_ok=False))
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "degraded"
        assert body["checks"]["cache"] == "error"

    def test_degraded_when_redis_not_configured(self):
        resp = _get_health(_build_test_app(redis_configured=False))
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "degraded"
        assert body["checks"]["cache"] == "not_configured"

    def test_degraded_when_search_down(self):
        resp = _get_health(_build_test_app(search_ok=False))
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "degraded"
        assert body["checks"]["search"] == "error"


class TestHealthThroughAppFactory:
    def test_without_redis_is_degraded(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["checks"]["storage"] == "ok"
        assert body["checks"]["cache"] == "not_configured"
        assert body["status"] == "degraded"
