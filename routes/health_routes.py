"""
Health check endpoint.

GET /health — checks the relational store, the cache and the search index.
Rules:
- Store failure → "unhealthy" (503): nothing works without it.
- Cache or search failure / absence → "degraded" (200): reads fall back to
  the store, search is unavailable until it recovers.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from shared.logging import get_logger

log = get_logger(__name__)

router = APIRouter(tags=["health"])


def _degrade(overall: str) -> str:
    return "degraded" if overall == "healthy" else overall


@router.get("/health")
async def health_check(request: Request) -> JSONResponse:
    state = request.app.state
    checks: dict[str, str] = {}
    overall = "healthy"

    try:
        await state.storage.ping()
        checks["storage"] = "ok"
    except Exception as e:
        log.warning("health_check_failed", component="storage", error=str(e))
        checks["storage"] = "error"
        overall = "unhealthy"

    redis = state.redis
    if redis is None:
        checks["cache"] = "not_configured"
        overall = _degrade(overall)
    else:
        try:
            await redis.ping()
            checks["cache"] = "ok"
        except Exception as e:
            log.warning("health_check_failed", component="cache", error=str(e))
            checks["cache"] = "error"
            overall = _degrade(overall)

    try:
        if not await state.search.ping():
            raise ConnectionError("search ping returned false")
        checks["search"] = "ok"
    except Exception as e:
        log.warning("health_check_failed", component="search", error=str(e))
        checks["search"] = "error"
        overall = _degrade(overall)

    status_code = 503 if overall == "unhealthy" else 200
    return JSONResponse(
        status_code=status_code,
        content={"status": overall, "checks": checks},
    )
