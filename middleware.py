"""
HTTP middleware: per-IP rate limiting and the per-request wall-clock timeout.

Both answer with the standard ``{code, message}`` error body directly,
since exceptions raised in middleware bypass the registered handlers.
"""

from __future__ import annotations

import asyncio

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from errors import RateLimitError, RequestTimeoutError
from shared.ip_utils import get_client_ip
from shared.logging import get_logger

log = get_logger(__name__)


def _error_response(error: RateLimitError | RequestTimeoutError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def register_middleware(app: FastAPI, request_timeout_seconds: float) -> None:
    # registered last runs first: the limiter rejects before the timeout clock starts

    @app.middleware("http")
    async def request_timeout(request: Request, call_next):
        try:
            return await asyncio.wait_for(call_next(request), timeout=request_timeout_seconds)
        except asyncio.TimeoutError:
            log.warning(
                "request_timed_out",
                path=request.url.path,
                timeout=request_timeout_seconds,
            )
            return _error_response(RequestTimeoutError("request timed out"))

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        limiter = getattr(request.app.state, "rate_limiter", None)
        if limiter is not None:
            ip = get_client_ip(request)
            if not limiter.allow(ip):
                log.info("rate_limited", ip=ip, path=request.url.path)
                return _error_response(RateLimitError("too many requests"))
        return await call_next(request)
