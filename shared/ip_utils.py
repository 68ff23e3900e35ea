"""
Client IP resolution for the per-IP rate limiter.

The service normally sits behind a reverse proxy, so the socket peer is
the proxy itself; proxy headers are checked first.
"""

from __future__ import annotations

from fastapi import Request

# first non-empty header wins; X-Forwarded-For may hold a list, left-most is the client
PROXY_HEADERS: tuple[str, ...] = (
    "CF-Connecting-IP",
    "X-Forwarded-For",
    "X-Real-IP",
)

UNKNOWN_CLIENT = "unknown"


def get_client_ip(request: Request) -> str:
    """Return the best-effort client IP for *request*.

    Falls back to the direct connection address, then to ``"unknown"`` so
    every request still lands in some rate-limit bucket.
    """
    for header in PROXY_HEADERS:
        value = request.headers.get(header)
        if not value:
            continue
        candidate = value.split(",")[0].strip()
        if candidate:
            return candidate

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT
