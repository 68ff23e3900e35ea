"""Session cookie helpers: HTTP-only, SameSite=Lax, Max-Age equal to the token TTL."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import Response

from config import AuthSettings
from shared.tokens import IssuedToken

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def set_session_cookie(response: Response, token: IssuedToken, settings: AuthSettings) -> None:
    response.set_cookie(
        key=settings.cookie_name,
        value=token.token,
        max_age=token.ttl_seconds,
        expires=token.expires_at,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )


def clear_session_cookie(response: Response, settings: AuthSettings) -> None:
    response.set_cookie(
        key=settings.cookie_name,
        value="",
        max_age=0,
        expires=_EPOCH,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )
