"""
Session JWT minting and verification (HS256 via PyJWT).

Verification is a pure function of (token, secret): no server-side session
store exists. Any signature, audience, issuer or expiry failure, or a
missing subject, surfaces as ``jwt.InvalidTokenError``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

import jwt

from shared.datetime_utils import utc_now

ALGORITHM = "HS256"
DEFAULT_ISSUER = "readmeow"
DEFAULT_AUDIENCE = "readmeow-users"


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime
    ttl_seconds: int


def issue_token(
    user_id: str,
    secret: str,
    ttl_seconds: int,
    *,
    issuer: str = DEFAULT_ISSUER,
    audience: str = DEFAULT_AUDIENCE,
) -> IssuedToken:
    now = utc_now()
    expires_at = now + timedelta(seconds=ttl_seconds)
    claims = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
        "jti": str(uuid.uuid4()),
        "iss": issuer,
        "aud": [audience],
    }
    token = jwt.encode(claims, secret, algorithm=ALGORITHM)
    return IssuedToken(token=token, expires_at=expires_at, ttl_seconds=ttl_seconds)


def verify_token(
    token: str,
    secret: str,
    *,
    issuer: str = DEFAULT_ISSUER,
    audience: str = DEFAULT_AUDIENCE,
) -> str:
    """Return the subject (user id) carried by a valid *token*."""
    claims = jwt.decode(
        token,
        secret,
        algorithms=[ALGORITHM],
        audience=audience,
        issuer=issuer,
        options={"require": ["sub", "exp", "iat"]},
    )
    subject = claims.get("sub")
    if not subject:
        raise jwt.InvalidTokenError("token has no subject")
    return subject
