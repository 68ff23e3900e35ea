"""
Date/time helpers — framework-agnostic.

Every timestamp the service stores or compares is a timezone-aware UTC
datetime. Drivers that drop tzinfo (SQLite) are normalised on read.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_in(seconds: float) -> datetime:
    """Return ``now + seconds`` as an aware UTC datetime."""
    return utc_now() + timedelta(seconds=seconds)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

