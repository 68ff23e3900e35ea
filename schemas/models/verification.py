"""
Pending registration row model.

Maps to the ``verifications`` table: one row per email between "send code"
and either a successful register or expiry / attempts exhaustion.
"""

from __future__ import annotations

import enum
from datetime import datetime

from pydantic import Field

from schemas.models.base import RowModel


class PendingVerification(RowModel):
    email: str
    login: str
    nickname: str
    password: bytes = Field(exclude=True, repr=False)
    code: bytes = Field(exclude=True, repr=False)
    expired_time: datetime
    attempts: int


class Credentials(RowModel):
    """What a verified registration turns into a User."""

    email: str
    login: str
    nickname: str
    password: bytes = Field(exclude=True, repr=False)


class CodeCheck(str, enum.Enum):
    """Outcome of one verify attempt against a pending row."""

    VALID = "valid"
    INVALID = "invalid"
    EXHAUSTED = "exhausted"
    EXPIRED = "expired"
