"""
User row model.

Maps to the ``users`` table. ``password`` holds the argon2 hash and is
excluded from every serialised form.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field

from schemas.models.base import RowModel


class User(RowModel):
    id: uuid.UUID
    nickname: str
    login: str
    email: str
    avatar: str = ""
    password: Optional[bytes] = Field(default=None, exclude=True, repr=False)
    time_of_register: datetime
    num_of_templates: int = 0
    num_of_readmes: int = 0


class UserCard(RowModel):
    """Minimal public projection used next to templates (owner nickname/avatar)."""

    id: uuid.UUID
    nickname: str
    avatar: str = ""
