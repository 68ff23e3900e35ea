"""Widget row model. Widgets are catalog-managed; only counters change at runtime."""

from __future__ import annotations

import uuid
from typing import Any

from schemas.models.base import RowModel


class Widget(RowModel):
    id: uuid.UUID
    title: str
    image: str = ""
    description: str = ""
    type: str = ""
    tags: dict[str, Any] = {}
    link: str = ""
    likes: int = 0
    num_of_users: int = 0
