"""
Template row model.

``widgets`` is a list of ``{widget_id: slot}`` maps; ``render_order`` lists
the block ids (text, link and widget ids) in display order.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from schemas.models.base import RowModel


class Template(RowModel):
    id: uuid.UUID
    owner_id: uuid.UUID
    title: str
    image: str = ""
    description: str = ""
    text: list[str] = []
    links: list[str] = []
    widgets: list[dict[str, str]] = []
    render_order: list[str] = []
    likes: int = 0
    num_of_users: int = 0
    create_time: datetime
    last_update_time: datetime
    is_public: bool = True

    def widget_ids(self) -> list[str]:
        return widget_ids_of(self.widgets)


def widget_ids_of(slots: list[dict[str, str]]) -> list[str]:
    """Distinct widget ids referenced by slot maps, first-seen order."""
    seen: dict[str, None] = {}
    for slot in slots:
        for widget_id in slot:
            seen.setdefault(widget_id, None)
    return list(seen)
