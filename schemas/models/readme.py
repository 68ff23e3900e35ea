"""Readme row model. ``template_id`` is the nil uuid when no template was used."""

from __future__ import annotations

import uuid
from datetime import datetime

from schemas.models.base import NIL_ID, RowModel


class Readme(RowModel):
    id: uuid.UUID
    owner_id: uuid.UUID
    template_id: uuid.UUID = NIL_ID
    title: str
    image: str = ""
    text: list[str] = []
    links: list[str] = []
    widgets: list[dict[str, str]] = []
    render_order: list[str] = []
    create_time: datetime
    last_update_time: datetime
