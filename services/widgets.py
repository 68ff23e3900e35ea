"""Widget catalog reads and favorites."""

from __future__ import annotations

import uuid
from typing import Optional, Sequence

from infrastructure.db.transactor import Transactor
from repositories.base import DECREMENT, INCREMENT
from repositories.widgets import WidgetRepository
from schemas.models.widget import Widget
from shared.logging import get_logger

log = get_logger(__name__)


class WidgetService:
    def __init__(self, transactor: Transactor, widgets: WidgetRepository) -> None:
        self._tx = transactor
        self._widgets = widgets

    async def get(self, widget_id: uuid.UUID) -> Widget:
        return await self._widgets.get(widget_id)

    async def fetch(self, amount: int, page: int) -> list[Widget]:
        return await self._widgets.fetch(amount, page)

    async def search(
        self,
        query: str,
        amount: int,
        page: int,
        *,
        types: Sequence[str] = (),
        tags: Sequence[str] = (),
        sort_field: Optional[str] = None,
        sort_direction: str = "desc",
    ) -> list[Widget]:
        return await self._widgets.search(
            query,
            amount,
            page,
            types=types,
            tags=tags,
            sort_field=sort_field,
            sort_direction=sort_direction,
        )

    async def fetch_favorite(self, user_id: uuid.UUID, amount: int, page: int) -> list[Widget]:
        return await self._widgets.fetch_favorite(user_id, amount, page)

    async def like(self, user_id: uuid.UUID, widget_id: uuid.UUID) -> bool:
        return await self._toggle_like(user_id, widget_id, like=True)

    async def dislike(self, user_id: uuid.UUID, widget_id: uuid.UUID) -> bool:
        return await self._toggle_like(user_id, widget_id, like=False)

    async def _toggle_like(self, user_id: uuid.UUID, widget_id: uuid.UUID, *, like: bool) -> bool:
        op = "widgets.like" if like else "widgets.dislike"

        async def block() -> bool:
            await self._widgets.get(widget_id)
            if like:
                changed = await self._widgets.like(widget_id, user_id)
            else:
                changed = await self._widgets.dislike(widget_id, user_id)
            if changed:
                await self._widgets.update({"likes": INCREMENT if like else DECREMENT}, widget_id)
            return changed

        changed = await self._tx.run(block)
        log.info("widget_like_toggled", op=op, widget_id=str(widget_id), user_id=str(user_id), changed=changed)
        return changed
