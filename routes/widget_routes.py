"""
Widget endpoints (the catalog is read-only over HTTP).

GET   /widgets               — search, or the likes-ordered catalog page
GET   /widgets/favorite      — the caller's liked widgets
GET   /widgets/{id}          — one widget
PATCH /widgets/like/{id}     — add to favorites
PATCH /widgets/dislike/{id}  — remove from favorites
"""

from __future__ import annotations

import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from dependencies import get_current_user_id, get_pagination, get_widget_service
from schemas.dto.requests.common import PaginationParams
from schemas.dto.responses.common import MessageResponse
from schemas.dto.responses.content import WidgetResponse
from services.widgets import WidgetService

router = APIRouter(prefix="/widgets", tags=["widgets"])


@router.get("")
async def list_widgets(
    query: str = Query(default="", max_length=200),
    types: list[str] = Query(default=[]),
    tags: list[str] = Query(default=[]),
    sort: Optional[Literal["likes", "num_of_users"]] = Query(default=None),
    direction: Literal["asc", "desc"] = Query(default="desc"),
    paging: PaginationParams = Depends(get_pagination),
    widgets: WidgetService = Depends(get_widget_service),
) -> list[WidgetResponse]:
    if not (query or types or tags or sort):
        items = await widgets.fetch(paging.amount, paging.page)
    else:
        items = await widgets.search(
            query,
            paging.amount,
            paging.page,
            types=types,
            tags=tags,
            sort_field=sort,
            sort_direction=direction,
        )
    return [WidgetResponse.build(w) for w in items]


@router.get("/favorite")
async def favorite_widgets(
    paging: PaginationParams = Depends(get_pagination),
    user_id: uuid.UUID = Depends(get_current_user_id),
    widgets: WidgetService = Depends(get_widget_service),
) -> list[WidgetResponse]:
    items = await widgets.fetch_favorite(user_id, paging.amount, paging.page)
    return [WidgetResponse.build(w) for w in items]


@router.get("/{widget_id}")
async def get_widget(
    widget_id: uuid.UUID, widgets: WidgetService = Depends(get_widget_service)
) -> WidgetResponse:
    return WidgetResponse.build(await widgets.get(widget_id))


@router.patch("/like/{widget_id}")
async def like_widget(
    widget_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    widgets: WidgetService = Depends(get_widget_service),
) -> MessageResponse:
    changed = await widgets.like(user_id, widget_id)
    return MessageResponse(success=True, message="liked" if changed else "already liked")


@router.patch("/dislike/{widget_id}")
async def dislike_widget(
    widget_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    widgets: WidgetService = Depends(get_widget_service),
) -> MessageResponse:
    changed = await widgets.dislike(user_id, widget_id)
    return MessageResponse(success=True, message="disliked" if changed else "not liked")
