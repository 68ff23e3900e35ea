"""
Template endpoints.

GET    /templates                — fetch (likes order), sort, search or by owner
GET    /templates/favorite       — the caller's liked templates
GET    /templates/{id}           — one template with its owner's card
POST   /templates                — create (multipart: ``data`` JSON + ``image``)
PATCH  /templates/{id}           — update (multipart, owner only)
DELETE /templates/{id}           — delete (owner only)
PATCH  /templates/like/{id}      — add to favorites
PATCH  /templates/dislike/{id}   — remove from favorites
"""

from __future__ import annotations

import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from dependencies import (
    get_current_user_id,
    get_optional_user_id,
    get_pagination,
    get_template_service,
)
from routes.forms import parse_form_payload, read_image
from schemas.dto.requests.common import PaginationParams
from schemas.dto.requests.content import CreateTemplateRequest, UpdateTemplateRequest
from schemas.dto.responses.common import MessageResponse
from schemas.dto.responses.content import TemplateResponse
from services.templates import TemplateService, WithOwner

router = APIRouter(prefix="/templates", tags=["templates"])


def _many(items: list[WithOwner]) -> list[TemplateResponse]:
    return [TemplateResponse.build(t, owner) for t, owner in items]


@router.get("")
async def list_templates(
    query: Optional[str] = Query(default=None, max_length=200),
    sort: Optional[str] = Query(default=None),
    direction: Literal["asc", "desc"] = Query(default="desc"),
    owner_id: Optional[uuid.UUID] = Query(default=None),
    paging: PaginationParams = Depends(get_pagination),
    viewer_id: Optional[uuid.UUID] = Depends(get_optional_user_id),
    templates: TemplateService = Depends(get_template_service),
) -> list[TemplateResponse]:
    if owner_id is not None:
        items = await templates.fetch_by_owner(owner_id, paging.amount, paging.page, viewer_id)
    elif query:
        items = await templates.search(query, paging.amount, paging.page)
    elif sort:
        items = await templates.sort(paging.amount, paging.page, sort, direction)
    else:
        items = await templates.fetch(paging.amount, paging.page)
    return _many(items)


@router.get("/favorite")
async def favorite_templates(
    paging: PaginationParams = Depends(get_pagination),
    user_id: uuid.UUID = Depends(get_current_user_id),
    templates: TemplateService = Depends(get_template_service),
) -> list[TemplateResponse]:
    return _many(await templates.fetch_favorite(user_id, paging.amount, paging.page))


@router.get("/{template_id}")
async def get_template(
    template_id: uuid.UUID,
    viewer_id: Optional[uuid.UUID] = Depends(get_optional_user_id),
    templates: TemplateService = Depends(get_template_service),
) -> TemplateResponse:
    template, owner = await templates.get(template_id, viewer_id)
    return TemplateResponse.build(template, owner)


@router.post("", status_code=201)
async def create_template(
    data: str = Form(...),
    image: Optional[UploadFile] = File(default=None),
    user_id: uuid.UUID = Depends(get_current_user_id),
    templates: TemplateService = Depends(get_template_service),
) -> TemplateResponse:
    request = parse_form_payload(CreateTemplateRequest, data)
    template = await templates.create(user_id, request, await read_image(image))
    return TemplateResponse.build(template)


@router.patch("/{template_id}")
async def update_template(
    template_id: uuid.UUID,
    data: Optional[str] = Form(default=None),
    image: Optional[UploadFile] = File(default=None),
    user_id: uuid.UUID = Depends(get_current_user_id),
    templates: TemplateService = Depends(get_template_service),
) -> TemplateResponse:
    request = parse_form_payload(UpdateTemplateRequest, data)
    template = await templates.update(user_id, template_id, request, await read_image(image))
    return TemplateResponse.build(template)


@router.delete("/{template_id}")
async def delete_template(
    template_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    templates: TemplateService = Depends(get_template_service),
) -> MessageResponse:
    await templates.delete(user_id, template_id)
    return MessageResponse(success=True, message="template deleted")


@router.patch("/like/{template_id}")
async def like_template(
    template_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    templates: TemplateService = Depends(get_template_service),
) -> MessageResponse:
    changed = await templates.like(user_id, template_id)
    return MessageResponse(success=True, message="liked" if changed else "already liked")


@router.patch("/dislike/{template_id}")
async def dislike_template(
    template_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    templates: TemplateService = Depends(get_template_service),
) -> MessageResponse:
    changed = await templates.dislike(user_id, template_id)
    return MessageResponse(success=True, message="disliked" if changed else "not liked")
