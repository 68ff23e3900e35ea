"""
Readme endpoints; every one acts on the caller's own readmes.

GET    /readmes       — the caller's readmes, newest update first
GET    /readmes/{id}  — one readme
POST   /readmes       — create (multipart: ``data`` JSON + ``image``)
PATCH  /readmes/{id}  — update (multipart)
DELETE /readmes/{id}  — delete
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from dependencies import get_current_user_id, get_pagination, get_readme_service
from routes.forms import parse_form_payload, read_image
from schemas.dto.requests.common import PaginationParams
from schemas.dto.requests.content import CreateReadmeRequest, UpdateReadmeRequest
from schemas.dto.responses.common import MessageResponse
from schemas.dto.responses.content import ReadmeResponse
from services.readmes import ReadmeService

router = APIRouter(prefix="/readmes", tags=["readmes"])


@router.get("")
async def list_readmes(
    paging: PaginationParams = Depends(get_pagination),
    user_id: uuid.UUID = Depends(get_current_user_id),
    readmes: ReadmeService = Depends(get_readme_service),
) -> list[ReadmeResponse]:
    items = await readmes.fetch_by_user(user_id, paging.amount, paging.page)
    return [ReadmeResponse.build(r) for r in items]


@router.get("/{readme_id}")
async def get_readme(
    readme_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    readmes: ReadmeService = Depends(get_readme_service),
) -> ReadmeResponse:
    return ReadmeResponse.build(await readmes.get(user_id, readme_id))


@router.post("", status_code=201)
async def create_readme(
    data: str = Form(...),
    image: Optional[UploadFile] = File(default=None),
    user_id: uuid.UUID = Depends(get_current_user_id),
    readmes: ReadmeService = Depends(get_readme_service),
) -> ReadmeResponse:
    request = parse_form_payload(CreateReadmeRequest, data)
    readme = await readmes.create(user_id, request, await read_image(image))
    return ReadmeResponse.build(readme)


@router.patch("/{readme_id}")
async def update_readme(
    readme_id: uuid.UUID,
    data: Optional[str] = Form(default=None),
    image: Optional[UploadFile] = File(default=None),
    user_id: uuid.UUID = Depends(get_current_user_id),
    readmes: ReadmeService = Depends(get_readme_service),
) -> ReadmeResponse:
    request = parse_form_payload(UpdateReadmeRequest, data)
    readme = await readmes.update(user_id, readme_id, request, await read_image(image))
    return ReadmeResponse.build(readme)


@router.delete("/{readme_id}")
async def delete_readme(
    readme_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    readmes: ReadmeService = Depends(get_readme_service),
) -> MessageResponse:
    await readmes.delete(user_id, readme_id)
    return MessageResponse(success=True, message="readme deleted")
