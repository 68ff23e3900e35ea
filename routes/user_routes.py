"""
User endpoints.

GET    /users/{id}      — public profile
PATCH  /users           — change nickname and/or avatar (multipart)
PATCH  /users/password  — change password
DELETE /users           — delete the account (password-confirmed)
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile

from config import AppSettings
from dependencies import get_current_user_id, get_settings, get_user_service
from routes.cookies import clear_session_cookie
from routes.forms import read_image
from schemas.dto.requests.users import ChangePasswordRequest, DeleteUserRequest
from schemas.dto.responses.auth import ProfileResponse, UserResponse
from schemas.dto.responses.common import MessageResponse
from services.users import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/{user_id}")
async def get_user(
    user_id: uuid.UUID, users: UserService = Depends(get_user_service)
) -> UserResponse:
    return UserResponse.from_user(await users.get(user_id))


@router.patch("")
async def update_user(
    nickname: Optional[str] = Form(default=None, min_length=1, max_length=80),
    avatar: Optional[UploadFile] = File(default=None),
    user_id: uuid.UUID = Depends(get_current_user_id),
    users: UserService = Depends(get_user_service),
) -> ProfileResponse:
    user = await users.update(user_id, nickname=nickname, avatar=await read_image(avatar))
    return ProfileResponse.from_user(user)


@router.patch("/password")
async def change_password(
    body: ChangePasswordRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    users: UserService = Depends(get_user_service),
) -> MessageResponse:
    await users.change_password(user_id, body.old_password, body.new_password)
    return MessageResponse(success=True, message="password changed")


@router.delete("")
async def delete_user(
    body: DeleteUserRequest,
    response: Response,
    user_id: uuid.UUID = Depends(get_current_user_id),
    settings: AppSettings = Depends(get_settings),
    users: UserService = Depends(get_user_service),
) -> MessageResponse:
    await users.delete(user_id, body.password)
    clear_session_cookie(response, settings.auth)
    return MessageResponse(success=True, message="account deleted")
