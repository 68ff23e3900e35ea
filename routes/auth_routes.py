"""
Authentication endpoints.

POST    /auth/verify    — begin registration, mail a code
POST    /auth/register  — finish registration with the code
POST    /auth/new-code  — mail a fresh code
GET|POST /auth/login    — issue the session cookie
GET     /auth/logout    — drop the session cookie
GET     /auth/profile   — the logged-in user's account

The first four refuse callers that already carry a session cookie (409).
Verification failures answer 200 with a ``{code, message}`` body.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response

from config import AppSettings
from dependencies import (
    get_auth_service,
    get_current_user_id,
    get_settings,
    get_user_service,
    require_no_session,
)
from routes.cookies import clear_session_cookie, set_session_cookie
from schemas.dto.requests.auth import (
    LoginRequest,
    NewCodeRequest,
    RegisterRequest,
    SendCodeRequest,
)
from schemas.dto.responses.auth import LoginResponse, ProfileResponse
from schemas.dto.responses.common import MessageResponse
from services.auth import AuthService
from services.users import UserService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/verify", dependencies=[Depends(require_no_session)])
async def send_code(
    body: SendCodeRequest, auth: AuthService = Depends(get_auth_service)
) -> MessageResponse:
    await auth.send_code(body.nickname, body.login, str(body.email), body.password)
    return MessageResponse(success=True, message="verification code sent")


@router.post("/register", dependencies=[Depends(require_no_session)])
async def register(
    body: RegisterRequest, auth: AuthService = Depends(get_auth_service)
) -> MessageResponse:
    await auth.register(str(body.email), body.code)
    return MessageResponse(success=True, message="registered")


@router.post("/new-code", dependencies=[Depends(require_no_session)])
async def new_code(
    body: NewCodeRequest, auth: AuthService = Depends(get_auth_service)
) -> MessageResponse:
    await auth.resend_code(str(body.email))
    return MessageResponse(success=True, message="verification code sent")


@router.api_route(
    "/login", methods=["GET", "POST"], dependencies=[Depends(require_no_session)]
)
async def login(
    body: LoginRequest,
    response: Response,
    settings: AppSettings = Depends(get_settings),
    auth: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    user, token = await auth.login(body.login, body.password)
    set_session_cookie(response, token, settings.auth)
    return LoginResponse(id=str(user.id), nickname=user.nickname, avatar=user.avatar)


@router.get("/logout")
async def logout(
    response: Response, settings: AppSettings = Depends(get_settings)
) -> MessageResponse:
    clear_session_cookie(response, settings.auth)
    return MessageResponse(success=True, message="logged out")


@router.get("/profile")
async def profile(
    user_id: uuid.UUID = Depends(get_current_user_id),
    users: UserService = Depends(get_user_service),
) -> ProfileResponse:
    return ProfileResponse.from_user(await users.get(user_id))
