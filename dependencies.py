"""
FastAPI dependency providers.

All injectable dependencies are defined here as plain functions used with
FastAPI's Depends() system. Services and settings live on app.state; the
lifespan in app.py puts them there.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Depends, Query, Request

from config import AppSettings
from errors import AlreadyLoggedInError, AuthenticationError
from schemas.dto.requests.common import PaginationParams
from services.auth import AuthService
from services.readmes import ReadmeService
from services.templates import TemplateService
from services.users import UserService
from services.widgets import WidgetService


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


def get_template_service(request: Request) -> TemplateService:
    return request.app.state.template_service


def get_widget_service(request: Request) -> WidgetService:
    return request.app.state.widget_service


def get_readme_service(request: Request) -> ReadmeService:
    return request.app.state.readme_service


def _session_cookie(request: Request, settings: AppSettings) -> Optional[str]:
    return request.cookies.get(settings.auth.cookie_name)


def get_current_user_id(
    request: Request,
    settings: AppSettings = Depends(get_settings),
    auth: AuthService = Depends(get_auth_service),
) -> uuid.UUID:
    """The logged-in user's id; 401 without a valid session cookie."""
    return auth.authenticate(_session_cookie(request, settings))


def get_optional_user_id(
    request: Request,
    settings: AppSettings = Depends(get_settings),
    auth: AuthService = Depends(get_auth_service),
) -> Optional[uuid.UUID]:
    """Like get_current_user_id, but anonymous visitors get None."""
    token = _session_cookie(request, settings)
    if not token:
        return None
    try:
        return auth.authenticate(token)
    except AuthenticationError:
        return None


def require_no_session(
    request: Request, settings: AppSettings = Depends(get_settings)
) -> None:
    """Pre-login routes refuse callers that already carry a session cookie."""
    if _session_cookie(request, settings):
        raise AlreadyLoggedInError("already logged in")


def get_pagination(
    amount: int = Query(default=20, ge=1, le=100),
    page: int = Query(default=1, ge=1),
) -> PaginationParams:
    return PaginationParams(amount=amount, page=page)
