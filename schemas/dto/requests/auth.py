"""
Request DTOs for authentication endpoints.

SendCodeRequest  — POST /auth/verify
RegisterRequest  — POST /auth/register
NewCodeRequest   — POST /auth/new-code
LoginRequest     — GET|POST /auth/login
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class SendCodeRequest(BaseModel):
    """Request body for POST /auth/verify (begins registration)."""

    model_config = ConfigDict(populate_by_name=True)

    nickname: str = Field(min_length=1, max_length=80)
    login: str = Field(min_length=1, max_length=80)
    email: EmailStr
    password: str = Field(min_length=12, max_length=256)


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register.

    ``code`` is the 6-digit code e-mailed by /auth/verify.
    """

    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    code: str = Field(pattern=r"^\d{6}$")


class NewCodeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr


class LoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    login: str = Field(min_length=1, max_length=80)
    password: str = Field(min_length=1)
