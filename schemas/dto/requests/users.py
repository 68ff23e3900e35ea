"""
Request DTOs for user endpoints.

ChangePasswordRequest — PATCH /users/password
DeleteUserRequest     — DELETE /users

PATCH /users is multipart (nickname + avatar file) and has no JSON DTO.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    old_password: str = Field(min_length=1)
    new_password: str = Field(min_length=12, max_length=256)


class DeleteUserRequest(BaseModel):
    """Account deletion must be confirmed with the current password."""

    model_config = ConfigDict(populate_by_name=True)

    password: str = Field(min_length=1)
