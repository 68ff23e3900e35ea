"""
Response DTOs for authentication and user endpoints.

LoginResponse   — GET|POST /auth/login  (200, also sets the jwt cookie)
ProfileResponse — GET /auth/profile  (the caller's own account)
UserResponse    — GET /users/{id}  (public profile)
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from schemas.models.user import User


class LoginResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    nickname: str
    avatar: str


class UserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    nickname: str
    avatar: str
    time_of_register: datetime
    num_of_templates: int
    num_of_readmes: int

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=str(user.id),
            nickname=user.nickname,
            avatar=user.avatar,
            time_of_register=user.time_of_register,
            num_of_templates=user.num_of_templates,
            num_of_readmes=user.num_of_readmes,
        )


class ProfileResponse(UserResponse):
    login: str
    email: str

    @classmethod
    def from_user(cls, user: User) -> "ProfileResponse":
        base = UserResponse.from_user(user).model_dump()
        return cls(**base, login=user.login, email=user.email)
