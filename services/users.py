"""Account management for the logged-in user."""

from __future__ import annotations

import uuid
from typing import Any, Optional

from errors import ForbiddenError, InvalidFieldsError
from infrastructure.db.transactor import Transactor
from repositories.base import DECREMENT
from repositories.templates import TemplateRepository
from repositories.users import UserRepository
from repositories.widgets import WidgetRepository
from schemas.models.user import User
from services.media import AVATARS, MediaStore
from shared.crypto import hash_password_async, verify_password_async
from shared.logging import get_logger

log = get_logger(__name__)


class UserService:
    def __init__(
        self,
        transactor: Transactor,
        users: UserRepository,
        templates: TemplateRepository,
        widgets: WidgetRepository,
        media: MediaStore,
    ) -> None:
        self._tx = transactor
        self._users = users
        self._templates = templates
        self._widgets = widgets
        self._media = media

    async def get(self, user_id: uuid.UUID | str) -> User:
        return await self._users.get(user_id)

    async def update(
        self,
        user_id: uuid.UUID,
        *,
        nickname: Optional[str] = None,
        avatar: Optional[bytes] = None,
    ) -> User:
        op = "users.update"
        if nickname is None and not avatar:
            raise InvalidFieldsError("nothing to update")

        uploaded = await self._media.upload(avatar, user_id, AVATARS)
        fields: dict[str, Any] = {}
        if nickname is not None:
            fields["nickname"] = nickname
        if uploaded is not None:
            fields["avatar"] = uploaded.url

        async def block() -> tuple[str, User]:
            previous = await self._users.get_avatar(user_id)
            await self._users.update(fields, user_id)
            return previous, await self._users.get(user_id)

        try:
            previous, user = await self._tx.run(block)
        except Exception as e:
            log.warning("user_update_failed", op=op, user_id=str(user_id), error_type=type(e).__name__)
            await self._media.discard(uploaded)
            raise

        if uploaded is not None:
            await self._media.discard_url(previous)
        log.info("user_updated", op=op, user_id=str(user_id), fields=sorted(fields))
        return user

    async def change_password(
        self, user_id: uuid.UUID, old_password: str, new_password: str
    ) -> None:
        op = "users.change_password"
        await self._confirm_password(user_id, old_password, op)
        new_hash = await hash_password_async(new_password)
        await self._users.change_password(user_id, new_hash)
        log.info("user_password_changed", op=op, user_id=str(user_id))

    async def delete(self, user_id: uuid.UUID, password: str) -> None:
        """Delete the account after re-checking its password.

        Readmes and favorites go with the user; published templates stay.
        Every like the user gave is taken back from its counter first.
        """
        op = "users.delete"
        await self._confirm_password(user_id, password, op)

        async def block() -> str:
            avatar = await self._users.get_avatar(user_id)
            for template_id in await self._templates.liked_by(user_id):
                await self._templates.update({"likes": DECREMENT}, template_id)
            for widget_id in await self._widgets.liked_by(user_id):
                await self._widgets.update({"likes": DECREMENT}, widget_id)
            await self._users.delete(user_id)
            return avatar

        avatar = await self._tx.run(block)
        await self._media.discard_url(avatar)
        log.info("user_deleted", op=op, user_id=str(user_id))

    async def _confirm_password(self, user_id: uuid.UUID, password: str, op: str) -> None:
        stored = await self._users.get_password(user_id)
        if not await verify_password_async(password, stored):
            log.info("user_password_rejected", op=op, user_id=str(user_id))
            raise ForbiddenError("wrong password")
