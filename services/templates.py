"""
Template service: owner-side writes and public reads.

Every write runs through the Transactor so the template row, the owner's
and the widgets' counters, and the refreshed cache entries move together.
Images are uploaded before the transaction opens; a failed write discards
the fresh upload, a successful one discards the image it replaced.
"""

from __future__ import annotations

import uuid
from typing import Any, Optional

from errors import InvalidFieldsError, NotFoundError
from infrastructure.db.transactor import Transactor
from repositories.base import DECREMENT, INCREMENT
from repositories.templates import TemplateRepository
from repositories.users import UserRepository
from repositories.widgets import WidgetRepository
from schemas.dto.requests.content import CreateTemplateRequest, UpdateTemplateRequest
from schemas.models.template import Template, widget_ids_of
from schemas.models.user import UserCard
from services.content import bump_widget_users, require_owner
from services.media import TEMPLATES, MediaStore
from shared.datetime_utils import utc_now
from shared.generators import new_id
from shared.logging import get_logger

log = get_logger(__name__)

WithOwner = tuple[Template, Optional[UserCard]]


class TemplateService:
    def __init__(
        self,
        transactor: Transactor,
        templates: TemplateRepository,
        widgets: WidgetRepository,
        users: UserRepository,
        media: MediaStore,
    ) -> None:
        self._tx = transactor
        self._templates = templates
        self._widgets = widgets
        self._users = users
        self._media = media

    # ── Writes ───────────────────────────────────────────────────────────────

    async def create(
        self, owner_id: uuid.UUID, request: CreateTemplateRequest, image: Optional[bytes] = None
    ) -> Template:
        op = "templates.create"
        uploaded = await self._media.upload(image, owner_id, TEMPLATES)
        content = request.content_fields()
        now = utc_now()
        template = Template(
            id=new_id(),
            owner_id=owner_id,
            title=request.title,
            image=uploaded.url if uploaded else "",
            description=request.description,
            is_public=request.is_public,
            create_time=now,
            last_update_time=now,
            **content,
        )

        async def block() -> None:
            await self._users.get(owner_id)
            await bump_widget_users(self._widgets, widget_ids_of(template.widgets))
            await self._templates.create(template)
            await self._users.update({"num_of_templates": INCREMENT}, owner_id)

        try:
            await self._tx.run(block)
        except Exception as e:
            log.warning("template_create_failed", op=op, owner_id=str(owner_id), error_type=type(e).__name__)
            await self._media.discard(uploaded)
            raise
        log.info("template_created", op=op, template_id=str(template.id), owner_id=str(owner_id))
        return template

    async def update(
        self,
        owner_id: uuid.UUID,
        template_id: uuid.UUID,
        request: UpdateTemplateRequest,
        image: Optional[bytes] = None,
    ) -> Template:
        op = "templates.update"
        fields: dict[str, Any] = request.to_fields()
        if not fields and not image:
            raise InvalidFieldsError("nothing to update")

        uploaded = await self._media.upload(image, owner_id, TEMPLATES)
        if uploaded is not None:
            fields["image"] = uploaded.url
        fields["last_update_time"] = utc_now()

        async def block() -> tuple[str, Template]:
            current = await self._templates.get(template_id)
            require_owner(owner_id, current.owner_id, "template")
            return current.image, await self._templates.update(fields, template_id)

        try:
            previous_image, template = await self._tx.run(block)
        except Exception as e:
            log.warning("template_update_failed", op=op, template_id=str(template_id), error_type=type(e).__name__)
            await self._media.discard(uploaded)
            raise

        if uploaded is not None:
            await self._media.discard_url(previous_image)
        log.info("template_updated", op=op, template_id=str(template_id), fields=sorted(fields))
        return template

    async def delete(self, owner_id: uuid.UUID, template_id: uuid.UUID) -> None:
        op = "templates.delete"

        async def block() -> str:
            current = await self._templates.get(template_id)
            require_owner(owner_id, current.owner_id, "template")
            await self._templates.delete(template_id)
            await self._users.update({"num_of_templates": DECREMENT}, owner_id)
            return current.image

        try:
            image = await self._tx.run(block)
        except Exception as e:
            log.warning("template_delete_failed", op=op, template_id=str(template_id), error_type=type(e).__name__)
            raise
        await self._media.discard_url(image)
        log.info("template_deleted", op=op, template_id=str(template_id))

    async def like(self, user_id: uuid.UUID, template_id: uuid.UUID) -> bool:
        """Add to favorites and bump ``likes``; a repeated like changes nothing."""
        return await self._toggle_like(user_id, template_id, like=True)

    async def dislike(self, user_id: uuid.UUID, template_id: uuid.UUID) -> bool:
        return await self._toggle_like(user_id, template_id, like=False)

    async def _toggle_like(self, user_id: uuid.UUID, template_id: uuid.UUID, *, like: bool) -> bool:
        op = "templates.like" if like else "templates.dislike"

        async def block() -> bool:
            await self._visible(template_id, user_id)
            if like:
                changed = await self._templates.like(template_id, user_id)
            else:
                changed = await self._templates.dislike(template_id, user_id)
            if changed:
                await self._templates.update(
                    {"likes": INCREMENT if like else DECREMENT}, template_id
                )
            return changed

        changed = await self._tx.run(block)
        log.info(
            "template_like_toggled",
            op=op,
            template_id=str(template_id),
            user_id=str(user_id),
            changed=changed,
        )
        return changed

    # ── Reads ────────────────────────────────────────────────────────────────

    async def get(self, template_id: uuid.UUID, viewer_id: Optional[uuid.UUID] = None) -> WithOwner:
        template = await self._visible(template_id, viewer_id)
        owners = await self._users.get_by_ids([template.owner_id])
        return template, owners[0] if owners else None

    async def fetch(self, amount: int, page: int) -> list[WithOwner]:
        return await self._with_owners(await self._templates.fetch(amount, page))

    async def fetch_by_owner(
        self,
        owner_id: uuid.UUID,
        amount: int,
        page: int,
        viewer_id: Optional[uuid.UUID] = None,
    ) -> list[WithOwner]:
        """An owner sees all of their templates, anyone else the public ones."""
        items = await self._templates.fetch_by_owner(
            owner_id, amount, page, public_only=viewer_id != owner_id
        )
        return await self._with_owners(items)

    async def sort(self, amount: int, page: int, field: str, direction: str = "desc") -> list[WithOwner]:
        return await self._with_owners(await self._templates.sort(amount, page, field, direction))

    async def search(self, query: str, amount: int, page: int) -> list[WithOwner]:
        items = await self._templates.search(query, amount, page)
        return await self._with_owners([t for t in items if t.is_public])

    async def fetch_favorite(self, user_id: uuid.UUID, amount: int, page: int) -> list[WithOwner]:
        return await self._with_owners(await self._templates.fetch_favorite(user_id, amount, page))

    async def _visible(self, template_id: uuid.UUID, viewer_id: Optional[uuid.UUID]) -> Template:
        template = await self._templates.get(template_id)
        if not template.is_public and template.owner_id != viewer_id:
            raise NotFoundError("template not found")
        return template

    async def _with_owners(self, items: list[Template]) -> list[WithOwner]:
        owner_ids = list(dict.fromkeys(t.owner_id for t in items))
        cards = {card.id: card for card in await self._users.get_by_ids(owner_ids)}
        return [(t, cards.get(t.owner_id)) for t in items]
