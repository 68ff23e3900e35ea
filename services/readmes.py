"""
Readme service.

Creating a readme is the widest write in the system: in one transaction it
checks the owner, bumps the source template's ``num_of_users``, bumps every
referenced widget's ``num_of_users``, inserts the readme and bumps the
owner's ``num_of_readmes``. Any failure leaves all counters untouched.
"""

from __future__ import annotations

import uuid
from typing import Any, Optional

from errors import InvalidFieldsError
from infrastructure.db.transactor import Transactor
from repositories.base import DECREMENT, INCREMENT
from repositories.readmes import ReadmeRepository
from repositories.templates import TemplateRepository
from repositories.users import UserRepository
from repositories.widgets import WidgetRepository
from schemas.dto.requests.content import CreateReadmeRequest, UpdateReadmeRequest
from schemas.models.base import NIL_ID
from schemas.models.readme import Readme
from schemas.models.template import widget_ids_of
from services.content import bump_widget_users, require_owner
from services.media import READMES, MediaStore
from shared.datetime_utils import utc_now
from shared.generators import new_id
from shared.logging import get_logger

log = get_logger(__name__)


class ReadmeService:
    def __init__(
        self,
        transactor: Transactor,
        readmes: ReadmeRepository,
        templates: TemplateRepository,
        widgets: WidgetRepository,
        users: UserRepository,
        media: MediaStore,
    ) -> None:
        self._tx = transactor
        self._readmes = readmes
        self._templates = templates
        self._widgets = widgets
        self._users = users
        self._media = media

    async def create(
        self, owner_id: uuid.UUID, request: CreateReadmeRequest, image: Optional[bytes] = None
    ) -> Readme:
        op = "readmes.create"
        uploaded = await self._media.upload(image, owner_id, READMES)
        now = utc_now()
        readme = Readme(
            id=new_id(),
            owner_id=owner_id,
            template_id=request.template_id or NIL_ID,
            title=request.title,
            image=uploaded.url if uploaded else "",
            create_time=now,
            last_update_time=now,
            **request.content_fields(),
        )

        async def block() -> None:
            await self._users.get(owner_id)
            if readme.template_id != NIL_ID:
                template = await self._templates.get(readme.template_id)
                if not template.is_public:
                    require_owner(owner_id, template.owner_id, "template")
                await self._templates.update({"num_of_users": INCREMENT}, template.id)
            await bump_widget_users(self._widgets, widget_ids_of(readme.widgets))
            await self._readmes.create(readme)
            await self._users.update({"num_of_readmes": INCREMENT}, owner_id)

        try:
            await self._tx.run(block)
        except Exception as e:
            log.warning("readme_create_failed", op=op, owner_id=str(owner_id), error_type=type(e).__name__)
            await self._media.discard(uploaded)
            raise
        log.info(
            "readme_created",
            op=op,
            readme_id=str(readme.id),
            template_id=str(readme.template_id),
            owner_id=str(owner_id),
        )
        return readme

    async def update(
        self,
        owner_id: uuid.UUID,
        readme_id: uuid.UUID,
        request: UpdateReadmeRequest,
        image: Optional[bytes] = None,
    ) -> Readme:
        op = "readmes.update"
        fields: dict[str, Any] = request.to_fields()
        if not fields and not image:
            raise InvalidFieldsError("nothing to update")

        uploaded = await self._media.upload(image, owner_id, READMES)
        if uploaded is not None:
            fields["image"] = uploaded.url
        fields["last_update_time"] = utc_now()

        async def block() -> tuple[str, Readme]:
            current = await self._readmes.get(readme_id)
            require_owner(owner_id, current.owner_id, "readme")
            await self._readmes.update(fields, readme_id)
            return current.image, await self._readmes.get(readme_id)

        try:
            previous_image, readme = await self._tx.run(block)
        except Exception as e:
            log.warning("readme_update_failed", op=op, readme_id=str(readme_id), error_type=type(e).__name__)
            await self._media.discard(uploaded)
            raise

        if uploaded is not None:
            await self._media.discard_url(previous_image)
        log.info("readme_updated", op=op, readme_id=str(readme_id), fields=sorted(fields))
        return readme

    async def delete(self, owner_id: uuid.UUID, readme_id: uuid.UUID) -> None:
        op = "readmes.delete"

        async def block() -> str:
            current = await self._readmes.get(readme_id)
            require_owner(owner_id, current.owner_id, "readme")
            await self._readmes.delete(readme_id)
            await self._users.update({"num_of_readmes": DECREMENT}, owner_id)
            return current.image

        try:
            image = await self._tx.run(block)
        except Exception as e:
            log.warning("readme_delete_failed", op=op, readme_id=str(readme_id), error_type=type(e).__name__)
            raise
        await self._media.discard_url(image)
        log.info("readme_deleted", op=op, readme_id=str(readme_id))

    async def get(self, owner_id: uuid.UUID, readme_id: uuid.UUID) -> Readme:
        readme = await self._readmes.get(readme_id)
        require_owner(owner_id, readme.owner_id, "readme")
        return readme

    async def fetch_by_user(self, owner_id: uuid.UUID, amount: int, page: int) -> list[Readme]:
        return await self._readmes.fetch_by_owner(owner_id, amount, page)
