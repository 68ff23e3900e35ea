"""Image upload helpers shared by the content services.

Uploads happen outside any transaction. When the write that needed the
image fails, or an image is replaced or its owner deleted, the old image is
removed best-effort: a failed removal is logged, never raised.
"""

from __future__ import annotations

import uuid
from typing import Optional

from infrastructure.images.protocol import ImageHost, UploadedImage
from shared.generators import image_filename
from shared.datetime_utils import utc_now
from shared.logging import get_logger

log = get_logger(__name__)

AVATARS = "avatars"
TEMPLATES = "templates"
READMES = "readmes"


class MediaStore:
    def __init__(self, host: ImageHost) -> None:
        self._host = host

    async def upload(
        self, data: Optional[bytes], owner_id: uuid.UUID, folder: str
    ) -> Optional[UploadedImage]:
        if not data:
            return None
        filename = image_filename(owner_id, int(utc_now().timestamp()))
        return await self._host.upload(data, filename, folder)

    async def discard(self, image: Optional[UploadedImage]) -> None:
        if image is not None:
            await self._discard_public_id(image.public_id)

    async def discard_url(self, url: Optional[str]) -> None:
        if url:
            await self._discard_public_id(self._host.public_id_from_url(url))

    async def _discard_public_id(self, public_id: str) -> None:
        if not public_id:
            return
        try:
            await self._host.delete(public_id)
        except Exception as e:
            log.warning(
                "image_discard_failed",
                public_id=public_id,
                error=str(e),
                error_type=type(e).__name__,
            )
