"""ImageHost protocol — services depend on this, not the concrete implementation."""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class UploadedImage:
    url: str
    public_id: str


class ImageHost(Protocol):
    async def upload(self, data: bytes, filename: str, folder: str) -> UploadedImage: ...

    async def delete(self, public_id: str) -> None: ...

    def public_id_from_url(self, url: str) -> str: ...
