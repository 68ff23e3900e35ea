"""Cloudinary implementation of ImageHost over its signed REST upload API.

Signature = sha1 of the alphabetically sorted ``key=value`` parameters
joined by ``&`` with the API secret appended.
"""

from __future__ import annotations

import hashlib
import time
from typing import Any
from urllib.parse import urlparse

from config import CloudStorageSettings
from errors import InternalError
from infrastructure.http_client import HttpClient
from infrastructure.images.protocol import UploadedImage
from shared.logging import get_logger

log = get_logger(__name__)

_API_BASE = "https://api.cloudinary.com/v1_1"


class ImageHostError(InternalError):
    error_code = "image_host_error"


def sign_params(params: dict[str, Any], api_secret: str) -> str:
    to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params) if params[k] != "")
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


def public_id_from_url(url: str) -> str:
    """``.../image/upload/v1712/readmes/abc-1712.png`` → ``readmes/abc-1712``."""
    path = urlparse(url).path
    marker = "/upload/"
    if marker not in path:
        return ""
    parts = path.split(marker, 1)[1].split("/")
    # drop the optional version segment
    if parts and parts[0].startswith("v") and parts[0][1:].isdigit():
        parts = parts[1:]
    tail = "/".join(parts)
    return tail.rsplit(".", 1)[0] if "." in tail.rsplit("/", 1)[-1] else tail


class CloudinaryImageHost:
    def __init__(self, settings: CloudStorageSettings, http_client: HttpClient) -> None:
        self._settings = settings
        self._http = http_client

    def _endpoint(self, action: str) -> str:
        return f"{_API_BASE}/{self._settings.cloud_name}/image/{action}"

    def _signed(self, params: dict[str, Any]) -> dict[str, Any]:
        params = {**params, "timestamp": int(time.time())}
        return {
            **params,
            "api_key": self._settings.api_key,
            "signature": sign_params(params, self._settings.api_secret),
        }

    async def upload(self, data: bytes, filename: str, folder: str) -> UploadedImage:
        form = self._signed({"folder": folder, "public_id": filename})
        response = await self._http.post(
            self._endpoint("upload"),
            data={k: str(v) for k, v in form.items()},
            files={"file": (filename, data)},
        )
        if response.status_code != 200:
            log.error(
                "image_upload_failed",
                folder=folder,
                status_code=response.status_code,
                response=response.text[:200],
            )
            raise ImageHostError(f"image upload failed with {response.status_code}")
        body = response.json()
        log.info("image_uploaded", folder=folder, public_id=body["public_id"])
        return UploadedImage(url=body["secure_url"], public_id=body["public_id"])

    async def delete(self, public_id: str) -> None:
        if not public_id:
            return
        form = self._signed({"public_id": public_id})
        response = await self._http.post(
            self._endpoint("destroy"), data={k: str(v) for k, v in form.items()}
        )
        if response.status_code != 200:
            log.error(
                "image_delete_failed",
                public_id=public_id,
                status_code=response.status_code,
            )
            raise ImageHostError(f"image delete failed with {response.status_code}")
        log.info("image_deleted", public_id=public_id)

    def public_id_from_url(self, url: str) -> str:
        return public_id_from_url(url)
