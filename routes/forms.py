"""Multipart helpers: the JSON payload rides in a form field next to an optional image."""

from __future__ import annotations

from typing import Optional, TypeVar

from fastapi import UploadFile
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from errors import InvalidFieldsError, InvalidValuesError

M = TypeVar("M", bound=BaseModel)

MAX_IMAGE_BYTES = 5 * 1024 * 1024


def parse_form_payload(model: type[M], raw: Optional[str]) -> M:
    try:
        return model.model_validate_json(raw or "{}")
    except PydanticValidationError as exc:
        details = {
            ".".join(str(p) for p in err["loc"]) or "data": err["msg"] for err in exc.errors()
        }
        raise InvalidFieldsError("invalid request data", field="data", details=details) from None


async def read_image(upload: Optional[UploadFile]) -> Optional[bytes]:
    if upload is None:
        return None
    data = await upload.read()
    if len(data) > MAX_IMAGE_BYTES:
        raise InvalidValuesError("image is too large", field="image")
    if data and upload.content_type and not upload.content_type.startswith("image/"):
        raise InvalidValuesError("file is not an image", field="image")
    return data or None
