"""
Request DTOs for templates and readmes.

Create/update endpoints are multipart: the JSON payload travels in the
``data`` form field and the optional picture in ``image``.

CreateTemplateRequest / UpdateTemplateRequest — /templates
CreateReadmeRequest / UpdateReadmeRequest     — /readmes
"""

from __future__ import annotations

import uuid
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

WidgetSlots = list[dict[uuid.UUID, str]]


class _ContentBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    text: list[uuid.UUID] = []
    links: list[uuid.UUID] = []
    widgets: WidgetSlots = []
    render_order: list[str] = Field(default_factory=list, alias="order")

    def content_fields(self) -> dict[str, Any]:
        return {
            "text": [str(i) for i in self.text],
            "links": [str(i) for i in self.links],
            "widgets": [{str(k): v for k, v in slot.items()} for slot in self.widgets],
            "render_order": list(self.render_order),
        }


class CreateTemplateRequest(_ContentBody):
    title: str = Field(min_length=1, max_length=50)
    description: str = Field(min_length=1, max_length=1000)
    is_public: bool = True


class CreateReadmeRequest(_ContentBody):
    # omitted → the readme is not based on any template
    template_id: Optional[uuid.UUID] = None
    title: str = Field(min_length=1, max_length=80)


class _ContentPatch(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    text: Optional[list[uuid.UUID]] = None
    links: Optional[list[uuid.UUID]] = None
    widgets: Optional[WidgetSlots] = None
    render_order: Optional[list[str]] = Field(default=None, alias="order")

    def to_fields(self) -> dict[str, Any]:
        """Only the keys the client actually sent, in storage form."""
        data = self.model_dump(exclude_unset=True)
        fields: dict[str, Any] = {}
        for key, value in data.items():
            if value is None:
                continue
            if key in ("text", "links"):
                value = [str(i) for i in value]
            elif key == "widgets":
                value = [{str(k): v for k, v in slot.items()} for slot in value]
            fields[key] = value
        return fields


class UpdateTemplateRequest(_ContentPatch):
    title: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, min_length=1, max_length=1000)
    is_public: Optional[bool] = None


class UpdateReadmeRequest(_ContentPatch):
    title: Optional[str] = Field(default=None, min_length=1, max_length=80)
