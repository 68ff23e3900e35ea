"""
Response DTOs for templates, widgets and readmes.

List endpoints return bare JSON arrays of these shapes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from schemas.models.readme import Readme
from schemas.models.template import Template
from schemas.models.user import UserCard
from schemas.models.widget import Widget


class TemplateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    owner_id: str
    owner_nickname: Optional[str] = None
    owner_avatar: Optional[str] = None
    title: str
    image: str
    description: str
    text: list[str]
    links: list[str]
    widgets: list[dict[str, str]]
    order: list[str]
    likes: int
    num_of_users: int
    is_public: bool
    create_time: datetime
    last_update_time: datetime

    @classmethod
    def build(cls, template: Template, owner: Optional[UserCard] = None) -> "TemplateResponse":
        return cls(
            id=str(template.id),
            owner_id=str(template.owner_id),
            owner_nickname=owner.nickname if owner else None,
            owner_avatar=owner.avatar if owner else None,
            title=template.title,
            image=template.image,
            description=template.description,
            text=template.text,
            links=template.links,
            widgets=template.widgets,
            order=template.render_order,
            likes=template.likes,
            num_of_users=template.num_of_users,
            is_public=template.is_public,
            create_time=template.create_time,
            last_update_time=template.last_update_time,
        )


class WidgetResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    image: str
    description: str
    type: str
    tags: dict[str, Any]
    link: str
    likes: int
    num_of_users: int

    @classmethod
    def build(cls, widget: Widget) -> "WidgetResponse":
        return cls(**{**widget.model_dump(), "id": str(widget.id)})


class ReadmeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    owner_id: str
    template_id: str
    title: str
    image: str
    text: list[str]
    links: list[str]
    widgets: list[dict[str, str]]
    order: list[str]
    create_time: datetime
    last_update_time: datetime

    @classmethod
    def build(cls, readme: Readme) -> "ReadmeResponse":
        return cls(
            id=str(readme.id),
            owner_id=str(readme.owner_id),
            template_id=str(readme.template_id),
            title=readme.title,
            image=readme.image,
            text=readme.text,
            links=readme.links,
            widgets=readme.widgets,
            order=readme.render_order,
            create_time=readme.create_time,
            last_update_time=readme.last_update_time,
        )
