"""
Base model for all relational row models.

RowModel provides from_row() / to_cache() / from_cache() for round-tripping
between SQLAlchemy result rows, Python objects and the JSON projection the
cache stores under the aggregate id.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import Any, Mapping, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, field_validator

from shared.datetime_utils import ensure_utc

# Base template: a readme created without a template points at the nil id.
NIL_ID = uuid.UUID(int=0)

M = TypeVar("M", bound="RowModel")


class RowModel(BaseModel):
    """
    Base for all aggregate models.

    from_row()   — builds a model from a SQLAlchemy ``Row`` / mapping
                   (returns None gracefully when passed None)
    to_cache()   — JSON projection stored in the cache
    from_cache() — inverse of to_cache()
    """

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    @field_validator("*", mode="after")
    @classmethod
    def _normalise_datetimes(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return ensure_utc(value)
        return value

    @classmethod
    def from_row(cls: type[M], row: Optional[Any]) -> Optional[M]:
        if row is None:
            return None
        mapping: Mapping[str, Any] = row._mapping if hasattr(row, "_mapping") else row
        return cls.model_validate(dict(mapping))

    def to_cache(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_cache(cls: type[M], raw: str | bytes) -> M:
        return cls.model_validate(json.loads(raw))
