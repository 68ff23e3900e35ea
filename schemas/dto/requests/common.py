"""Query-parameter DTOs shared by list endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class PaginationParams(BaseModel):
    """1-based pagination: ``offset = amount * (page - 1)``."""

    model_config = ConfigDict(populate_by_name=True)

    amount: int = Field(default=20, ge=1, le=100)
    page: int = Field(default=1, ge=1)
