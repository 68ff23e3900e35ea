"""
Common response DTOs shared by several endpoints.

ErrorResponse   — ``{code, message}`` body from AppError.to_dict()
MessageResponse — generic ``{success, message}`` acknowledgement
HealthResponse  — GET /health
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ErrorResponse(BaseModel):
    """Standard error JSON body produced by the AppError exception handler."""

    model_config = ConfigDict(populate_by_name=True)

    code: str
    message: str
    field: Optional[str] = None
    details: Optional[Any] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: Optional[str] = None


class HealthResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str
    checks: dict[str, str]
