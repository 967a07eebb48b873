"""
Base schemas and common response models.
"""
from datetime import datetime
from typing import Any, Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class TimestampSchema(BaseSchema):
    """Schema mixin for timestamps."""

    created_at: datetime
    updated_at: datetime


class IDSchema(BaseSchema):
    """Schema mixin for UUID ID."""

    id: UUID


class ErrorResponse(BaseSchema):
    """Error body rendered by the APIException handler."""

    error: str
    message: str
    details: Optional[Any] = None
