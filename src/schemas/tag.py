"""Pydantic schemas for tags."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class TagInput(BaseModel):
    """A tag as supplied by the client: display label plus lookup value."""

    model_config = ConfigDict(extra="forbid")

    label: str = Field(..., min_length=1, max_length=100)
    value: str = Field(..., min_length=1, max_length=100)


class TagResponse(BaseModel):
    """Schema for an expanded tag."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    label: str
    value: str
    owner: UUID = Field(validation_alias="user_id")
    created_at: datetime


class TagListResponse(BaseModel):
    """Schema for the tags list response."""

    tags: list[TagResponse]
