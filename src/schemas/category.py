"""Pydantic schemas for category endpoints."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CategoryCreate(BaseModel):
    """Schema for creating a category; the slug is derived from the name."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    color: str | None = Field(default=None, max_length=32)
    icon: str | None = Field(default=None, max_length=64)


class CategoryResponse(BaseModel):
    """Schema for an expanded category."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    slug: str
    description: str | None
    color: str | None
    icon: str | None
    owner: UUID = Field(validation_alias="user_id")
    created_at: datetime


class CategoryListResponse(BaseModel):
    """Schema for the categories list response."""

    categories: list[CategoryResponse]
