"""
Pydantic schemas for bookmark endpoints.

Create and update share one field definition (BookmarkFields); they differ only
in which fields are required. Unknown fields are rejected.
"""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from schemas.category import CategoryResponse
from schemas.tag import TagInput, TagResponse
from schemas.validators import validate_description_length, validate_title_length, validate_uri


class BookmarkFields(BaseModel):
    """Fields accepted by both create and update, all optional at this level."""

    model_config = ConfigDict(extra="forbid")

    url: str | None = None
    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    author: str | None = None
    content_text: str | None = None
    content_html: str | None = None
    content_type: str | None = None
    content_published_date: datetime | None = None
    note: str | None = None
    main_image_url: str | None = None
    icon_url: str | None = None
    importance: int | None = Field(default=None, ge=0, le=3)
    flagged: bool | None = None
    category: str | None = Field(default=None, min_length=1)
    tags: list[TagInput] | None = None

    @field_validator("url")
    @classmethod
    def check_url(cls, v: str | None) -> str | None:
        """Validate the url is an absolute URI with a host."""
        if v is None:
            raise ValueError("must be a string")
        return validate_uri(v)

    @field_validator("importance")
    @classmethod
    def check_importance(cls, v: int | None) -> int | None:
        """Importance may be omitted but not sent as null."""
        if v is None:
            raise ValueError("must be a number")
        return v

    @field_validator("title", "category")
    @classmethod
    def reject_null(cls, v: str | None) -> str | None:
        """Explicit null is not a value for title or category."""
        if v is None:
            raise ValueError("must be a string")
        return v

    @field_validator("title")
    @classmethod
    def check_title_length(cls, v: str | None) -> str | None:
        """Validate title length."""
        return validate_title_length(v)

    @field_validator("description")
    @classmethod
    def check_description_length(cls, v: str | None) -> str | None:
        """Validate description length."""
        return validate_description_length(v)

    @property
    def attachment_urls(self) -> dict[str, str]:
        """Non-empty attachment URLs in the request, keyed by the stored field name."""
        urls = {}
        if self.main_image_url:
            urls["main_image"] = self.main_image_url
        if self.icon_url:
            urls["icon"] = self.icon_url
        return urls


class BookmarkCreate(BookmarkFields):
    """Schema for creating a new bookmark (url, title and category required)."""

    url: str
    title: str = Field(min_length=1)
    category: str = Field(min_length=1)


class BookmarkUpdate(BookmarkFields):
    """Schema for a partial bookmark update; only `id` is required."""

    id: str = Field(min_length=1)


class BookmarkResponse(BaseModel):
    """
    Schema for a stored bookmark.

    Relations are rendered as references: `owner` and `category` as ids, `tags`
    as a list of tag ids, `icon`/`main_image` as stored file names.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner: UUID
    url: str
    title: str
    domain: str
    description: str | None
    author: str | None
    content_text: str | None
    content_html: str | None
    content_type: str | None
    content_published_date: datetime | None
    note: str | None
    main_image_url: str | None
    icon_url: str | None
    main_image: str | None
    icon: str | None
    importance: int
    flagged: datetime | None
    category: UUID | None
    tags: list[UUID]
    attachment_status: str
    attachment_error: str | None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="before")
    @classmethod
    def from_bookmark_model(cls, data: Any) -> Any:
        """
        Map ORM attribute names onto response names.

        Only reads tag_objects if it's already loaded (not lazy) to avoid
        triggering database queries outside async context.
        """
        if not hasattr(data, "__dict__") or isinstance(data, BaseModel):
            return data

        data_dict = {
            key: getattr(data, key)
            for key in cls.model_fields
            if key not in {"owner", "category", "tags"} and hasattr(data, key)
        }
        data_dict["owner"] = data.user_id
        data_dict["category"] = data.category_id
        loaded = data.__dict__
        if loaded.get("tag_objects") is not None:
            data_dict["tags"] = [tag.id for tag in loaded["tag_objects"]]
        else:
            data_dict["tags"] = []
        return data_dict


class BookmarkEnvelope(BaseModel):
    """Response body for create and update."""

    bookmark: BookmarkResponse


class ExpandedBookmark(BookmarkResponse):
    """
    Bookmark as returned by the list endpoint.

    The expanded `category` and `tags` objects replace the raw references, and
    `icon`/`main_image` hold fully resolved file URLs instead of file names.
    """

    category: CategoryResponse | None
    tags: list[TagResponse]

    @classmethod
    def from_bookmark(
        cls,
        bookmark: Any,
        icon_url: str | None,
        main_image_url: str | None,
    ) -> "ExpandedBookmark":
        """Build the expanded shape from a bookmark with category and tags loaded."""
        base = BookmarkResponse.model_validate(bookmark).model_dump(
            exclude={"category", "tags", "icon", "main_image"},
        )
        loaded = bookmark.__dict__
        category = loaded.get("category_object")
        return cls(
            **base,
            icon=icon_url,
            main_image=main_image_url,
            category=CategoryResponse.model_validate(category) if category else None,
            tags=[TagResponse.model_validate(tag) for tag in loaded.get("tag_objects") or []],
        )


class BookmarkListResponse(BaseModel):
    """Response body for the list endpoint."""

    bookmarks: list[ExpandedBookmark]


class DeleteResponse(BaseModel):
    """Response body for delete."""

    success: bool
