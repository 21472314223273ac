"""Bookmark model for storing user bookmarks."""
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin, UUIDv7Mixin
from models.tag import bookmark_tags

if TYPE_CHECKING:
    from models.attachment import BookmarkAttachment
    from models.category import Category
    from models.tag import Tag
    from models.user import User


class AttachmentStatus(StrEnum):
    """
    Progress of the attachment step that follows a create/update.

    PENDING is the intermediate state between the structured write and the
    binary ingestion; FAILED records are retried by re-sending the URLs.
    """

    NONE = "none"
    PENDING = "pending"
    STORED = "stored"
    FAILED = "failed"


class Bookmark(Base, UUIDv7Mixin, TimestampMixin):
    """Bookmark model - stores URLs with extracted content, media and tags."""

    __tablename__ = "bookmarks"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    category_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    url: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    domain: Mapped[str] = mapped_column(Text, nullable=False, default="")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    author: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_html: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_published_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    main_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    icon_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    importance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Non-null means flagged; holds the time the flag was (re)applied
    flagged: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None,
    )

    # Stored file names of ingested attachments (see BookmarkAttachment)
    main_image: Mapped[str | None] = mapped_column(String(255), nullable=True)
    icon: Mapped[str | None] = mapped_column(String(255), nullable=True)
    attachment_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=AttachmentStatus.NONE.value,
    )
    attachment_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    user: Mapped["User"] = relationship(back_populates="bookmarks")
    category_object: Mapped["Category | None"] = relationship(back_populates="bookmarks")
    tag_objects: Mapped[list["Tag"]] = relationship(
        secondary=bookmark_tags,
        back_populates="bookmarks",
    )
    attachments: Mapped[list["BookmarkAttachment"]] = relationship(
        back_populates="bookmark",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
