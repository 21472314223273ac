"""Binary files ingested for a bookmark (icon, main image)."""
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, UUIDv7Mixin

if TYPE_CHECKING:
    from models.bookmark import Bookmark


class BookmarkAttachment(Base, UUIDv7Mixin):
    """
    One stored file per (bookmark, field).

    `field` is the bookmark attribute the file backs ("icon" or "main_image");
    `filename` is the public name used in file URLs.
    """

    __tablename__ = "bookmark_attachments"
    __table_args__ = (
        UniqueConstraint("bookmark_id", "field", name="uq_bookmark_attachments_bookmark_field"),
    )

    bookmark_id: Mapped[UUID] = mapped_column(
        ForeignKey("bookmarks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    field: Mapped[str] = mapped_column(String(32), nullable=False)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    content_type: Mapped[str] = mapped_column(Text, nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    source_url: Mapped[str] = mapped_column(Text, nullable=False)
    # Deferred so listing attachments never drags file bodies along
    data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False, deferred=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    bookmark: Mapped["Bookmark"] = relationship(back_populates="attachments")
