"""SQLAlchemy models."""
from models.base import Base, TimestampMixin, UUIDv7Mixin
from models.tag import Tag, bookmark_tags  # Must be before bookmark due to import
from models.category import Category
from models.bookmark import AttachmentStatus, Bookmark
from models.attachment import BookmarkAttachment
from models.user import User

__all__ = [
    "AttachmentStatus",
    "Base",
    "Bookmark",
    "BookmarkAttachment",
    "Category",
    "Tag",
    "TimestampMixin",
    "UUIDv7Mixin",
    "User",
    "bookmark_tags",
]
