"""Service layer for bookmark CRUD operations."""
import logging
from datetime import UTC, datetime
from urllib.parse import urlparse
from uuid import UUID

from sqlalchemy import Select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from models.bookmark import Bookmark
from schemas.bookmark import BookmarkCreate, BookmarkUpdate, ExpandedBookmark
from services import attachment_service
from services.category_service import get_owned_category
from services.exceptions import BookmarkNotFoundError, BookmarkPersistenceError
from services.owner_scope import OwnerScope, split_id_list
from services.tag_service import resolve_tags

logger = logging.getLogger(__name__)

COLLECTION = "bookmarks"

# Request fields copied onto the model as-is; the rest are derived or resolved
_PLAIN_FIELDS = (
    "url",
    "title",
    "description",
    "author",
    "content_text",
    "content_html",
    "content_type",
    "content_published_date",
    "note",
    "main_image_url",
    "icon_url",
    "importance",
)


def derive_domain(url: str) -> str:
    """Hostname of a bookmark URL ("https://Go.dev/doc" -> "go.dev")."""
    return urlparse(url).hostname or ""


def derive_flagged(flag: bool | None) -> datetime | None:
    """
    Turn the request's flag boolean into the stored timestamp.

    Flagging is never additive: every write either stamps the current time or clears it.
    """
    return datetime.now(UTC) if flag else None


def _with_relations(stmt: Select) -> Select:
    return stmt.options(
        selectinload(Bookmark.tag_objects),
        selectinload(Bookmark.category_object),
    )


async def list_bookmarks(
    db: AsyncSession,
    user_id: UUID,
    ids: str | None = None,
) -> list[Bookmark]:
    """
    Get all of a user's bookmarks, optionally restricted to a comma-separated id list.

    An empty or all-blank `ids` value means no id restriction. Category and
    tags are eagerly loaded.
    """
    stmt = OwnerScope(user_id).select(Bookmark, split_id_list(ids))
    result = await db.execute(
        _with_relations(stmt).order_by(Bookmark.created_at.desc(), Bookmark.id.desc()),
    )
    return list(result.scalars().all())


def expand_bookmark(bookmark: Bookmark) -> ExpandedBookmark:
    """Shape a bookmark for the list endpoint: expanded relations and resolved file URLs."""
    return ExpandedBookmark.from_bookmark(
        bookmark,
        icon_url=attachment_service.get_file_url(COLLECTION, bookmark.id, bookmark.icon),
        main_image_url=attachment_service.get_file_url(
            COLLECTION, bookmark.id, bookmark.main_image,
        ),
    )


async def get_bookmark(db: AsyncSession, user_id: UUID, bookmark_id: str) -> Bookmark:
    """
    Get a bookmark by id, scoped to user.

    Raises:
        BookmarkNotFoundError: If it doesn't exist or belongs to someone else.
    """
    stmt = _with_relations(OwnerScope(user_id).select_one(Bookmark, bookmark_id))
    result = await db.execute(stmt)
    bookmark = result.scalar_one_or_none()
    if bookmark is None:
        raise BookmarkNotFoundError(bookmark_id)
    return bookmark


async def _reload(db: AsyncSession, user_id: UUID, bookmark_id: UUID) -> Bookmark | None:
    """Re-read a bookmark after a write; None means the write left no row."""
    stmt = _with_relations(
        OwnerScope(user_id).select_one(Bookmark, bookmark_id),
    ).execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def create_bookmark(
    db: AsyncSession,
    user_id: UUID,
    data: BookmarkCreate,
) -> Bookmark:
    """
    Create a new bookmark for a user, then ingest its attachments.

    Raises:
        CategoryNotFoundError: If the category isn't one of the user's.
        BookmarkPersistenceError: If the insert produced no record.
        AttachmentFetchError: If an attachment fetch fails. The bookmark stays
            persisted with attachment_status="failed".

    Note:
        Does not commit. Caller (session generator) handles commit at request end.
    """
    category = await get_owned_category(db, user_id, data.category)
    tags = await resolve_tags(db, user_id, data.tags or [])

    bookmark = Bookmark(
        user_id=user_id,
        category_id=category.id,
        domain=derive_domain(data.url),
        flagged=derive_flagged(data.flagged),
        **{
            field: getattr(data, field)
            for field in _PLAIN_FIELDS
            if getattr(data, field) is not None
        },
    )
    bookmark.tag_objects = tags
    db.add(bookmark)
    await db.flush()

    created = await _reload(db, user_id, bookmark.id)
    if created is None:
        raise BookmarkPersistenceError("Bookmark creation failed")
    logger.info("Created bookmark %s for user %s", created.id, user_id)

    await attachment_service.ingest_attachments(db, created, data.attachment_urls)
    return created


async def update_bookmark(
    db: AsyncSession,
    user_id: UUID,
    data: BookmarkUpdate,
) -> Bookmark:
    """
    Apply a partial update to a user's bookmark, then re-ingest attachments.

    Only fields present in the request are written, except that tags are always
    re-resolved (omitted means none) and flagged is always re-derived.

    Raises:
        BookmarkNotFoundError: If it doesn't exist or belongs to someone else.
        CategoryNotFoundError: If a new category isn't one of the user's.
        BookmarkPersistenceError: If the update matched no record.
        AttachmentFetchError: If an attachment fetch fails.
    """
    bookmark = await get_bookmark(db, user_id, data.id)

    values = {
        field: getattr(data, field)
        for field in _PLAIN_FIELDS
        if field in data.model_fields_set
    }
    if "url" in values:
        values["domain"] = derive_domain(data.url)
    if "category" in data.model_fields_set:
        values["category_id"] = (await get_owned_category(db, user_id, data.category)).id

    tags = await resolve_tags(db, user_id, data.tags or [])
    values["flagged"] = derive_flagged(data.flagged)
    values["updated_at"] = datetime.now(UTC)

    result = await db.execute(
        OwnerScope(user_id).update(Bookmark, bookmark.id).values(**values),
    )
    if result.rowcount == 0:
        raise BookmarkPersistenceError("Bookmark update failed")

    bookmark.tag_objects = tags
    await db.flush()

    updated = await _reload(db, user_id, bookmark.id)
    if updated is None:
        raise BookmarkPersistenceError("Bookmark update failed")
    logger.info("Updated bookmark %s for user %s", updated.id, user_id)

    await attachment_service.ingest_attachments(db, updated, data.attachment_urls)
    return updated


async def delete_bookmark(db: AsyncSession, user_id: UUID, bookmark_id: str) -> bool:
    """
    Delete a user's bookmark.

    Ownership is checked on load and again in the DELETE statement itself.

    Returns:
        True if a row was deleted.

    Raises:
        BookmarkNotFoundError: If it doesn't exist or belongs to someone else.
    """
    bookmark = await get_bookmark(db, user_id, bookmark_id)
    result = await db.execute(OwnerScope(user_id).delete(Bookmark, bookmark.id))
    deleted = result.rowcount > 0
    logger.info("Deleted bookmark %s for user %s: %s", bookmark.id, user_id, deleted)
    return deleted
