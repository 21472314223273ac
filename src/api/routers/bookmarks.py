"""
Bookmark endpoints.

One resource path serves all four operations: GET lists (optionally by
`?ids=`), POST creates, PATCH updates the bookmark named by `id` in the body,
and DELETE removes the bookmark named by `?id=`. Errors use the
{"success": false, "error": ...} envelope; authentication failures are passed
through from the auth dependency unchanged.
"""
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_user
from api.errors import error_response
from models.user import User
from schemas.bookmark import (
    BookmarkCreate,
    BookmarkEnvelope,
    BookmarkListResponse,
    BookmarkResponse,
    BookmarkUpdate,
    DeleteResponse,
)
from services import bookmark_service
from services.exceptions import (
    AttachmentFetchError,
    BookmarkNotFoundError,
    BookmarkPersistenceError,
    CategoryNotFoundError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookmarks", tags=["bookmarks"])

_ERROR_RESPONSES = {
    400: {"description": "Validation failed or the write produced no record"},
    404: {"description": "Bookmark not found"},
    500: {"description": "Unexpected failure (database or attachment fetch)"},
}


async def _unexpected(db: AsyncSession, operation: str, exc: Exception) -> JSONResponse:
    """Roll back and report an unexpected failure as a 500 with the raw message."""
    logger.exception("Bookmark %s failed", operation)
    await db.rollback()
    return error_response(500, str(exc))


@router.get("/", response_model=BookmarkListResponse, responses={500: _ERROR_RESPONSES[500]})
async def list_bookmarks(
    ids: str | None = Query(default=None, description="Comma-separated bookmark ids"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkListResponse | JSONResponse:
    """
    List the current user's bookmarks.

    - **ids**: restrict to these ids; empty means all of the user's bookmarks

    Category and tags are expanded inline; icon and main_image are file URLs.
    """
    try:
        bookmarks = await bookmark_service.list_bookmarks(db, current_user.id, ids)
        items = [bookmark_service.expand_bookmark(b) for b in bookmarks]
    except Exception as e:
        return await _unexpected(db, "list", e)
    return BookmarkListResponse(bookmarks=items)


@router.post(
    "/",
    response_model=BookmarkEnvelope,
    status_code=201,
    responses={400: _ERROR_RESPONSES[400], 500: _ERROR_RESPONSES[500]},
)
async def create_bookmark(
    data: BookmarkCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkEnvelope | JSONResponse:
    """Create a bookmark, then fetch and store its icon / main image if URLs are given."""
    try:
        bookmark = await bookmark_service.create_bookmark(db, current_user.id, data)
    except (CategoryNotFoundError, BookmarkPersistenceError) as e:
        return error_response(400, str(e))
    except AttachmentFetchError as e:
        # The bookmark stays persisted with attachment_status="failed"
        return error_response(500, str(e))
    except Exception as e:
        return await _unexpected(db, "create", e)
    return BookmarkEnvelope(bookmark=BookmarkResponse.model_validate(bookmark))


@router.patch("/", response_model=BookmarkEnvelope, responses=_ERROR_RESPONSES)
async def update_bookmark(
    data: BookmarkUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkEnvelope | JSONResponse:
    """
    Partially update the bookmark named by `id`.

    Tags are replaced by the request's tags and `flagged` is re-derived on every
    update. Attachment URLs present in the request are always re-fetched.
    """
    try:
        bookmark = await bookmark_service.update_bookmark(db, current_user.id, data)
    except BookmarkNotFoundError as e:
        return error_response(404, str(e))
    except (CategoryNotFoundError, BookmarkPersistenceError) as e:
        return error_response(400, str(e))
    except AttachmentFetchError as e:
        return error_response(500, str(e))
    except Exception as e:
        return await _unexpected(db, "update", e)
    return BookmarkEnvelope(bookmark=BookmarkResponse.model_validate(bookmark))


@router.delete("/", response_model=DeleteResponse, responses=_ERROR_RESPONSES)
async def delete_bookmark(
    id: str | None = Query(default=None, description="Bookmark id"),  # noqa: A002
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> DeleteResponse | JSONResponse:
    """Delete the bookmark named by `id`."""
    if not id:
        return error_response(400, "Bookmark ID is required")
    try:
        success = await bookmark_service.delete_bookmark(db, current_user.id, id)
    except BookmarkNotFoundError as e:
        return error_response(404, str(e))
    except Exception as e:
        return await _unexpected(db, "delete", e)
    return DeleteResponse(success=success)
