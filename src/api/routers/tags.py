"""Tag listing endpoint."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_user
from models.user import User
from schemas.tag import TagListResponse, TagResponse
from services.tag_service import list_tags

router = APIRouter(prefix="/tags", tags=["tags"])


@router.get("/", response_model=TagListResponse)
async def list_user_tags(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> TagListResponse:
    """
    Get all tags for the current user, ordered by value.

    Tags are created implicitly when a bookmark is saved with them.
    """
    tags = await list_tags(db, current_user.id)
    return TagListResponse(tags=[TagResponse.model_validate(t) for t in tags])
