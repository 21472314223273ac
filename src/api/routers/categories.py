"""Category endpoints."""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_user
from models.user import User
from schemas.category import CategoryCreate, CategoryListResponse, CategoryResponse
from services import category_service
from services.exceptions import CategoryAlreadyExistsError

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("/", response_model=CategoryListResponse)
async def list_categories(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> CategoryListResponse:
    """Get all categories for the current user, ordered by name."""
    categories = await category_service.list_categories(db, current_user.id)
    return CategoryListResponse(
        categories=[CategoryResponse.model_validate(c) for c in categories],
    )


@router.post("/", response_model=CategoryResponse, status_code=201)
async def create_category(
    data: CategoryCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> CategoryResponse:
    """
    Create a category.

    The slug is derived from the name. Returns 409 if the current user already
    has a category with the same slug.
    """
    try:
        category = await category_service.create_category(db, current_user.id, data)
    except CategoryAlreadyExistsError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        ) from e
    return CategoryResponse.model_validate(category)
