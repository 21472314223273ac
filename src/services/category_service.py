"""Service layer for category operations."""
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models.category import Category
from schemas.category import CategoryCreate
from schemas.validators import slugify
from services.exceptions import CategoryAlreadyExistsError, CategoryNotFoundError
from services.owner_scope import OwnerScope


async def get_owned_category(db: AsyncSession, user_id: UUID, category_id: str) -> Category:
    """
    Get a category by id, scoped to user.

    Raises:
        CategoryNotFoundError: If the id is malformed, unknown, or another user's.
    """
    result = await db.execute(OwnerScope(user_id).select_one(Category, category_id))
    category = result.scalar_one_or_none()
    if category is None:
        raise CategoryNotFoundError(category_id)
    return category


async def list_categories(db: AsyncSession, user_id: UUID) -> list[Category]:
    """Get all categories for a user, ordered by name."""
    result = await db.execute(
        OwnerScope(user_id).select(Category).order_by(Category.name.asc()),
    )
    return list(result.scalars().all())


async def create_category(
    db: AsyncSession,
    user_id: UUID,
    data: CategoryCreate,
) -> Category:
    """
    Create a category for a user.

    Raises:
        CategoryAlreadyExistsError: If the derived slug is already used by this user.
    """
    slug = slugify(data.name) or "category"
    existing = await db.execute(
        select(Category.id).where(Category.user_id == user_id, Category.slug == slug),
    )
    if existing.scalar_one_or_none() is not None:
        raise CategoryAlreadyExistsError(slug)

    category = Category(
        user_id=user_id,
        name=data.name.strip(),
        slug=slug,
        description=data.description,
        color=data.color,
        icon=data.icon,
    )
    try:
        async with db.begin_nested():
            db.add(category)
            await db.flush()
    except IntegrityError as e:
        # Race condition: concurrent create with the same slug
        raise CategoryAlreadyExistsError(slug) from e
    await db.refresh(category)
    return category
