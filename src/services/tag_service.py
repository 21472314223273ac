"""Service layer for tag operations."""
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models.tag import Tag
from schemas.tag import TagInput
from schemas.validators import normalize_tag_value

logger = logging.getLogger(__name__)


def normalize_tag_inputs(tags: list[TagInput]) -> dict[str, str]:
    """
    Normalize client tags into an ordered {value: label} mapping.

    Values are normalized with normalize_tag_value; empty values are dropped and
    the first label wins for duplicate values.
    """
    wanted: dict[str, str] = {}
    for tag in tags:
        value = normalize_tag_value(tag.value)
        if not value or value in wanted:
            continue
        wanted[value] = tag.label.strip() or value
    return wanted


async def _get_tag_by_value(db: AsyncSession, user_id: UUID, value: str) -> Tag | None:
    result = await db.execute(
        select(Tag).where(Tag.user_id == user_id, Tag.value == value),
    )
    return result.scalar_one_or_none()


async def _insert_tag(db: AsyncSession, user_id: UUID, value: str, label: str) -> Tag:
    """
    Insert a tag inside a savepoint.

    If a concurrent request inserted the same (user_id, value) first, the unique
    constraint fires, the savepoint is rolled back, and the winner's row is
    returned instead.
    """
    tag = Tag(user_id=user_id, label=label, value=value)
    try:
        async with db.begin_nested():
            db.add(tag)
            await db.flush()
    except IntegrityError:
        existing = await _get_tag_by_value(db, user_id, value)
        if existing is None:
            raise
        return existing

    logger.info("Created tag %r for user %s", value, user_id)
    return tag


async def resolve_tags(
    db: AsyncSession,
    user_id: UUID,
    tags: list[TagInput],
) -> list[Tag]:
    """
    Map client-supplied tags to persisted Tag rows, creating missing ones.

    Args:
        db: Database session.
        user_id: Owner the tags are scoped to.
        tags: Tags as supplied by the client ({label, value}).

    Returns:
        One Tag per distinct normalized value, in request order. Existing tags
        keep their stored label.

    Note:
        Does not commit. Caller (session generator) handles commit at request end.
    """
    wanted = normalize_tag_inputs(tags)
    if not wanted:
        return []

    result = await db.execute(
        select(Tag).where(
            Tag.user_id == user_id,
            Tag.value.in_(list(wanted)),
        ),
    )
    existing = {tag.value: tag for tag in result.scalars()}

    resolved = []
    for value, label in wanted.items():
        tag = existing.get(value)
        if tag is None:
            tag = await _insert_tag(db, user_id, value, label)
        resolved.append(tag)
    return resolved


async def list_tags(db: AsyncSession, user_id: UUID) -> list[Tag]:
    """Get all tags for a user, ordered by value."""
    result = await db.execute(
        select(Tag).where(Tag.user_id == user_id).order_by(Tag.value.asc()),
    )
    return list(result.scalars().all())
