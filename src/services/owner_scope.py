"""
Owner-scoped statement builders.

Every read and write against a user-owned table goes through OwnerScope, so the
`user_id = owner` predicate is applied in one place rather than re-checked by
each handler.
"""
from collections.abc import Iterable
from typing import Any
from uuid import UUID

from sqlalchemy import Delete, Select, Update, delete, false, select, update


def parse_uuid(value: str) -> UUID | None:
    """Parse an id string, returning None for anything that is not a UUID."""
    try:
        return UUID(value.strip())
    except (ValueError, AttributeError):
        return None


def split_id_list(raw: str | None) -> list[str]:
    """
    Split a comma-separated id parameter into its non-empty entries.

    "" and ",," both yield an empty list, which callers treat as "no id filter".
    """
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


class OwnerScope:
    """Builds statements restricted to rows owned by a single user."""

    def __init__(self, user_id: UUID) -> None:
        self.user_id = user_id

    def select(self, model: Any, ids: Iterable[str] | None = None) -> Select:
        """
        SELECT rows of `model` owned by this user.

        When `ids` is given and non-empty, rows must also match one of them.
        Ids that are not valid UUIDs cannot match any row.
        """
        stmt = select(model).where(model.user_id == self.user_id)
        id_list = list(ids or [])
        if id_list:
            parsed = [uid for uid in (parse_uuid(i) for i in id_list) if uid is not None]
            stmt = stmt.where(model.id.in_(parsed)) if parsed else stmt.where(false())
        return stmt

    def select_one(self, model: Any, entity_id: str | UUID) -> Select:
        """SELECT a single owned row by id (matches nothing for a malformed id)."""
        uid = entity_id if isinstance(entity_id, UUID) else parse_uuid(entity_id)
        stmt = select(model).where(model.user_id == self.user_id)
        if uid is None:
            return stmt.where(false())
        return stmt.where(model.id == uid)

    def update(self, model: Any, entity_id: UUID) -> Update:
        """UPDATE an owned row by id."""
        return update(model).where(model.id == entity_id, model.user_id == self.user_id)

    def delete(self, model: Any, entity_id: UUID) -> Delete:
        """DELETE an owned row by id."""
        return delete(model).where(model.id == entity_id, model.user_id == self.user_id)
