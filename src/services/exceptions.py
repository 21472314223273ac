"""Shared exceptions for service layer operations."""


class BookmarkNotFoundError(Exception):
    """
    Raised when a bookmark does not exist or belongs to another user.

    The two cases are deliberately indistinguishable to the caller.
    """

    def __init__(self, bookmark_id: str) -> None:
        self.bookmark_id = bookmark_id
        super().__init__("Bookmark not found")


class BookmarkPersistenceError(Exception):
    """Raised when a create or update produced no stored record."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class CategoryNotFoundError(Exception):
    """Raised when a referenced category does not exist for the user."""

    def __init__(self, category_id: str) -> None:
        self.category_id = category_id
        super().__init__("Category not found")


class CategoryAlreadyExistsError(Exception):
    """Raised when creating a category whose slug the user already has."""

    def __init__(self, slug: str) -> None:
        self.slug = slug
        super().__init__(f"Category '{slug}' already exists")


class AttachmentFetchError(Exception):
    """
    Raised when a remote attachment cannot be fetched or stored.

    Attachment ingestion is not best-effort: this fails the request after the
    bookmark itself has been written.
    """

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to fetch attachment {url}: {reason}")
