"""
Shared validation functions for Pydantic schemas.

Used by the bookmark, tag and category schemas and by the tag resolver, so the
same normalization applies whether a value arrives in a request body or is
looked up in the database.
"""
import re
from urllib.parse import urlparse

from core.config import get_settings

_WHITESPACE = re.compile(r"\s+")
_SLUG_INVALID = re.compile(r"[^a-z0-9-]+")
_SLUG_DASHES = re.compile(r"-{2,}")


def normalize_tag_value(value: str) -> str:
    """
    Normalize a tag value into its lookup key.

    Lowercases, trims, and collapses inner whitespace to single hyphens
    ("Machine  Learning" -> "machine-learning"). May return an empty string,
    which callers treat as "no tag".
    """
    return _WHITESPACE.sub("-", value.strip().lower())


def slugify(name: str) -> str:
    """Build a URL-safe slug from a display name ("Reading List!" -> "reading-list")."""
    slug = _SLUG_INVALID.sub("-", normalize_tag_value(name))
    return _SLUG_DASHES.sub("-", slug).strip("-")


def validate_uri(url: str) -> str:
    """
    Validate that a string is an absolute URI with a host.

    Raises:
        ValueError: If the scheme or host is missing.
    """
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc or not parsed.hostname:
        raise ValueError("must be a valid uri")
    return url


def validate_title_length(title: str | None) -> str | None:
    """Validate that title doesn't exceed maximum length."""
    settings = get_settings()
    if title is not None and len(title) > settings.max_title_length:
        raise ValueError(
            f"Title exceeds maximum length of {settings.max_title_length:,} characters "
            f"(got {len(title):,} characters).",
        )
    return title


def validate_description_length(description: str | None) -> str | None:
    """Validate that description doesn't exceed maximum length."""
    settings = get_settings()
    if description is not None and len(description) > settings.max_description_length:
        max_len = settings.max_description_length
        raise ValueError(
            f"Description exceeds maximum length of {max_len:,} characters "
            f"(got {len(description):,} characters).",
        )
    return description
