"""
Attachment ingestion: fetch remote media (icon, main image) and store it on a bookmark.

Bookmarks are written in two steps. The structured fields are persisted first;
then, when attachment URLs are present, the record is flushed with
attachment_status="pending" and each file is fetched and stored. Success moves
the status to "stored". A failure moves it to "failed" with the reason in
attachment_error, leaves the record in place, and re-raises so the request
fails. Re-sending the URLs on an update retries the step.
"""
import ipaddress
import logging
import mimetypes
import secrets
import socket
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import urlparse
from uuid import UUID

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import undefer

from core.config import get_settings
from models.attachment import BookmarkAttachment
from models.bookmark import AttachmentStatus, Bookmark
from services.exceptions import AttachmentFetchError

logger = logging.getLogger(__name__)

USER_AGENT = 'Mozilla/5.0 (compatible; Bookmarks/1.0)'
DEFAULT_CONTENT_TYPE = 'application/octet-stream'
ATTACHMENT_FIELDS = ('main_image', 'icon')


class SSRFBlockedError(Exception):
    """Raised when a URL targets a private/internal network address."""

    pass


def is_private_ip(ip_str: str) -> bool:
    """
    Check if an IP address is private, loopback, or otherwise internal.

    Unparseable addresses count as private.
    """
    try:
        ip = ipaddress.ip_address(ip_str)
    except ValueError:
        return True
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
    )


def validate_url_not_private(url: str) -> None:
    """
    Validate that a URL does not target a private/internal network.

    Resolves the hostname so a public name pointing at an internal address is
    also rejected.

    Raises:
        SSRFBlockedError: If the URL targets a private network.
        ValueError: If the URL has no hostname or it cannot be resolved.
    """
    parsed = urlparse(url)
    hostname = parsed.hostname
    if not hostname:
        raise ValueError(f"Invalid URL (no hostname): {url}")

    if hostname.lower() in ('localhost', 'localhost.localdomain'):
        raise SSRFBlockedError(f"Blocked request to localhost: {url}")

    try:
        addrinfo = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
    except socket.gaierror as e:
        raise ValueError(f"Could not resolve hostname: {hostname}") from e

    for _, _, _, _, sockaddr in addrinfo:
        if is_private_ip(sockaddr[0]):
            raise SSRFBlockedError(
                f"Blocked request to private/internal address: {url} resolves to {sockaddr[0]}",
            )


@dataclass
class FetchedFile:
    """A remote file downloaded for storage."""

    data: bytes
    content_type: str
    final_url: str

    @property
    def size(self) -> int:
        """Size of the body in bytes."""
        return len(self.data)


def _check_url(url: str) -> None:
    if get_settings().attachment_allow_private_hosts:
        return
    try:
        validate_url_not_private(url)
    except (SSRFBlockedError, ValueError) as e:
        raise AttachmentFetchError(url, str(e)) from e


def is_inline_image(content_type: str) -> bool:
    """
    Whether a stored content type is safe to render inline on the API's origin.

    Raster images only; SVG can carry script, so it counts as a download.
    """
    mime = content_type.split(';', 1)[0].strip().lower()
    return mime.startswith('image/') and mime != 'image/svg+xml'


async def _read_limited(response: httpx.Response, url: str, limit: int) -> bytes:
    """Read a streamed body, giving up as soon as it passes `limit` bytes."""
    too_large = AttachmentFetchError(url, f"File exceeds maximum size of {limit:,} bytes")

    declared = response.headers.get('content-length')
    if declared and declared.isdigit() and int(declared) > limit:
        raise too_large

    chunks = []
    received = 0
    async for chunk in response.aiter_bytes():
        received += len(chunk)
        if received > limit:
            raise too_large
        chunks.append(chunk)
    return b''.join(chunks)


async def fetch_attachment(url: str, timeout: float | None = None) -> FetchedFile:  # noqa: ASYNC109
    """
    Download a remote file as binary content.

    Follows redirects; the final URL is re-checked against private networks
    before the body is read. The body is streamed and abandoned once it passes
    MAX_ATTACHMENT_BYTES.

    Raises:
        AttachmentFetchError: On blocked or malformed URLs, timeouts, transport
            errors, non-2xx responses, or bodies over MAX_ATTACHMENT_BYTES.
    """
    settings = get_settings()
    _check_url(url)

    try:
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=timeout if timeout is not None else settings.attachment_fetch_timeout,
            headers={'User-Agent': USER_AGENT},
            http2=True,
        ) as client, client.stream('GET', url) as response:
            final_url = str(response.url)
            if final_url != url:
                _check_url(final_url)

            if not response.is_success:
                raise AttachmentFetchError(url, f"HTTP {response.status_code}")

            data = await _read_limited(response, url, settings.max_attachment_bytes)
            content_type = response.headers.get('content-type', '') or DEFAULT_CONTENT_TYPE
    except httpx.TimeoutException as e:
        raise AttachmentFetchError(url, "Request timed out") from e
    except httpx.RequestError as e:
        raise AttachmentFetchError(url, f"Request failed: {e}") from e
    except httpx.InvalidURL as e:
        raise AttachmentFetchError(url, f"Invalid URL: {e}") from e

    return FetchedFile(data=data, content_type=content_type, final_url=final_url)


def build_filename(field: str, content_type: str, url: str) -> str:
    """
    Build a stored file name such as "icon_3f9a1c2b7d4e5f60.png".

    The extension comes from the content type, then the URL path, else ".bin".
    """
    mime = content_type.split(';', 1)[0].strip().lower()
    ext = mimetypes.guess_extension(mime) if mime else None
    if not ext:
        suffix = PurePosixPath(urlparse(url).path).suffix.lower()
        ext = suffix if 1 < len(suffix) <= 6 else '.bin'
    return f"{field}_{secrets.token_hex(8)}{ext}"


def get_file_url(collection: str, record_id: UUID | str, filename: str | None) -> str | None:
    """Resolve a stored file name to its public access URL, or None if there is no file."""
    if not filename:
        return None
    base = get_settings().api_url.rstrip('/')
    return f"{base}/files/{collection}/{record_id}/{filename}"


async def _store_file(
    db: AsyncSession,
    bookmark: Bookmark,
    field: str,
    url: str,
    fetched: FetchedFile,
) -> None:
    """Replace the stored file for (bookmark, field) and point the bookmark at it."""
    result = await db.execute(
        select(BookmarkAttachment).where(
            BookmarkAttachment.bookmark_id == bookmark.id,
            BookmarkAttachment.field == field,
        ),
    )
    attachment = result.scalar_one_or_none()
    filename = build_filename(field, fetched.content_type, fetched.final_url)

    if attachment is None:
        attachment = BookmarkAttachment(bookmark_id=bookmark.id, field=field)
        db.add(attachment)
    attachment.filename = filename
    attachment.content_type = fetched.content_type
    attachment.size = fetched.size
    attachment.source_url = url
    attachment.data = fetched.data

    setattr(bookmark, field, filename)
    await db.flush()


async def ingest_attachments(
    db: AsyncSession,
    bookmark: Bookmark,
    urls: dict[str, str],
) -> None:
    """
    Fetch and store each attachment for a bookmark that already exists.

    Args:
        db: Database session.
        bookmark: The persisted bookmark.
        urls: Remote URLs keyed by field ("main_image", "icon"). Fetched
            sequentially in that order, every time; nothing is skipped because
            the URL is unchanged.

    Raises:
        AttachmentFetchError: If any fetch fails. The bookmark is left with
            attachment_status="failed" rather than rolled back.
    """
    if not urls:
        return

    bookmark.attachment_status = AttachmentStatus.PENDING.value
    bookmark.attachment_error = None
    await db.flush()

    try:
        for field in ATTACHMENT_FIELDS:
            url = urls.get(field)
            if not url:
                continue
            fetched = await fetch_attachment(url)
            await _store_file(db, bookmark, field, url, fetched)
    except AttachmentFetchError as e:
        logger.warning("Attachment ingestion failed for bookmark %s: %s", bookmark.id, e)
        bookmark.attachment_status = AttachmentStatus.FAILED.value
        bookmark.attachment_error = str(e)
        await db.flush()
        raise

    bookmark.attachment_status = AttachmentStatus.STORED.value
    await db.flush()
    # updated_at is regenerated server-side by the UPDATE
    await db.refresh(bookmark, attribute_names=["updated_at"])


async def get_bookmark_file(
    db: AsyncSession,
    bookmark_id: str,
    filename: str,
) -> BookmarkAttachment | None:
    """Load a stored file (with its bytes) by bookmark id and file name."""
    try:
        uid = UUID(bookmark_id)
    except ValueError:
        return None
    result = await db.execute(
        select(BookmarkAttachment)
        .options(undefer(BookmarkAttachment.data))
        .where(
            BookmarkAttachment.bookmark_id == uid,
            BookmarkAttachment.filename == filename,
        ),
    )
    return result.scalar_one_or_none()
