"""Tests for attachment fetching and ingestion."""
import socket
from collections.abc import AsyncIterator, Callable, Generator
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from models.attachment import BookmarkAttachment
from models.bookmark import AttachmentStatus, Bookmark
from models.user import User
from services.attachment_service import (
    FetchedFile,
    SSRFBlockedError,
    build_filename,
    fetch_attachment,
    get_bookmark_file,
    get_file_url,
    ingest_attachments,
    is_inline_image,
    is_private_ip,
    validate_url_not_private,
)
from services.exceptions import AttachmentFetchError

PUBLIC_IP = "93.184.216.34"

_RealAsyncClient = httpx.AsyncClient


def _addrinfo(ip: str) -> list[tuple]:
    return [(socket.AF_INET, socket.SOCK_STREAM, 6, "", (ip, 0))]


@pytest.fixture
def resolve_public() -> Generator[None]:
    """Resolve every hostname to a public address."""
    with patch("services.attachment_service.socket.getaddrinfo", return_value=_addrinfo(PUBLIC_IP)):
        yield


def _mock_http(handler: Callable[[httpx.Request], httpx.Response]):  # noqa: ANN202
    """Route the module's AsyncClient through an httpx.MockTransport."""

    def _client(**kwargs: object) -> httpx.AsyncClient:
        return _RealAsyncClient(transport=httpx.MockTransport(handler), **kwargs)

    return patch("services.attachment_service.httpx.AsyncClient", side_effect=_client)


# =============================================================================
# SSRF protection
# =============================================================================


@pytest.mark.parametrize(
    ("ip", "private"),
    [
        ("10.0.0.1", True),
        ("172.16.5.4", True),
        ("192.168.1.1", True),
        ("127.0.0.1", True),
        ("169.254.169.254", True),
        ("::1", True),
        ("0.0.0.0", True),
        ("not-an-ip", True),
        (PUBLIC_IP, False),
        ("2606:4700:4700::1111", False),
    ],
)
def test__is_private_ip(ip: str, private: bool) -> None:
    assert is_private_ip(ip) is private


def test__validate_url_not_private__blocks_localhost_without_resolving() -> None:
    with patch("services.attachment_service.socket.getaddrinfo") as mock_resolve:
        with pytest.raises(SSRFBlockedError):
            validate_url_not_private("http://localhost:8080/admin")
    mock_resolve.assert_not_called()


def test__validate_url_not_private__blocks_names_resolving_to_private_ips() -> None:
    with patch(
        "services.attachment_service.socket.getaddrinfo",
        return_value=_addrinfo("10.1.2.3"),
    ):
        with pytest.raises(SSRFBlockedError, match="10.1.2.3"):
            validate_url_not_private("https://intranet.example.com/logo.png")


def test__validate_url_not_private__allows_public_hosts(resolve_public: None) -> None:  # noqa: ARG001
    validate_url_not_private("https://example.com/logo.png")


def test__validate_url_not_private__unresolvable_host() -> None:
    with patch(
        "services.attachment_service.socket.getaddrinfo",
        side_effect=socket.gaierror("nodename nor servname provided"),
    ):
        with pytest.raises(ValueError, match="Could not resolve hostname"):
            validate_url_not_private("https://does-not-exist.invalid/x.png")


# =============================================================================
# fetch_attachment
# =============================================================================


async def test__fetch_attachment__returns_body_and_content_type(
    resolve_public: None,  # noqa: ARG001
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["User-Agent"].startswith("Mozilla/5.0")
        return httpx.Response(200, content=b"PNGDATA", headers={"Content-Type": "image/png"})

    with _mock_http(handler):
        fetched = await fetch_attachment("https://cdn.example.com/a.png")

    assert fetched.data == b"PNGDATA"
    assert fetched.content_type == "image/png"
    assert fetched.final_url == "https://cdn.example.com/a.png"
    assert fetched.size == 7


async def test__fetch_attachment__missing_content_type_defaults(
    resolve_public: None,  # noqa: ARG001
) -> None:
    with _mock_http(lambda _request: httpx.Response(200, content=b"x")):
        fetched = await fetch_attachment("https://cdn.example.com/blob")
    assert fetched.content_type == "application/octet-stream"


async def test__fetch_attachment__non_2xx_raises(resolve_public: None) -> None:  # noqa: ARG001
    with _mock_http(lambda _request: httpx.Response(404)):
        with pytest.raises(AttachmentFetchError, match="HTTP 404"):
            await fetch_attachment("https://cdn.example.com/missing.png")


async def test__fetch_attachment__timeout_raises(resolve_public: None) -> None:  # noqa: ARG001
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with _mock_http(handler):
        with pytest.raises(AttachmentFetchError, match="Request timed out"):
            await fetch_attachment("https://slow.example.com/a.png")


async def test__fetch_attachment__transport_error_raises(resolve_public: None) -> None:  # noqa: ARG001
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with _mock_http(handler):
        with pytest.raises(AttachmentFetchError, match="Request failed"):
            await fetch_attachment("https://down.example.com/a.png")


async def test__fetch_attachment__oversize_body_raises(resolve_public: None) -> None:  # noqa: ARG001
    limit = get_settings().max_attachment_bytes
    with _mock_http(lambda _request: httpx.Response(200, content=b"x" * (limit + 1))):
        with pytest.raises(AttachmentFetchError, match="exceeds maximum size"):
            await fetch_attachment("https://cdn.example.com/huge.png")


async def test__fetch_attachment__stops_reading_oversize_stream(
    resolve_public: None,  # noqa: ARG001
) -> None:
    limit = get_settings().max_attachment_bytes
    chunk = b"x" * (1024 * 1024)
    chunks_sent = 0

    async def body() -> AsyncIterator[bytes]:
        nonlocal chunks_sent
        for _ in range(limit // len(chunk) * 4):
            chunks_sent += 1
            yield chunk

    # No Content-Length: the size is only known while reading
    with _mock_http(lambda _request: httpx.Response(200, content=body())):
        with pytest.raises(AttachmentFetchError, match="exceeds maximum size"):
            await fetch_attachment("https://cdn.example.com/endless.png")

    assert chunks_sent <= limit // len(chunk) + 1


async def test__fetch_attachment__invalid_url_raises(resolve_public: None) -> None:  # noqa: ARG001
    def handler(_request: httpx.Request) -> httpx.Response:
        raise httpx.InvalidURL("Invalid port: 'abc'")

    with _mock_http(handler):
        with pytest.raises(AttachmentFetchError, match="Invalid URL"):
            await fetch_attachment("https://cdn.example.com/a.png")


async def test__fetch_attachment__private_address_is_not_requested() -> None:
    handler_calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        handler_calls.append(request)
        return httpx.Response(200)

    with (
        patch(
            "services.attachment_service.socket.getaddrinfo",
            return_value=_addrinfo("192.168.0.10"),
        ),
        _mock_http(handler),
    ):
        with pytest.raises(AttachmentFetchError, match="Blocked request"):
            await fetch_attachment("http://router.example.com/favicon.ico")

    assert handler_calls == []


async def test__fetch_attachment__redirect_to_private_address_is_blocked() -> None:
    addresses = {"public.example.com": PUBLIC_IP, "internal.example.com": "10.0.0.7"}

    def resolve(host: str, *_args: object) -> list[tuple]:
        return _addrinfo(addresses[host])

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "public.example.com":
            return httpx.Response(302, headers={"Location": "http://internal.example.com/secret"})
        return httpx.Response(200, content=b"secret", headers={"Content-Type": "image/png"})

    with (
        patch("services.attachment_service.socket.getaddrinfo", side_effect=resolve),
        _mock_http(handler),
    ):
        with pytest.raises(AttachmentFetchError, match="10.0.0.7"):
            await fetch_attachment("https://public.example.com/img.png")


# =============================================================================
# File naming and URLs
# =============================================================================


def test__build_filename__extension_from_content_type() -> None:
    name = build_filename("icon", "image/png; charset=binary", "https://x.example.com/a")
    assert name.startswith("icon_")
    assert name.endswith(".png")


def test__build_filename__extension_from_url_when_type_unknown() -> None:
    name = build_filename("main_image", "application/x-unknown-thing", "https://x.example.com/a.webp")
    assert name.startswith("main_image_")
    assert name.endswith(".webp")


def test__build_filename__falls_back_to_bin() -> None:
    assert build_filename("icon", "", "https://x.example.com/icon").endswith(".bin")


def test__build_filename__is_unique() -> None:
    assert build_filename("icon", "image/png", "") != build_filename("icon", "image/png", "")


def test__get_file_url() -> None:
    base = get_settings().api_url.rstrip("/")
    assert get_file_url("bookmarks", "abc", "icon_1.png") == f"{base}/files/bookmarks/abc/icon_1.png"
    assert get_file_url("bookmarks", "abc", None) is None
    assert get_file_url("bookmarks", "abc", "") is None


@pytest.mark.parametrize(
    ("content_type", "inline"),
    [
        ("image/png", True),
        ("image/x-icon", True),
        ("IMAGE/JPEG; charset=binary", True),
        ("image/svg+xml", False),
        ("text/html; charset=utf-8", False),
        ("application/octet-stream", False),
        ("", False),
    ],
)
def test__is_inline_image(content_type: str, inline: bool) -> None:
    assert is_inline_image(content_type) is inline


# =============================================================================
# ingest_attachments
# =============================================================================


@pytest.fixture
async def bookmark(db_session: AsyncSession, test_user: User) -> Bookmark:
    bookmark = Bookmark(user_id=test_user.id, url="https://example.com", title="Example")
    db_session.add(bookmark)
    await db_session.flush()
    return bookmark


def _png(url: str) -> FetchedFile:
    return FetchedFile(data=b"PNG:" + url.encode(), content_type="image/png", final_url=url)


async def test__ingest_attachments__stores_files_in_order(
    db_session: AsyncSession, bookmark: Bookmark,
) -> None:
    with patch(
        "services.attachment_service.fetch_attachment",
        new_callable=AsyncMock,
        side_effect=_png,
    ) as mock_fetch:
        await ingest_attachments(
            db_session,
            bookmark,
            {"icon": "https://example.com/i.png", "main_image": "https://example.com/m.png"},
        )

    # main_image is always fetched before icon
    assert [c.args[0] for c in mock_fetch.await_args_list] == [
        "https://example.com/m.png",
        "https://example.com/i.png",
    ]
    assert bookmark.attachment_status == AttachmentStatus.STORED
    assert bookmark.attachment_error is None
    assert bookmark.icon.startswith("icon_")
    assert bookmark.main_image.startswith("main_image_")

    stored = await get_bookmark_file(db_session, str(bookmark.id), bookmark.icon)
    assert stored is not None
    assert stored.data == b"PNG:https://example.com/i.png"
    assert stored.source_url == "https://example.com/i.png"
    assert stored.size == len(stored.data)


async def test__ingest_attachments__no_urls_is_a_noop(
    db_session: AsyncSession, bookmark: Bookmark,
) -> None:
    with patch("services.attachment_service.fetch_attachment", new_callable=AsyncMock) as mock_fetch:
        await ingest_attachments(db_session, bookmark, {})

    mock_fetch.assert_not_awaited()
    assert bookmark.attachment_status == AttachmentStatus.NONE


async def test__ingest_attachments__failure_marks_bookmark_and_reraises(
    db_session: AsyncSession, bookmark: Bookmark,
) -> None:
    async def fetch(url: str) -> FetchedFile:
        if url.endswith("i.png"):
            raise AttachmentFetchError(url, "HTTP 500")
        return _png(url)

    with patch(
        "services.attachment_service.fetch_attachment",
        new_callable=AsyncMock,
        side_effect=fetch,
    ):
        with pytest.raises(AttachmentFetchError):
            await ingest_attachments(
                db_session,
                bookmark,
                {"main_image": "https://example.com/m.png", "icon": "https://example.com/i.png"},
            )

    assert bookmark.attachment_status == AttachmentStatus.FAILED
    assert "HTTP 500" in bookmark.attachment_error
    # The main image fetched before the failure stays stored
    assert bookmark.main_image is not None
    assert bookmark.icon is None


async def test__ingest_attachments__replaces_existing_file(
    db_session: AsyncSession, bookmark: Bookmark,
) -> None:
    with patch(
        "services.attachment_service.fetch_attachment",
        new_callable=AsyncMock,
        side_effect=_png,
    ):
        await ingest_attachments(db_session, bookmark, {"icon": "https://example.com/old.png"})
        old_name = bookmark.icon
        await ingest_attachments(db_session, bookmark, {"icon": "https://example.com/new.png"})

    assert bookmark.icon != old_name
    result = await db_session.execute(
        select(BookmarkAttachment).where(BookmarkAttachment.bookmark_id == bookmark.id),
    )
    attachments = result.scalars().all()
    assert len(attachments) == 1
    assert attachments[0].source_url == "https://example.com/new.png"
    assert await get_bookmark_file(db_session, str(bookmark.id), old_name) is None
