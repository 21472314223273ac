"""Serves stored attachment files by the URLs that get_file_url hands out."""
from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session
from services import attachment_service

router = APIRouter(prefix="/files", tags=["files"])

# Stored bodies come from arbitrary remote hosts; nothing they contain may run on this origin
FILE_CSP = "default-src 'none'; style-src 'unsafe-inline'; sandbox"


@router.get("/bookmarks/{bookmark_id}/{filename}")
async def get_bookmark_file(
    bookmark_id: str,
    filename: str,
    db: AsyncSession = Depends(get_async_session),
) -> Response:
    """
    Return a stored icon or main image with its original content type.

    Unauthenticated, so the URLs work in <img> tags; each file name carries a
    random component. Anything other than a raster image is sent as a download.
    """
    attachment = await attachment_service.get_bookmark_file(db, bookmark_id, filename)
    if attachment is None:
        raise HTTPException(status_code=404, detail="File not found")

    headers = {
        "Cache-Control": "private, max-age=86400",
        "Content-Security-Policy": FILE_CSP,
    }
    if not attachment_service.is_inline_image(attachment.content_type):
        headers["Content-Disposition"] = f'attachment; filename="{attachment.filename}"'
    return Response(
        content=attachment.data,
        media_type=attachment.content_type,
        headers=headers,
    )
