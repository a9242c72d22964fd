"""Serves stored images at the public URLs returned by the image routes."""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from services.storage import MediaStorage, get_media_storage, resolve_stored_path

router = APIRouter()

# Stored names are unique per write and never overwritten.
MEDIA_CACHE_HEADERS = {"Cache-Control": "public, max-age=31536000, immutable"}


@router.get("/{file_path:path}")
async def get_media(
    file_path: str,
    storage: MediaStorage = Depends(get_media_storage),
):
    path = resolve_stored_path(storage, file_path)
    if path is None:
        raise HTTPException(status_code=404, detail="Media not found.")
    return FileResponse(path, media_type="image/png", headers=MEDIA_CACHE_HEADERS)
