"""Blob read/write routes."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile

from app.schemas.files import UploadResponse, ViewUrl, ViewUrlsRequest, ViewUrlsResponse
from app.services.blob_store import (
    DEFAULT_CONTENT_TYPE,
    BlobNotFoundError,
    BlobStore,
    get_blob_store,
    upload_key,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["files"])

CACHE_CONTROL = "public, max-age=86400"


@router.post("/upload", response_model=UploadResponse)
async def upload_file(
    file: Optional[UploadFile] = File(None),
    blob_store: BlobStore = Depends(get_blob_store),
):
    """Store an uploaded reference image under ``uploads/{timestamp}-{filename}``."""
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")

    data = await file.read()
    key = upload_key(file.filename)
    blob_store.put(key, data, file.content_type or DEFAULT_CONTENT_TYPE)

    logger.info(f"Uploaded {file.filename} as {key} ({len(data)} bytes)")

    return UploadResponse(key=key, url=blob_store.public_url(key))


@router.get("/file")
def get_file(
    key: str = Query(..., min_length=1),
    blob_store: BlobStore = Depends(get_blob_store),
):
    """Serve a stored object with its recorded content type."""
    try:
        data, content_type = blob_store.read(key)
    except (BlobNotFoundError, ValueError):
        raise HTTPException(status_code=404, detail="File not found")

    return Response(content=data, media_type=content_type, headers={"Cache-Control": CACHE_CONTROL})


@router.post("/view-urls", response_model=ViewUrlsResponse)
def view_urls(
    data: ViewUrlsRequest,
    blob_store: BlobStore = Depends(get_blob_store),
):
    """Publish gateway URLs for a list of keys."""
    return ViewUrlsResponse(urls=[ViewUrl(key=key, url=blob_store.public_url(key)) for key in data.keys])
