"""Blob endpoint schemas."""

from typing import List

from pydantic import BaseModel


class UploadResponse(BaseModel):
    """Response after storing an uploaded reference image."""

    key: str
    url: str
    success: bool = True


class ViewUrlsRequest(BaseModel):
    """Keys to publish URLs for."""

    keys: List[str]


class ViewUrl(BaseModel):
    """Published URL for a single key."""

    key: str
    url: str


class ViewUrlsResponse(BaseModel):
    """Published URLs in request order."""

    urls: List[ViewUrl]
