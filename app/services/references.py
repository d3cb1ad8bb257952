"""Reference image fetching from the blob store."""

import logging
from typing import List, Sequence

from app.schemas.workflow import ReferenceImage
from app.services.blob_store import BlobNotFoundError, BlobStore

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/jpeg"


class ReferenceNotFoundError(BlobNotFoundError):
    """Raised when a reference key has no stored image."""

    def __init__(self, key: str):
        super().__init__(key)
        self.args = (f"Reference image not found: {key}",)


class ReferenceFetcher:
    """Resolves reference keys into decoded payloads."""

    def __init__(self, blob_store: BlobStore):
        """Initialize with the blob store to read from."""
        self.blob_store = blob_store

    def fetch(self, keys: Sequence[str]) -> List[ReferenceImage]:
        """
        Load every key, preserving order.

        Args:
            keys: Reference blob keys

        Returns:
            List of ReferenceImage in the same order as ``keys``

        Raises:
            ReferenceNotFoundError: If any key is missing or malformed. Nothing
                is returned for the keys that were found.
        """
        images = []
        for key in keys:
            try:
                data, content_type = self.blob_store.read(key)
            except (BlobNotFoundError, ValueError) as e:
                logger.error(f"Reference image missing: {key} ({e})")
                raise ReferenceNotFoundError(key) from None

            mime_type = content_type.split(";")[0].strip()
            if not mime_type or mime_type == "application/octet-stream":
                mime_type = DEFAULT_MIME_TYPE

            images.append(ReferenceImage(data=data, mime_type=mime_type))

        return images
