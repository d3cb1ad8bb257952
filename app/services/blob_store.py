"""Blob storage keyed by string paths.

Two backends share the same put/get/publish surface:

- ``S3BlobStore`` talks to an S3-compatible bucket (Cloudflare R2 in
  production) through ``boto3``. The content type travels as the object's
  ``ContentType`` metadata.
- ``LocalBlobStore`` keeps objects under ``BLOB_ROOT/<key>`` for local
  development and tests. The content type of each object lives in a small
  JSON document under ``BLOB_ROOT/.meta/<key>.json``, and every write goes
  to a temporary file that is moved into place with ``os.replace``.

Single-object puts are atomic in both backends.
"""

import json
import logging
import os
import tempfile
import time
from pathlib import Path, PurePosixPath
from typing import Optional, Tuple
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from app.config import settings

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
META_DIR = ".meta"
NOT_FOUND_CODES = ("NoSuchKey", "404", "NotFound")


class BlobNotFoundError(Exception):
    """Raised when no object exists for a key."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Blob not found: {key}")


def upload_key(filename: str, timestamp_ms: Optional[int] = None) -> str:
    """Key for an uploaded reference image: ``uploads/{timestamp}-{filename}``."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    name = PurePosixPath(filename.replace("\\", "/")).name or "upload"
    return f"uploads/{timestamp_ms}-{name}"


def result_key(session_id: str, variation_index: int) -> str:
    """Key for a generated photo: ``results/{sessionId}/photo-{n}.jpg`` (1-indexed)."""
    return f"results/{session_id}/photo-{variation_index}.jpg"


def custom_key(timestamp_ms: Optional[int] = None) -> str:
    """Key for a free-form generated image."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"custom/{timestamp_ms}.jpg"


class BlobStore:
    """Base class for blob store backends."""

    def __init__(self, public_base_url: str):
        self.public_base_url = public_base_url.rstrip("/")

    @staticmethod
    def check_key(key: str) -> PurePosixPath:
        """
        Validate a key and return it as a relative path.

        Raises:
            ValueError: If the key is empty, absolute, has ``.``/``..``
                segments or points into the metadata directory
        """
        rel = PurePosixPath(key)
        if (
            not key
            or rel.is_absolute()
            or any(part in ("", ".", "..") for part in key.split("/"))
            or rel.parts[0] == META_DIR
        ):
            raise ValueError(f"Invalid blob key: {key!r}")
        return rel

    def put(self, key: str, data: bytes, content_type: str = DEFAULT_CONTENT_TYPE) -> None:
        """Store ``data`` at ``key``, replacing any existing object."""
        raise NotImplementedError

    def read(self, key: str) -> Tuple[bytes, str]:
        """Read an object and its content type."""
        raise NotImplementedError

    def get(self, key: str) -> bytes:
        """Read object bytes, raising ``BlobNotFoundError`` if absent."""
        data, _ = self.read(key)
        return data

    def public_url(self, key: str) -> str:
        """Gateway URL that serves the object."""
        return f"{self.public_base_url}/file?key={quote(key, safe='')}"


class S3BlobStore(BlobStore):
    """Objects in an S3-compatible bucket (R2)."""

    def __init__(
        self,
        bucket: str,
        public_base_url: str,
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        region: str = "auto",
        client=None,
    ):
        """
        Initialize the store.

        Args:
            bucket: Bucket name
            public_base_url: Base URL of the gateway serving ``/file``
            endpoint_url: S3 API endpoint, e.g. ``https://<account>.r2.cloudflarestorage.com``
            access_key_id: Access key id
            secret_access_key: Secret access key
            region: Region name (``auto`` for R2)
            client: Pre-built boto3 S3 client; created from the arguments if omitted
        """
        super().__init__(public_base_url)
        self.bucket = bucket
        if client is None:
            client = boto3.client(
                "s3",
                endpoint_url=endpoint_url or None,
                aws_access_key_id=access_key_id or None,
                aws_secret_access_key=secret_access_key or None,
                region_name=region,
                # R2 rejects the checksum headers newer botocore sends by default
                config=Config(
                    request_checksum_calculation="when_required",
                    response_checksum_validation="when_required",
                ),
            )
        self.client = client

    def put(self, key: str, data: bytes, content_type: str = DEFAULT_CONTENT_TYPE) -> None:
        """
        Upload ``data`` with ``put_object``.

        Raises:
            ValueError: If the key is malformed
            ClientError: If the bucket rejects the write
        """
        self.check_key(key)
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except ClientError as e:
            logger.error(f"S3 upload of {key} failed: {e}")
            raise
        logger.debug(f"Stored blob {key} ({len(data)} bytes, {content_type})")

    def read(self, key: str) -> Tuple[bytes, str]:
        """
        Download an object with ``get_object``.

        Raises:
            BlobNotFoundError: If the bucket has no object for the key
        """
        self.check_key(key)
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in NOT_FOUND_CODES:
                raise BlobNotFoundError(key) from None
            logger.error(f"S3 download of {key} failed: {e}")
            raise

        body = response["Body"]
        try:
            data = body.read()
        finally:
            body.close()
        return data, response.get("ContentType") or DEFAULT_CONTENT_TYPE


class LocalBlobStore(BlobStore):
    """Objects stored on local disk."""

    def __init__(self, root: str, public_base_url: str):
        """Initialize the store rooted at ``root``."""
        super().__init__(public_base_url)
        self.root = Path(root)

    def _data_path(self, key: str) -> Path:
        return self.root.joinpath(*self.check_key(key).parts)

    def _meta_path(self, key: str) -> Path:
        rel = self.check_key(key)
        return self.root.joinpath(META_DIR, *rel.parts[:-1], rel.name + ".json")

    @staticmethod
    def _atomic_write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def put(self, key: str, data: bytes, content_type: str = DEFAULT_CONTENT_TYPE) -> None:
        """
        Store ``data`` at ``key``, replacing any existing object.

        Args:
            key: Object key (relative slash-separated path)
            data: Object bytes
            content_type: MIME type served back by ``read``

        Raises:
            ValueError: If the key is malformed or escapes the store root
        """
        meta = {"contentType": content_type, "size": len(data)}
        # Metadata first so the object never becomes visible without it
        self._atomic_write(self._meta_path(key), json.dumps(meta).encode("utf-8"))
        self._atomic_write(self._data_path(key), data)
        logger.debug(f"Stored blob {key} ({len(data)} bytes, {content_type})")

    def read(self, key: str) -> Tuple[bytes, str]:
        """
        Read an object and its content type.

        Raises:
            BlobNotFoundError: If no object exists for the key
        """
        path = self._data_path(key)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            raise BlobNotFoundError(key) from None

        content_type = DEFAULT_CONTENT_TYPE
        try:
            meta = json.loads(self._meta_path(key).read_text(encoding="utf-8"))
            content_type = meta.get("contentType") or DEFAULT_CONTENT_TYPE
        except (FileNotFoundError, json.JSONDecodeError):
            logger.warning(f"Missing or unreadable metadata for blob {key}")

        return data, content_type


_blob_store: Optional[BlobStore] = None


def build_blob_store() -> BlobStore:
    """Build the backend selected by ``BLOB_BACKEND``."""
    if settings.BLOB_BACKEND == "s3":
        logger.info(f"Using S3 blob store (bucket: {settings.S3_BUCKET})")
        return S3BlobStore(
            bucket=settings.S3_BUCKET,
            public_base_url=settings.PUBLIC_BASE_URL,
            endpoint_url=settings.S3_ENDPOINT,
            access_key_id=settings.S3_ACCESS_KEY_ID,
            secret_access_key=settings.S3_SECRET_ACCESS_KEY,
            region=settings.S3_REGION,
        )
    if settings.BLOB_BACKEND == "local":
        logger.info(f"Using local blob store at {settings.BLOB_ROOT}")
        return LocalBlobStore(settings.BLOB_ROOT, settings.PUBLIC_BASE_URL)
    raise ValueError(f"Unknown BLOB_BACKEND: {settings.BLOB_BACKEND!r}")


def get_blob_store() -> BlobStore:
    """Return the process-wide blob store built from settings."""
    global _blob_store
    if _blob_store is None:
        _blob_store = build_blob_store()
    return _blob_store
