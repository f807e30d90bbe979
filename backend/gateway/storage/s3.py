"""
Artifact Store — S3-compatible object storage

Holds two kinds of object in one bucket:

  temp-uploads/<instance>/<timestamp>_<name>   staged uploads (deleted after use)
  audio_<instance>_<timestamp>.<ext>            extracted artifacts (kept)

Contract relied on by the staging policy, the orchestrator and the download
route:
  - put_object()   small bytes → single PutObject; streams → multipart upload
  - get_object()   missing key → None (never an exception)
  - delete_object() missing key → no-op (cleanup may run more than once)
  - locator()      retrieval path served by GET /download/{key}

Works against AWS S3 or any S3-compatible endpoint (Cloudflare R2, MinIO,
LocalStack) through ``endpoint_url``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, BinaryIO

import aioboto3
from botocore.exceptions import ClientError

from gateway.storage.multipart import streaming_multipart_upload

logger = logging.getLogger(__name__)

_MISSING_CODES = frozenset({"NoSuchKey", "404", "NotFound"})


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StoredObjectInfo:
    """Represents a written object — returned by put_object."""
    key:          str
    bucket:       str
    size_bytes:   int
    content_type: str
    etag:         str


@dataclass(frozen=True)
class StorageConfig:
    bucket:                str
    region:                str = "auto"
    endpoint_url:          str = ""
    aws_access_key_id:     str = ""
    aws_secret_access_key: str = ""

    def client_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"region_name": self.region}
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        if self.aws_access_key_id and self.aws_secret_access_key:
            kwargs["aws_access_key_id"] = self.aws_access_key_id
            kwargs["aws_secret_access_key"] = self.aws_secret_access_key
        return kwargs


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class ArtifactStore:
    """
    Async keyed object store.

    One instance is built by the composition root and shared by every
    request; it holds only the session and config, so concurrent use is safe.
    """

    def __init__(self, config: StorageConfig) -> None:
        self._cfg = config
        self._session = aioboto3.Session()

    @property
    def bucket(self) -> str:
        return self._cfg.bucket

    def _client(self):
        """Return a scoped async S3 client context manager."""
        return self._session.client("s3", **self._cfg.client_kwargs())

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def put_object(
        self,
        key: str,
        body: bytes | BinaryIO,
        content_type: str,
    ) -> StoredObjectInfo:
        """
        Write an object.

        Args:
            key:          Server-generated object key.
            body:         Raw bytes (single PutObject) or a file-like object
                          (streamed as a multipart upload).
            content_type: Stored as the object's Content-Type.
        """
        if not isinstance(body, (bytes, bytearray)):
            result = await streaming_multipart_upload(
                body=body,
                bucket=self._cfg.bucket,
                key=key,
                content_type=content_type,
                session=self._session,
                client_kwargs=self._cfg.client_kwargs(),
            )
            logger.info(
                "Object streamed | key=%s size=%d parts=%d type=%s",
                key, result.size_bytes, result.part_count, content_type,
            )
            return StoredObjectInfo(
                key=key,
                bucket=self._cfg.bucket,
                size_bytes=result.size_bytes,
                content_type=content_type,
                etag=result.etag,
            )

        async with self._client() as s3:
            resp = await s3.put_object(
                Bucket=self._cfg.bucket,
                Key=key,
                Body=bytes(body),
                ContentType=content_type,
            )

        logger.info("Object stored | key=%s size=%d type=%s", key, len(body), content_type)

        return StoredObjectInfo(
            key=key,
            bucket=self._cfg.bucket,
            size_bytes=len(body),
            content_type=content_type,
            etag=resp.get("ETag", "").strip('"'),
        )

    async def get_object(self, key: str) -> bytes | None:
        """Read an object. Returns None when the key does not exist."""
        async with self._client() as s3:
            try:
                resp = await s3.get_object(Bucket=self._cfg.bucket, Key=key)
                return await resp["Body"].read()
            except ClientError as exc:
                if exc.response["Error"]["Code"] in _MISSING_CODES:
                    logger.debug("Object absent | key=%s", key)
                    return None
                raise

    async def delete_object(self, key: str) -> None:
        """Remove an object. Deleting a missing key is a no-op."""
        async with self._client() as s3:
            try:
                await s3.delete_object(Bucket=self._cfg.bucket, Key=key)
            except ClientError as exc:
                if exc.response["Error"]["Code"] in _MISSING_CODES:
                    return
                raise
        logger.info("Object deleted | key=%s", key)

    def locator(self, key: str) -> str:
        """Client-facing retrieval path for a stored artifact."""
        return f"/download/{key}"
