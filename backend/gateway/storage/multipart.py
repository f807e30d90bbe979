"""
S3 Streaming Multipart Upload

Streams a binary payload into S3 (or an S3-compatible store such as R2)
using the Multipart Upload API, one CHUNK_SIZE part at a time.

Architecture
────────────
  BinaryIO (BytesIO over the upload, or a spooled temp file)
      │
      ▼  read CHUNK_SIZE bytes at a time
  ┌─────────────────────────────────────────────────────────────────┐
  │  streaming_multipart_upload()                                    │
  │                                                                  │
  │  1. create_multipart_upload  → UploadId                         │
  │  2. For each CHUNK_SIZE chunk:                                   │
  │       a. upload_part(PartNumber, Body=chunk) → ETag             │
  │  3. complete_multipart_upload → final ETag                      │
  │  4. On any error: abort_multipart_upload                        │
  └─────────────────────────────────────────────────────────────────┘
      │
      ▼
  Returns: StreamUploadResult(key, bucket, size_bytes, etag, part_count)

Used for staging large uploads: a 100 MB payload goes up as 20 parts and no
single PutObject ever carries more than 5 MB.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, BinaryIO

import aioboto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CHUNK_SIZE: int = 5 * 1024 * 1024    # 5 MB — S3 minimum part size (all parts but last)


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StreamUploadResult:
    """Returned by streaming_multipart_upload on success."""
    key:          str
    bucket:       str
    size_bytes:   int
    etag:         str          # ETag of the completed multipart object
    part_count:   int


# ---------------------------------------------------------------------------
# Async chunk iterator
# ---------------------------------------------------------------------------

async def _iter_chunks(
    body: BinaryIO,
    chunk_size: int = CHUNK_SIZE,
) -> AsyncIterator[bytes]:
    """
    Read a file-like object in fixed-size chunks.
    Reads are offloaded to the default executor so a disk-backed body never
    blocks the event loop.
    """
    loop = asyncio.get_running_loop()

    while True:
        chunk: bytes = await loop.run_in_executor(None, body.read, chunk_size)
        if not chunk:
            break
        yield chunk


# ---------------------------------------------------------------------------
# Core streaming multipart upload
# ---------------------------------------------------------------------------

async def streaming_multipart_upload(
    body:          BinaryIO,
    bucket:        str,
    key:           str,
    content_type:  str,
    session:       aioboto3.Session | None = None,
    client_kwargs: dict[str, Any] | None = None,
) -> StreamUploadResult:
    """
    Stream a file-like body to object storage using multipart upload.

    Args:
        body:          File-like object, read chunk by chunk from its current position.
        bucket:        Bucket name.
        key:           Full object key (server-generated).
        content_type:  MIME type stored on the object.
        session:       aioboto3 session to reuse; a fresh one is created if omitted.
        client_kwargs: Extra kwargs for ``session.client("s3", ...)`` (region, endpoint).

    Returns:
        StreamUploadResult with key, size, ETag and part count.

    Raises:
        ValueError:  The body was empty (nothing to store).
        ClientError: Propagated from botocore after the upload is aborted.
    """
    session = session or aioboto3.Session()
    parts: list[dict] = []               # [{PartNumber: int, ETag: str}, ...]
    total_bytes = 0
    part_number = 0

    async with session.client("s3", **(client_kwargs or {})) as s3:

        # ----------------------------------------------------------------
        # Step 1: Initiate multipart upload
        # ----------------------------------------------------------------
        try:
            response = await s3.create_multipart_upload(
                Bucket=bucket,
                Key=key,
                ContentType=content_type,
                Metadata={"upload-method": "streaming-multipart"},
            )
            upload_id = response["UploadId"]
            logger.debug("Multipart upload initiated | key=%s upload_id=%s", key, upload_id)
        except ClientError as exc:
            logger.error("Failed to initiate multipart upload | key=%s error=%s", key, exc)
            raise

        # ----------------------------------------------------------------
        # Step 2: Upload parts
        # ----------------------------------------------------------------
        try:
            async for chunk in _iter_chunks(body):
                total_bytes += len(chunk)

                part_number += 1
                part_response = await s3.upload_part(
                    Bucket=bucket,
                    Key=key,
                    UploadId=upload_id,
                    PartNumber=part_number,
                    Body=chunk,
                )

                etag = part_response["ETag"].strip('"')
                parts.append({"PartNumber": part_number, "ETag": etag})

                logger.debug(
                    "Part %d uploaded | key=%s size=%d cumulative=%d",
                    part_number, key, len(chunk), total_bytes,
                )

            if part_number == 0:
                raise ValueError(f"Refusing to store an empty payload at {key}")

        except Exception:
            await _abort_multipart_upload(s3, bucket, key, upload_id)
            raise

        # ----------------------------------------------------------------
        # Step 3: Complete multipart upload
        # ----------------------------------------------------------------
        try:
            complete_response = await s3.complete_multipart_upload(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
            final_etag = complete_response.get("ETag", "").strip('"')

            logger.info(
                "Multipart upload complete | key=%s parts=%d size=%d etag=%s",
                key, part_number, total_bytes, final_etag,
            )
        except ClientError as exc:
            logger.error(
                "CompleteMultipartUpload failed | key=%s upload_id=%s error=%s",
                key, upload_id, exc,
            )
            await _abort_multipart_upload(s3, bucket, key, upload_id)
            raise

    return StreamUploadResult(
        key=key,
        bucket=bucket,
        size_bytes=total_bytes,
        etag=final_etag,
        part_count=part_number,
    )


# ---------------------------------------------------------------------------
# Abort helper
# ---------------------------------------------------------------------------

async def _abort_multipart_upload(s3, bucket: str, key: str, upload_id: str) -> None:
    """
    Abort an in-progress multipart upload so no orphaned parts remain.
    Never raises: the error that triggered the abort takes precedence.
    """
    try:
        await s3.abort_multipart_upload(
            Bucket=bucket,
            Key=key,
            UploadId=upload_id,
        )
        logger.warning("Multipart upload aborted | key=%s upload_id=%s", key, upload_id)
    except ClientError as exc:
        logger.error(
            "Failed to abort multipart upload | key=%s upload_id=%s error=%s",
            key, upload_id, exc,
        )
