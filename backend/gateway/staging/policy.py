"""
Size-Tiered Staging Policy

Decides how an upload travels to the worker, and performs the staging
round-trip for large payloads.

  length ≤ direct_max_bytes            → DIRECT  (base64 straight into the request)
  direct_max_bytes < length ≤ max_bytes → STAGED  (write to storage, read back, then encode)
  length > max_bytes                   → rejected before any I/O

Staged objects live under:
    <staging_prefix>/<instance_id>/<timestamp_ms>_<sanitized_name>

Staging is confirmed by presence only: a write that succeeds but whose key is
absent on readback is a StagingError. If the write went through but readback
fails, the key is deleted before the error is raised.
"""

from __future__ import annotations

import io
import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from gateway.core.exceptions import ClientInputError, PayloadTooLargeError, StagingError
from gateway.schemas.extraction import DIRECT_TRANSFER_MAX_BYTES, MAX_UPLOAD_BYTES, MB
from gateway.storage.s3 import ArtifactStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

class StagingTier(str, Enum):
    DIRECT = "direct"    # encoded in-request
    STAGED = "staged"    # round-tripped through object storage first


@dataclass(frozen=True)
class UploadPayload:
    """One inbound upload. Request-scoped."""
    data:         bytes
    content_type: str
    filename:     str

    @property
    def length(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class StagedObject:
    """A temporary object written for one request and read back once."""
    key:        str
    size_bytes: int
    data:       bytes = b""

    def __repr__(self) -> str:
        return f"StagedObject(key={self.key!r}, size_bytes={self.size_bytes})"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def sanitize_filename(filename: str) -> str:
    """
    Strip path components and replace characters unsafe in object keys.
    Returns only the basename.
    """
    basename = filename.replace("\\", "/").rsplit("/", 1)[-1]
    safe = re.sub(r"[^a-zA-Z0-9._\-]", "_", basename)
    return safe[:200] or "upload"


def now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

class StagingPolicy:
    """Tier decision plus the staging round-trip. Shared across requests."""

    def __init__(
        self,
        store: ArtifactStore,
        direct_max_bytes: int = DIRECT_TRANSFER_MAX_BYTES,
        max_bytes: int = MAX_UPLOAD_BYTES,
        staging_prefix: str = "temp-uploads",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        if max_bytes < direct_max_bytes:
            raise ValueError("max_bytes must be >= direct_max_bytes")
        self._store = store
        self.direct_max_bytes = direct_max_bytes
        self.max_bytes = max_bytes
        self._prefix = staging_prefix.strip("/")
        self._clock = clock

    # ------------------------------------------------------------------
    # Tier decision
    # ------------------------------------------------------------------

    def decide(self, byte_length: int) -> StagingTier:
        """
        Pick the tier for a payload of ``byte_length`` bytes.

        Raises:
            PayloadTooLargeError: byte_length exceeds max_bytes.
            ClientInputError:     byte_length is negative.
        """
        if byte_length < 0:
            raise ClientInputError(f"Invalid payload length: {byte_length}")
        if byte_length > self.max_bytes:
            raise PayloadTooLargeError(
                f"File too large ({byte_length / MB:.1f}MB). "
                f"Maximum supported: {self.max_bytes // MB}MB",
                size_bytes=byte_length,
                max_bytes=self.max_bytes,
            )
        if byte_length > self.direct_max_bytes:
            return StagingTier.STAGED
        return StagingTier.DIRECT

    # ------------------------------------------------------------------
    # Staging round-trip
    # ------------------------------------------------------------------

    def staging_key(self, instance_id: str, filename: str) -> str:
        return f"{self._prefix}/{instance_id}/{self._clock()}_{sanitize_filename(filename)}"

    async def stage(self, payload: UploadPayload, instance_id: str) -> StagedObject:
        """
        Write the payload under a fresh temp key, then read it back.

        Raises:
            StagingError: the write failed, the readback failed, or the key
                was absent on readback. Nothing is left behind in storage.
        """
        key = self.staging_key(instance_id, payload.filename)

        logger.info(
            "Staging upload | instance=%s key=%s size=%d",
            instance_id, key, payload.length,
        )

        try:
            await self._store.put_object(
                key,
                io.BytesIO(payload.data),
                payload.content_type or "application/octet-stream",
            )
        except Exception as exc:
            logger.exception("Staging write failed | key=%s", key)
            raise StagingError(f"Failed to stage upload: {exc}") from exc

        try:
            data = await self._store.get_object(key)
        except Exception as exc:
            logger.exception("Staging readback failed | key=%s", key)
            await self.discard(key)
            raise StagingError(f"Failed to read back staged upload: {exc}") from exc

        if data is None:
            logger.error("Staged object missing on readback | key=%s", key)
            await self.discard(key)
            raise StagingError("Failed to retrieve staged upload from storage")

        return StagedObject(key=key, size_bytes=len(data), data=data)

    async def discard(self, key: str) -> None:
        """
        Delete a staged object. Never raises: whatever triggered the cleanup
        takes precedence over a failed delete.
        """
        try:
            await self._store.delete_object(key)
            logger.debug("Staged object removed | key=%s", key)
        except Exception as exc:
            logger.error("Failed to remove staged object | key=%s error=%s", key, exc)
