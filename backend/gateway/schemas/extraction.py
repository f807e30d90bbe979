"""
Extraction — Pydantic Request/Response Schemas

Covers the payload exchanged with execution units and the body returned by
POST /upload/{id} and POST /ffmpeg/{id}:
  - ExtractionRequest: what the gateway sends to a worker for an upload
  - ExtractionResult:  what every processing path returns, Direct or Staged
  - Size tier constants enforced before any storage I/O

Design decisions:
  - ExtractionResult allows extra fields so descriptive worker output
    (video_title, duration, file_size, progress …) passes through untouched.
  - audio_data (the base64 artifact) is stripped before a result reaches
    a client; the client receives a download_url instead.
  - None-valued fields are omitted when serialising.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Size tiers — literal constants, not negotiated with the client
# ---------------------------------------------------------------------------

MB: int = 1024 * 1024

DIRECT_TRANSFER_MAX_BYTES: int = 15 * MB    # <= 15 MB: base64 in the request body
MAX_UPLOAD_BYTES:          int = 100 * MB   # hard ceiling; staged via storage above 15 MB

DEFAULT_OUTPUT_FORMAT: str = "mp3"
SUPPORTED_OUTPUT_FORMATS: frozenset[str] = frozenset({"mp3", "wav", "flac", "aac"})
ARTIFACT_CONTENT_TYPE: str = "audio/mpeg"


# ---------------------------------------------------------------------------
# Worker request — built once per upload, never mutated
# ---------------------------------------------------------------------------

class ExtractionRequest(BaseModel):
    """JSON body POSTed to the execution unit's upload extraction path."""

    model_config = ConfigDict(frozen=True)

    video_data:    str = Field(..., description="Base64 of the raw uploaded bytes")
    filename:      str = Field(..., description="Original upload filename")
    file_size:     int = Field(..., ge=0, description="Declared byte length of the upload")
    output_format: str = Field(DEFAULT_OUTPUT_FORMAT, description="mp3 | wav | flac | aac")
    instance_id:   str = Field(..., description="Routing identifier of the target unit")


# ---------------------------------------------------------------------------
# Uniform result contract
# ---------------------------------------------------------------------------

class ExtractionResult(BaseModel):
    """
    Returned by the worker and, after artifact persistence, by the gateway.
    Unknown worker fields are kept as extras.
    """

    model_config = ConfigDict(extra="allow")

    success:      bool
    message:      str | None = None
    audio_data:   str | None = Field(None, description="Base64 artifact — worker side only")
    download_url: str | None = None
    file_name:    str | None = None
    storage_key:  str | None = None
    error:        str | None = None

    @classmethod
    def failure(cls, error: str) -> "ExtractionResult":
        return cls(success=False, error=error)

    def extras(self) -> dict[str, Any]:
        """Worker-supplied fields outside the declared contract."""
        return dict(self.model_extra or {})

    def to_response(self) -> dict[str, Any]:
        """Client-facing JSON body; the encoded artifact never leaves the gateway."""
        return self.model_dump(mode="json", exclude_none=True, exclude={"audio_data"})


# ---------------------------------------------------------------------------
# Structured error body
# ---------------------------------------------------------------------------

class ErrorResponse(BaseModel):
    """Body for every gateway-raised 4xx/5xx on the extraction routes."""

    success: bool = False
    error:   str
