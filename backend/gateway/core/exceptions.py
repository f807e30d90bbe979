"""
Gateway error taxonomy.

Every failure the gateway surfaces to a caller is one of these. Each carries
the HTTP status used when it reaches the app-level exception handler, which
renders it as ``{"success": false, "error": <message>}``.

  ClientInputError      400  missing upload field, malformed body
    PayloadTooLargeError 413  payload above the absolute maximum
  StagingError          500  temp write / readback failed, nothing dispatched
  WorkerDispatchError   502  execution unit unreachable or non-2xx
  PersistenceError      500  artifact write failed
    ArtifactDecodeError  500  worker returned malformed base64

None of them are retried.
"""

from __future__ import annotations

from fastapi import status


class GatewayError(Exception):
    """Base class for all structured gateway failures."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ClientInputError(GatewayError):
    """The request itself is unusable; no store mutation was attempted."""

    status_code = status.HTTP_400_BAD_REQUEST


class PayloadTooLargeError(ClientInputError):
    """Payload length exceeds the configured maximum."""

    status_code = 413

    def __init__(self, message: str, size_bytes: int, max_bytes: int) -> None:
        super().__init__(message)
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes


class StagingError(GatewayError):
    """Writing or reading back the temporary staged object failed."""


class WorkerDispatchError(GatewayError):
    """The execution unit could not be reached or answered with an error."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, unit_status: int | None = None) -> None:
        super().__init__(message)
        self.unit_status = unit_status


class PersistenceError(GatewayError):
    """Storing the extracted artifact failed."""


class ArtifactDecodeError(PersistenceError):
    """Encoded artifact text could not be decoded."""
