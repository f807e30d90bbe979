"""
Extraction API Router

  POST /upload/{instance_id}   multipart upload → size tier → worker → stored artifact
  POST /ffmpeg/{instance_id}   JSON (video_url …) → worker → stored artifact

Request lifecycle (upload):
  ┌─────────────────────────────────────────────────────────┐
  │ 1. Pick the file field ('video', else 'file')           │
  │ 2. Size gate → DIRECT | STAGED, or 413 before any I/O   │
  │ 3. Orchestrator: stage? → encode → dispatch → persist   │
  │ 4. ExtractionResult JSON (download_url on success)      │
  └─────────────────────────────────────────────────────────┘

Client input and staging errors are raised as GatewayError and rendered by
the app-level handler as {"success": false, "error": ...}.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import APIRouter, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse

from gateway.api.dependencies import Orchestrator, Policy
from gateway.core.exceptions import ClientInputError
from gateway.schemas.extraction import DEFAULT_OUTPUT_FORMAT, ErrorResponse
from gateway.staging.policy import UploadPayload

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Extraction"])

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing upload field or malformed body"},
    413: {"model": ErrorResponse, "description": "Payload above the maximum upload size"},
    500: {"model": ErrorResponse, "description": "Staging failed"},
}


# ---------------------------------------------------------------------------
# POST /upload/{instance_id}
# ---------------------------------------------------------------------------

@router.post(
    "/upload/{instance_id}",
    summary="Upload a video and extract its audio",
    description=(
        "Accepts a multipart 'video' (or 'file') field up to 100 MB. Payloads up "
        "to 15 MB are sent to the worker directly; larger ones are staged through "
        "object storage first."
    ),
    responses=_ERROR_RESPONSES,
)
async def upload_media(
    instance_id: str,
    orchestrator: Orchestrator,
    policy: Policy,
    video: Optional[UploadFile] = File(None, description="Video file"),
    file: Optional[UploadFile] = File(None, description="Alias for 'video'"),
    output_format: str = Form(DEFAULT_OUTPUT_FORMAT, description="mp3 | wav | flac | aac"),
) -> JSONResponse:
    upload = video or file
    if upload is None:
        raise ClientInputError("No video file provided. Use form field 'video' or 'file'.")

    # Reject on the declared size before reading the body into memory
    if upload.size is not None:
        policy.decide(upload.size)

    data = await upload.read()
    tier = policy.decide(len(data))

    payload = UploadPayload(
        data=data,
        content_type=upload.content_type or "application/octet-stream",
        filename=upload.filename or "upload",
    )

    result = await orchestrator.extract(
        payload,
        tier,
        output_format=output_format,
        instance_id=instance_id,
    )
    return JSONResponse(content=result.to_response())


# ---------------------------------------------------------------------------
# POST /ffmpeg/{instance_id}
# ---------------------------------------------------------------------------

@router.post(
    "/ffmpeg/{instance_id}",
    summary="Extract audio from a remote video URL",
    responses=_ERROR_RESPONSES,
)
async def extract_from_url(
    instance_id: str,
    request: Request,
    orchestrator: Orchestrator,
) -> JSONResponse:
    raw = await request.body()
    try:
        body = json.loads(raw or b"{}")
    except ValueError as exc:
        raise ClientInputError("Invalid JSON payload") from exc
    if not isinstance(body, dict):
        raise ClientInputError("Request body must be a JSON object")

    result = await orchestrator.extract_from_source(body, instance_id)
    return JSONResponse(content=result.to_response())
