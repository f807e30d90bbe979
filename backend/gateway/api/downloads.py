"""
GET /download/{filename} — serve a stored artifact.
"""

from __future__ import annotations

import logging
from urllib.parse import quote

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse, Response

from gateway.api.dependencies import Store
from gateway.schemas.extraction import ARTIFACT_CONTENT_TYPE

logger = logging.getLogger(__name__)


def _content_disposition(filename: str) -> str:
    # Same rule as starlette FileResponse: RFC 5987 form for unsafe names
    quoted = quote(filename)
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'


router = APIRouter(tags=["Artifacts"])


@router.get(
    "/download/{filename}",
    summary="Download an extracted audio file",
    response_class=Response,
    responses={
        200: {"content": {ARTIFACT_CONTENT_TYPE: {}}},
        404: {"description": "No artifact with that name"},
        500: {"description": "Storage read failed"},
    },
)
async def download_artifact(filename: str, store: Store) -> Response:
    try:
        data = await store.get_object(filename)
    except Exception as exc:
        logger.exception("Download failed | key=%s", filename)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": f"Download failed: {exc}"},
        )

    if data is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "File not found"},
        )

    return Response(
        content=data,
        media_type=ARTIFACT_CONTENT_TYPE,
        headers={"Content-Disposition": _content_disposition(filename)},
    )
