"""
Routing-only endpoints: hand the inbound request to a resolved unit and
return its response untouched.

  GET  /container/{id}     ByIdentifier("/container/{id}")
  GET  /lb                 RandomFromPool(worker_pool_size)
  GET  /singleton          FixedSingleton()
  GET  /error              FixedSingleton("error-test")
  POST /youtube/{id}/info  ByIdentifier("/youtube/{id}") → /youtube/info
"""

from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse, Response

from gateway.api.dependencies import AppSettings, Directory
from gateway.workers.directory import (
    ByIdentifier,
    ExecutionUnit,
    FixedSingleton,
    RandomFromPool,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Containers"])

# Hop-by-hop and length headers are recomputed by each side
_SKIP_REQUEST_HEADERS  = frozenset({"host", "content-length", "connection", "transfer-encoding"})
_SKIP_RESPONSE_HEADERS = frozenset({"content-length", "connection", "transfer-encoding", "content-encoding"})


async def _forward(
    unit: ExecutionUnit,
    request: Request,
    path: str | None = None,
) -> Response:
    body = await request.body()
    headers = {
        k: v for k, v in request.headers.items()
        if k.lower() not in _SKIP_REQUEST_HEADERS
    }
    try:
        upstream = await unit.fetch(
            request.method,
            path or request.url.path,
            content=body or None,
            headers=headers,
            params=list(request.query_params.multi_items()),
        )
    except httpx.RequestError as exc:
        logger.warning("Pass-through failed | unit=%s error=%s", unit.name, exc)
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"success": False, "error": f"Container request failed: {exc}"},
        )

    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        headers={
            k: v for k, v in upstream.headers.items()
            if k.lower() not in _SKIP_RESPONSE_HEADERS
        },
    )


@router.get("/container/{instance_id}")
async def container(instance_id: str, request: Request, directory: Directory) -> Response:
    unit = directory.get(ByIdentifier(f"/container/{instance_id}"))
    return await _forward(unit, request)


@router.get("/lb")
async def load_balanced(request: Request, directory: Directory, settings: AppSettings) -> Response:
    unit = directory.get(RandomFromPool(settings.worker_pool_size))
    return await _forward(unit, request)


@router.get("/singleton")
async def singleton(request: Request, directory: Directory) -> Response:
    unit = directory.get(FixedSingleton())
    return await _forward(unit, request)


@router.get("/error")
async def error(request: Request, directory: Directory) -> Response:
    unit = directory.get(FixedSingleton("error-test"))
    return await _forward(unit, request)


@router.post("/youtube/{instance_id}/info")
async def youtube_info(instance_id: str, request: Request, directory: Directory) -> Response:
    unit = directory.get(ByIdentifier(f"/youtube/{instance_id}"))
    return await _forward(unit, request, path="/youtube/info")
