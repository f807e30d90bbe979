"""
FastAPI Application — Entry Point

Media Extraction Gateway

Architecture:
  - Uploads are size-tiered: ≤15 MB go to the worker directly as base64,
    15–100 MB are staged through object storage first, >100 MB are rejected
  - Workers ("execution units") are addressed through a directory that maps
    an instance id to a stable worker URL
  - Extracted audio is persisted in S3-compatible storage and served from
    GET /download/{filename}
  - Structured JSON error responses on all 4xx/5xx

Middleware stack (innermost → outermost):
  1. CORS — configured origins
  2. Request ID + logging — X-Request-ID header and one log line per request

All collaborators are built once by the composition root
(gateway.core.wiring) and live on ``app.state.services``.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gateway.api.containers import router as containers_router
from gateway.api.downloads import router as downloads_router
from gateway.api.extraction import router as extraction_router
from gateway.core.config import Settings, get_settings
from gateway.core.exceptions import GatewayError
from gateway.core.wiring import GatewayServices, build_services
from gateway.schemas.extraction import ErrorResponse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application lifespan — startup / shutdown hooks
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the config summary on startup; close the worker HTTP client on shutdown."""
    services: GatewayServices = app.state.services
    cfg = services.settings
    logger.info(
        "Starting media gateway | env=%s bucket=%s workers=%s",
        cfg.app_env, cfg.s3_bucket, ",".join(cfg.worker_urls),
    )

    yield

    logger.info("Shutting down media gateway")
    await services.aclose()


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Settings | None = None,
    services: GatewayServices | None = None,
) -> FastAPI:
    settings = settings or (services.settings if services else get_settings())

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    app = FastAPI(
        title="Media Extraction Gateway",
        description=(
            "Accepts video uploads and URLs, forwards them to transcoding workers, "
            "and stores the extracted audio in object storage."
        ),
        version="1.0.0",
        docs_url="/docs" if not settings.is_production else None,
        redoc_url=None,
        openapi_url="/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )
    app.state.services = services or build_services(settings)

    # ----------------------------------------------------------------
    # Middleware (applied in reverse order — last added = outermost)
    # ----------------------------------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "Content-Disposition"],
    )

    @app.middleware("http")
    async def request_id_and_logging(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "HTTP %s %s %d %.1fms | request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request_id,
        )
        return response

    # ----------------------------------------------------------------
    # Exception handlers — uniform {"success": false, "error": ...} bodies
    # ----------------------------------------------------------------

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        logger.warning(
            "Request failed | path=%s kind=%s status=%d error=%s",
            request.url.path, type(exc).__name__, exc.status_code, exc.message,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=exc.message).model_dump(mode="json"),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Convert FastAPI validation errors to the gateway's error body."""
        message = "; ".join(
            f"{' → '.join(str(loc) for loc in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        )
        return JSONResponse(
            status_code=422,
            content=ErrorResponse(error=f"Request validation failed: {message}").model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch-all for unhandled exceptions — never expose stack traces."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        logger.exception(
            "Unhandled exception | path=%s request_id=%s",
            request.url.path, request_id,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(error="An unexpected error occurred.").model_dump(mode="json"),
            headers={"X-Request-ID": request_id},
        )

    # ----------------------------------------------------------------
    # Routers
    # ----------------------------------------------------------------

    app.include_router(extraction_router)
    app.include_router(downloads_router)
    app.include_router(containers_router)

    @app.get(
        "/health",
        tags=["Operations"],
        summary="Liveness check",
        description="Returns 200 if the process is alive. No external checks.",
    )
    async def health() -> dict:
        return {"status": "ok", "service": "media-gateway"}

    return app


# ---------------------------------------------------------------------------
# Local development entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "gateway.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=_settings.app_env == "development",
        log_level="debug" if _settings.debug else "info",
        access_log=True,
    )
