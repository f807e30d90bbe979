"""
Application configuration via environment variables (12-factor).
Pydantic BaseSettings validates and coerces all values at startup.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from gateway.schemas.extraction import DIRECT_TRANSFER_MAX_BYTES, MAX_UPLOAD_BYTES


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ------------------------------------------------------------------
    # Object storage — AWS S3 or any S3-compatible endpoint (R2, MinIO)
    # ------------------------------------------------------------------
    aws_region: str = "auto"          # R2 expects "auto"; S3 wants a real region
    s3_bucket:  str = "audio-storage"
    s3_endpoint_url: str = ""         # e.g. https://<account>.r2.cloudflarestorage.com

    # Local dev: set these; prod: use the platform's role credentials
    aws_access_key_id:     str = ""
    aws_secret_access_key: str = ""

    # ------------------------------------------------------------------
    # Workers — the execution unit directory
    # ------------------------------------------------------------------
    worker_urls: list[str] = ["http://localhost:8080"]
    worker_upload_path: str = "/ffmpeg/extract-audio-upload"
    worker_source_path: str = "/ffmpeg/extract-audio"
    worker_pool_size:   int = 3     # instances behind GET /lb

    # ------------------------------------------------------------------
    # Size tiers
    # ------------------------------------------------------------------
    direct_max_bytes: int = DIRECT_TRANSFER_MAX_BYTES   # <= this: encode in-request
    max_upload_bytes: int = MAX_UPLOAD_BYTES            # > this: rejected

    staging_prefix:  str = "temp-uploads"
    artifact_prefix: str = "audio"

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------
    app_env: str = "development"   # development | staging | production
    debug: bool = False
    cors_origins: list[str] = ["*"]

    @model_validator(mode="after")
    def _check_size_tiers(self) -> "Settings":
        if self.direct_max_bytes < 0:
            raise ValueError("direct_max_bytes must be >= 0")
        if self.max_upload_bytes < self.direct_max_bytes:
            raise ValueError(
                f"max_upload_bytes ({self.max_upload_bytes}) must be >= "
                f"direct_max_bytes ({self.direct_max_bytes})"
            )
        return self

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
