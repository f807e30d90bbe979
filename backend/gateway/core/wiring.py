"""
Composition root

Builds every long-lived collaborator once, at process start, and bundles
them for injection into request handlers (see gateway.api.dependencies).
Nothing else in the package constructs a store, a directory or an httpx
client on its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from gateway.core.config import Settings
from gateway.services.extraction import ExtractionOrchestrator
from gateway.staging.policy import StagingPolicy
from gateway.storage.s3 import ArtifactStore, StorageConfig
from gateway.transfer.codec import TransferCodec
from gateway.workers.directory import ExecutionUnitDirectory

logger = logging.getLogger(__name__)


@dataclass
class GatewayServices:
    settings:     Settings
    codec:        TransferCodec
    store:        ArtifactStore
    policy:       StagingPolicy
    directory:    ExecutionUnitDirectory
    orchestrator: ExtractionOrchestrator

    async def aclose(self) -> None:
        await self.directory.aclose()


def build_services(
    settings: Settings,
    store: ArtifactStore | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> GatewayServices:
    """
    Wire the gateway from settings. ``store`` and ``http_client`` may be
    supplied to substitute test doubles (mocked store, MockTransport client).
    """
    codec = TransferCodec()

    store = store or ArtifactStore(
        StorageConfig(
            bucket=settings.s3_bucket,
            region=settings.aws_region,
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
        )
    )

    policy = StagingPolicy(
        store=store,
        direct_max_bytes=settings.direct_max_bytes,
        max_bytes=settings.max_upload_bytes,
        staging_prefix=settings.staging_prefix,
    )

    # No client timeout: transcoding a 100 MB upload can legitimately take minutes.
    directory = ExecutionUnitDirectory(
        base_urls=settings.worker_urls,
        client=http_client or httpx.AsyncClient(timeout=None),
    )

    orchestrator = ExtractionOrchestrator(
        codec=codec,
        policy=policy,
        store=store,
        directory=directory,
        upload_path=settings.worker_upload_path,
        source_path=settings.worker_source_path,
        artifact_prefix=settings.artifact_prefix,
    )

    logger.info(
        "Gateway wired | bucket=%s workers=%d direct_max=%d max=%d",
        settings.s3_bucket, len(settings.worker_urls),
        settings.direct_max_bytes, settings.max_upload_bytes,
    )

    return GatewayServices(
        settings=settings,
        codec=codec,
        store=store,
        policy=policy,
        directory=directory,
        orchestrator=orchestrator,
    )
