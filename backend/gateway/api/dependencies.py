"""
Composed FastAPI Dependencies

Route handlers receive their collaborators from here — never by importing
module-level instances. Everything resolves from ``app.state.services``,
which the app factory populates from the composition root.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from gateway.core.config import Settings
from gateway.core.wiring import GatewayServices
from gateway.services.extraction import ExtractionOrchestrator
from gateway.staging.policy import StagingPolicy
from gateway.storage.s3 import ArtifactStore
from gateway.workers.directory import ExecutionUnitDirectory


def get_services(request: Request) -> GatewayServices:
    return request.app.state.services


def get_settings_dep(services: Annotated[GatewayServices, Depends(get_services)]) -> Settings:
    return services.settings


def get_orchestrator(services: Annotated[GatewayServices, Depends(get_services)]) -> ExtractionOrchestrator:
    return services.orchestrator


def get_policy(services: Annotated[GatewayServices, Depends(get_services)]) -> StagingPolicy:
    return services.policy


def get_store(services: Annotated[GatewayServices, Depends(get_services)]) -> ArtifactStore:
    return services.store


def get_directory(services: Annotated[GatewayServices, Depends(get_services)]) -> ExecutionUnitDirectory:
    return services.directory


# ---------------------------------------------------------------------------
# Type aliases for cleaner route signatures
# ---------------------------------------------------------------------------

AppSettings  = Annotated[Settings,               Depends(get_settings_dep)]
Orchestrator = Annotated[ExtractionOrchestrator, Depends(get_orchestrator)]
Policy       = Annotated[StagingPolicy,          Depends(get_policy)]
Store        = Annotated[ArtifactStore,          Depends(get_store)]
Directory    = Annotated[ExecutionUnitDirectory, Depends(get_directory)]
