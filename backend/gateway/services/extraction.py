"""
Extraction Orchestrator

Drives one extraction request end to end, whichever tier the payload uses:

  1. Obtain raw bytes   (DIRECT: the upload; STAGED: stage → read back)
  2. Encode             (chunked base64)
  3. Dispatch           (POST to the unit resolved for the instance id)
  4. Interpret          (non-2xx / unreachable / unreadable → failure result)
  5. Persist artifact   (decode audio_data → audio_<id>_<ts>.<ext>, audio/mpeg)
  6. Respond            (download_url instead of the encoded bytes)
  7. Cleanup            (staged temp object deleted on every path)

The same dispatch/interpret/persist path also serves the URL-based
extraction route (``extract_from_source``), which has no staged object.

Failures at steps 3–5 come back as ``ExtractionResult(success=False)``.
Staging failures and client input errors are raised for the route layer.
Nothing is retried.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

import httpx
from pydantic import ValidationError

from gateway.core.exceptions import ClientInputError, PersistenceError, WorkerDispatchError
from gateway.schemas.extraction import (
    ARTIFACT_CONTENT_TYPE,
    DEFAULT_OUTPUT_FORMAT,
    SUPPORTED_OUTPUT_FORMATS,
    ExtractionRequest,
    ExtractionResult,
)
from gateway.staging.policy import (
    StagedObject,
    StagingPolicy,
    StagingTier,
    UploadPayload,
    now_ms,
)
from gateway.storage.s3 import ArtifactStore
from gateway.transfer.codec import TransferCodec
from gateway.workers.directory import ByIdentifier, ExecutionUnit, ExecutionUnitDirectory

logger = logging.getLogger(__name__)

_ERROR_BODY_LIMIT = 2000   # chars of a failing unit's body echoed back


def resolve_output_format(value: str | None) -> str:
    """
    Normalise a requested audio format. It ends up in the artifact key, so
    only the known extensions are accepted.

    Raises:
        ClientInputError: unsupported format.
    """
    fmt = str(value or DEFAULT_OUTPUT_FORMAT).strip().lower()
    if fmt not in SUPPORTED_OUTPUT_FORMATS:
        raise ClientInputError(
            f"Unsupported output format '{value}'. "
            f"Use one of: {', '.join(sorted(SUPPORTED_OUTPUT_FORMATS))}"
        )
    return fmt


class ExtractionOrchestrator:
    """
    Stateless service object shared by all requests.
    All collaborators are injected by the composition root.
    """

    def __init__(
        self,
        codec:     TransferCodec,
        policy:    StagingPolicy,
        store:     ArtifactStore,
        directory: ExecutionUnitDirectory,
        upload_path: str = "/ffmpeg/extract-audio-upload",
        source_path: str = "/ffmpeg/extract-audio",
        artifact_prefix: str = "audio",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._codec     = codec
        self._policy    = policy
        self._store     = store
        self._directory = directory
        self._upload_path = upload_path
        self._source_path = source_path
        self._artifact_prefix = artifact_prefix
        self._clock = clock

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def extract(
        self,
        payload:       UploadPayload,
        tier:          StagingTier,
        output_format: str,
        instance_id:   str,
    ) -> ExtractionResult:
        """
        Run an uploaded payload through the worker and store the artifact.

        Raises:
            ClientInputError: unsupported output format, before any I/O.
            StagingError: STAGED tier only, before anything is dispatched.
        """
        output_format = resolve_output_format(output_format)
        staged: StagedObject | None = None

        logger.info(
            "Extract start | instance=%s file=%s size=%d tier=%s format=%s",
            instance_id, payload.filename, payload.length, tier.value, output_format,
        )

        try:
            if tier is StagingTier.STAGED:
                staged = await self._policy.stage(payload, instance_id)
                raw = staged.data
            else:
                raw = payload.data

            request = ExtractionRequest(
                video_data=self._codec.encode(raw),
                filename=payload.filename,
                file_size=payload.length,
                output_format=output_format,
                instance_id=instance_id,
            )

            unit = self._directory.get(ByIdentifier(f"/upload/{instance_id}"))
            return await self._dispatch_and_persist(
                unit,
                self._upload_path,
                request.model_dump(mode="json"),
                instance_id=instance_id,
                output_format=output_format,
            )
        finally:
            if staged is not None:
                await self._policy.discard(staged.key)

    async def extract_from_source(
        self,
        body:        dict[str, Any],
        instance_id: str,
    ) -> ExtractionResult:
        """
        Forward a URL-based extraction request, flagged for artifact storage,
        and persist whatever artifact comes back.

        Raises:
            ClientInputError: unsupported output format, before dispatch.
        """
        output_format = resolve_output_format(
            body.get("output_format") or body.get("audio_format")
        )
        forwarded = {**body, "use_r2_storage": True, "instance_id": instance_id}

        logger.info("Extract from source | instance=%s format=%s", instance_id, output_format)

        unit = self._directory.get(ByIdentifier(f"/ffmpeg/{instance_id}"))
        return await self._dispatch_and_persist(
            unit,
            self._source_path,
            forwarded,
            instance_id=instance_id,
            output_format=output_format,
        )

    # ------------------------------------------------------------------
    # Shared pipeline: dispatch → interpret → persist
    # ------------------------------------------------------------------

    async def _dispatch_and_persist(
        self,
        unit:          ExecutionUnit,
        path:          str,
        body:          dict[str, Any],
        *,
        instance_id:   str,
        output_format: str,
    ) -> ExtractionResult:
        try:
            result = await self._dispatch(unit, path, body)
        except WorkerDispatchError as exc:
            logger.warning(
                "Worker dispatch failed | instance=%s unit=%s status=%s error=%s",
                instance_id, unit.name, exc.unit_status, exc.message,
            )
            return ExtractionResult.failure(exc.message)

        if not (result.success and result.audio_data):
            logger.info(
                "Worker result passed through | instance=%s success=%s",
                instance_id, result.success,
            )
            return result

        try:
            return await self._persist_artifact(result, instance_id, output_format)
        except PersistenceError as exc:
            logger.error("Artifact persistence failed | instance=%s error=%s", instance_id, exc)
            return ExtractionResult.failure(exc.message)

    async def _dispatch(
        self,
        unit: ExecutionUnit,
        path: str,
        body: dict[str, Any],
    ) -> ExtractionResult:
        """
        POST ``body`` to the unit and parse its ExtractionResult.

        Raises:
            WorkerDispatchError: unreachable unit, non-2xx status, or a body
                that is not an ExtractionResult.
        """
        try:
            resp = await unit.fetch("POST", path, json=body)
        except httpx.RequestError as exc:
            raise WorkerDispatchError(f"Container request failed: {exc}") from exc

        if not resp.is_success:
            raise WorkerDispatchError(
                f"Container returned {resp.status_code}: {resp.text[:_ERROR_BODY_LIMIT]}",
                unit_status=resp.status_code,
            )

        try:
            return ExtractionResult.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise WorkerDispatchError(
                f"Container returned an invalid response: {exc}",
                unit_status=resp.status_code,
            ) from exc

    async def _persist_artifact(
        self,
        result:        ExtractionResult,
        instance_id:   str,
        output_format: str,
    ) -> ExtractionResult:
        """
        Decode the worker's artifact and store it.

        Raises:
            PersistenceError: decode or storage failure.
        """
        file_name = f"{self._artifact_prefix}_{instance_id}_{self._clock()}.{output_format}"

        try:
            audio = self._codec.decode(result.audio_data or "")
            await self._store.put_object(file_name, audio, ARTIFACT_CONTENT_TYPE)
        except Exception as exc:
            raise PersistenceError(f"Artifact storage failed: {exc}") from exc

        logger.info(
            "Artifact stored | instance=%s key=%s size=%d",
            instance_id, file_name, len(audio),
        )

        return ExtractionResult(
            **result.extras(),
            success=True,
            message="Audio extracted and stored successfully",
            download_url=self._store.locator(file_name),
            file_name=file_name,
            storage_key=file_name,
        )
