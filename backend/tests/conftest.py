"""
Root conftest.py — Shared fixtures for ALL tests (unit + integration)

Fixture hierarchy:
  function-scoped : test_settings, stored_objects, mock_storage, fake_worker,
                    worker_client, directory, codec, policy, orchestrator,
                    services, app, async_client

Environment strategy:
  - Object storage is a MagicMock(spec=ArtifactStore) backed by a plain dict,
    so tests can assert exactly which keys exist after a request.
  - Workers are an httpx.MockTransport handler (FakeWorker) that records
    every request and answers like the real transcoding container.
  - No network, no AWS, no worker processes.

How to run:
  pytest                          # all tests
  pytest -m unit                  # unit tests only
  pytest -m integration           # HTTP surface through ASGITransport
"""

from __future__ import annotations

import base64
import json
import os
from typing import AsyncGenerator, Callable
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio

# ─────────────────────────────────────────────────────────────────────────────
# Patch settings BEFORE any app imports so modules read test config
# ─────────────────────────────────────────────────────────────────────────────

os.environ.setdefault("S3_BUCKET",             "test-bucket")
os.environ.setdefault("AWS_REGION",            "auto")
os.environ.setdefault("AWS_ACCESS_KEY_ID",     "test")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")
os.environ.setdefault("APP_ENV",               "development")
os.environ.setdefault("DEBUG",                 "true")

MB = 1024 * 1024
WORKER_URL = "http://worker-a:8080"
FIXED_NOW_MS = 1_700_000_000_000
FAKE_MP3 = b"ID3\x04\x00\x00\x00\x00\x00\x00" + b"\xff\xfb\x90\x64" * 64


# ─────────────────────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def test_settings():
    from gateway.core.config import Settings
    return Settings(
        _env_file=None,
        s3_bucket="test-bucket",
        worker_urls=[WORKER_URL],
    )


# ─────────────────────────────────────────────────────────────────────────────
# Mock object storage — dict-backed
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def stored_objects() -> dict[str, bytes]:
    """Current contents of the mocked bucket: key → bytes."""
    return {}


@pytest.fixture
def mock_storage(stored_objects):
    """
    MagicMock(spec=ArtifactStore) whose async methods read and write
    ``stored_objects``. Missing keys behave like the real store: get → None,
    delete → no-op.
    """
    from gateway.storage.s3 import ArtifactStore, StoredObjectInfo

    storage = MagicMock(spec=ArtifactStore)
    content_types: dict[str, str] = {}

    async def _put_object(key, body, content_type):
        data = bytes(body) if isinstance(body, (bytes, bytearray)) else body.read()
        stored_objects[key] = data
        content_types[key] = content_type
        return StoredObjectInfo(
            key=key,
            bucket="test-bucket",
            size_bytes=len(data),
            content_type=content_type,
            etag="d41d8cd98f00b204e9800998ecf8427e",
        )

    async def _get_object(key):
        return stored_objects.get(key)

    async def _delete_object(key):
        stored_objects.pop(key, None)

    storage.put_object    = AsyncMock(side_effect=_put_object)
    storage.get_object    = AsyncMock(side_effect=_get_object)
    storage.delete_object = AsyncMock(side_effect=_delete_object)
    storage.locator       = MagicMock(side_effect=lambda key: f"/download/{key}")
    storage.content_types = content_types
    return storage


# ─────────────────────────────────────────────────────────────────────────────
# Fake worker (execution unit) behind httpx.MockTransport
# ─────────────────────────────────────────────────────────────────────────────

class FakeWorker:
    """
    Records every request and answers with the configured response.
    Default: a successful extraction carrying FAKE_MP3 as audio_data.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._responder: Callable[[httpx.Request], httpx.Response] = self._extraction_ok

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._responder(request)

    @staticmethod
    def _extraction_ok(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "success": True,
                "message": "Audio extracted successfully (5.00 MB video → 0.01 MB audio)",
                "audio_data": base64.b64encode(FAKE_MP3).decode(),
                "file_size": "5.00 MB",
                "progress": "100%",
            },
        )

    def respond_with(self, status_code: int = 200, json_body=None, text: str | None = None) -> None:
        def _respond(request: httpx.Request) -> httpx.Response:
            if json_body is not None:
                return httpx.Response(status_code, json=json_body)
            return httpx.Response(status_code, text=text or "")
        self._responder = _respond

    def respond(self, responder: Callable[[httpx.Request], httpx.Response]) -> None:
        self._responder = responder

    def fail_with(self, exc: Exception) -> None:
        def _raise(request: httpx.Request) -> httpx.Response:
            raise exc
        self._responder = _raise

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]

    @property
    def last_json(self) -> dict:
        return json.loads(self.last_request.content)


@pytest.fixture
def fake_worker() -> FakeWorker:
    return FakeWorker()


@pytest_asyncio.fixture
async def worker_client(fake_worker) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_worker)) as client:
        yield client


@pytest.fixture
def directory(worker_client):
    from gateway.workers.directory import ExecutionUnitDirectory
    return ExecutionUnitDirectory([WORKER_URL], worker_client)


# ─────────────────────────────────────────────────────────────────────────────
# Core components
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def codec():
    from gateway.transfer.codec import TransferCodec
    return TransferCodec()


@pytest.fixture
def policy(mock_storage):
    """Production thresholds (15 MB / 100 MB) with a frozen clock."""
    from gateway.staging.policy import StagingPolicy
    return StagingPolicy(store=mock_storage, clock=lambda: FIXED_NOW_MS)


@pytest.fixture
def orchestrator(codec, policy, mock_storage, directory):
    from gateway.services.extraction import ExtractionOrchestrator
    return ExtractionOrchestrator(
        codec=codec,
        policy=policy,
        store=mock_storage,
        directory=directory,
        clock=lambda: FIXED_NOW_MS,
    )


@pytest.fixture
def make_payload():
    """Factory: UploadPayload of ``size`` bytes."""
    from gateway.staging.policy import UploadPayload

    def _build(size: int, filename: str = "clip.mp4", content_type: str = "video/mp4"):
        return UploadPayload(data=b"\x00" * size, content_type=content_type, filename=filename)

    return _build


# ─────────────────────────────────────────────────────────────────────────────
# FastAPI app wired with the mocks
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def services(test_settings, mock_storage, worker_client, policy, orchestrator, directory, codec):
    """GatewayServices built from the same mocks the unit fixtures use."""
    from gateway.core.wiring import GatewayServices
    return GatewayServices(
        settings=test_settings,
        codec=codec,
        store=mock_storage,
        policy=policy,
        directory=directory,
        orchestrator=orchestrator,
    )


@pytest.fixture
def app(services):
    from gateway.main import create_app
    return create_app(services=services)


@pytest_asyncio.fixture
async def async_client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Async HTTP test client over ASGITransport (lifespan is not run)."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
