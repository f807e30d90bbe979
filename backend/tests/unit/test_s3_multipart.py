"""
Unit Tests — S3 Streaming Multipart Upload
═══════════════════════════════════════════
Tests for gateway/storage/multipart.py

Coverage:
  ✅ Successful multipart upload (single part, multi-part)
  ✅ Empty body raises ValueError and aborts
  ✅ upload_part failure triggers abort_multipart_upload
  ✅ complete_multipart_upload failure triggers abort
  ✅ create_multipart_upload failure propagates without abort
  ✅ Content type and client kwargs reach S3
  ✅ Part numbers are sequential (1-based)
  ✅ StreamUploadResult has correct fields
"""

from __future__ import annotations

import io
from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ClientError

from gateway.storage.multipart import (
    CHUNK_SIZE,
    StreamUploadResult,
    streaming_multipart_upload,
)

STAGING_KEY = "temp-uploads/abc/1700000000000_clip.mp4"


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "test"}}, "operation")


def _build_s3_mock(upload_id: str = "test-upload-id", part_etag: str = "etag-123") -> AsyncMock:
    """Build a mock S3 client context manager."""
    s3 = AsyncMock()
    s3.__aenter__ = AsyncMock(return_value=s3)
    s3.__aexit__  = AsyncMock(return_value=None)
    s3.create_multipart_upload   = AsyncMock(return_value={"UploadId": upload_id})
    s3.upload_part               = AsyncMock(return_value={"ETag": f'"{part_etag}"'})
    s3.complete_multipart_upload = AsyncMock(return_value={"ETag": f'"{part_etag}"'})
    s3.abort_multipart_upload    = AsyncMock(return_value={})
    return s3


def _session_for(s3_mock: AsyncMock) -> MagicMock:
    session = MagicMock()
    session.client.return_value = s3_mock
    return session


@pytest.fixture
def video_bytes() -> bytes:
    return b"\x00\x00\x00\x18ftypmp42" + b"\x11" * 4096


# ─────────────────────────────────────────────────────────────────────────────
# Tests
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.s3
class TestStreamingMultipartUpload:

    async def test_single_chunk_upload_succeeds(self, video_bytes):
        """A body smaller than CHUNK_SIZE uploads as a single part."""
        s3_mock = _build_s3_mock()

        result = await streaming_multipart_upload(
            body=io.BytesIO(video_bytes),
            bucket="test-bucket",
            key=STAGING_KEY,
            content_type="video/mp4",
            session=_session_for(s3_mock),
        )

        assert result.size_bytes == len(video_bytes)
        assert result.key        == STAGING_KEY
        assert result.bucket     == "test-bucket"
        assert result.part_count == 1

    async def test_multipart_splits_into_correct_number_of_parts(self):
        """12 MB with a 5 MB chunk size → 3 parts (5+5+2)."""
        content = b"x" * (12 * 1024 * 1024)
        s3_mock = _build_s3_mock()

        result = await streaming_multipart_upload(
            body=io.BytesIO(content),
            bucket="test-bucket",
            key=STAGING_KEY,
            content_type="video/mp4",
            session=_session_for(s3_mock),
        )

        assert result.part_count == 3
        assert result.size_bytes == len(content)
        assert s3_mock.upload_part.call_count == 3

    async def test_content_type_and_client_kwargs_are_forwarded(self, video_bytes):
        s3_mock = _build_s3_mock()
        session = _session_for(s3_mock)

        await streaming_multipart_upload(
            body=io.BytesIO(video_bytes),
            bucket="test-bucket",
            key=STAGING_KEY,
            content_type="video/quicktime",
            session=session,
            client_kwargs={"region_name": "auto", "endpoint_url": "https://r2.example"},
        )

        session.client.assert_called_once_with(
            "s3", region_name="auto", endpoint_url="https://r2.example"
        )
        create_kwargs = s3_mock.create_multipart_upload.call_args[1]
        assert create_kwargs["ContentType"] == "video/quicktime"
        assert create_kwargs["Metadata"]    == {"upload-method": "streaming-multipart"}

    async def test_empty_body_raises_value_error_and_aborts(self):
        s3_mock = _build_s3_mock()

        with pytest.raises(ValueError):
            await streaming_multipart_upload(
                body=io.BytesIO(b""),
                bucket="test-bucket",
                key=STAGING_KEY,
                content_type="video/mp4",
                session=_session_for(s3_mock),
            )

        s3_mock.abort_multipart_upload.assert_called_once()
        s3_mock.complete_multipart_upload.assert_not_called()

    async def test_upload_part_failure_calls_abort(self, video_bytes):
        s3_mock = _build_s3_mock()
        s3_mock.upload_part = AsyncMock(side_effect=_client_error("RequestTimeout"))

        with pytest.raises(ClientError):
            await streaming_multipart_upload(
                body=io.BytesIO(video_bytes),
                bucket="test-bucket",
                key=STAGING_KEY,
                content_type="video/mp4",
                session=_session_for(s3_mock),
            )

        s3_mock.abort_multipart_upload.assert_called_once()

    async def test_complete_failure_calls_abort(self, video_bytes):
        s3_mock = _build_s3_mock()
        s3_mock.complete_multipart_upload = AsyncMock(
            side_effect=_client_error("InternalError")
        )

        with pytest.raises(ClientError):
            await streaming_multipart_upload(
                body=io.BytesIO(video_bytes),
                bucket="test-bucket",
                key=STAGING_KEY,
                content_type="video/mp4",
                session=_session_for(s3_mock),
            )

        s3_mock.abort_multipart_upload.assert_called_once()

    async def test_abort_failure_does_not_mask_original_error(self, video_bytes):
        s3_mock = _build_s3_mock()
        s3_mock.upload_part = AsyncMock(side_effect=_client_error("RequestTimeout"))
        s3_mock.abort_multipart_upload = AsyncMock(side_effect=_client_error("NoSuchUpload"))

        with pytest.raises(ClientError) as exc_info:
            await streaming_multipart_upload(
                body=io.BytesIO(video_bytes),
                bucket="test-bucket",
                key=STAGING_KEY,
                content_type="video/mp4",
                session=_session_for(s3_mock),
            )

        assert exc_info.value.response["Error"]["Code"] == "RequestTimeout"

    async def test_create_multipart_failure_propagates(self, video_bytes):
        """If create_multipart_upload fails, error propagates without abort attempt."""
        s3_mock = _build_s3_mock()
        s3_mock.create_multipart_upload = AsyncMock(
            side_effect=_client_error("AccessDenied")
        )

        with pytest.raises(ClientError):
            await streaming_multipart_upload(
                body=io.BytesIO(video_bytes),
                bucket="test-bucket",
                key=STAGING_KEY,
                content_type="video/mp4",
                session=_session_for(s3_mock),
            )

        # No abort call — upload never started
        s3_mock.abort_multipart_upload.assert_not_called()

    async def test_part_numbers_are_sequential_and_1_based(self):
        content = b"x" * (CHUNK_SIZE * 2 + 1024)   # 3 parts
        s3_mock = _build_s3_mock()

        await streaming_multipart_upload(
            body=io.BytesIO(content),
            bucket="test-bucket",
            key=STAGING_KEY,
            content_type="video/mp4",
            session=_session_for(s3_mock),
        )

        part_numbers = [
            call_args[1]["PartNumber"]
            for call_args in s3_mock.upload_part.call_args_list
        ]
        assert part_numbers == [1, 2, 3]

        completed = s3_mock.complete_multipart_upload.call_args[1]["MultipartUpload"]["Parts"]
        assert [p["PartNumber"] for p in completed] == [1, 2, 3]

    async def test_result_contains_complete_fields(self, video_bytes):
        s3_mock = _build_s3_mock(upload_id="uid-123", part_etag="abc123")

        result = await streaming_multipart_upload(
            body=io.BytesIO(video_bytes),
            bucket="my-bucket",
            key=STAGING_KEY,
            content_type="video/mp4",
            session=_session_for(s3_mock),
        )

        assert isinstance(result, StreamUploadResult)
        assert result.key        == STAGING_KEY
        assert result.bucket     == "my-bucket"
        assert result.size_bytes == len(video_bytes)
        assert result.part_count == 1
        assert result.etag       == "abc123"
