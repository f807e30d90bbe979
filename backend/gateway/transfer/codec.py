"""
Binary Transfer Codec

Converts raw bytes to base64 text and back, always in bounded chunks so no
single encode/decode call ever sees the whole buffer (payloads run up to
100 MB).

  encode:  bytes ──► [3·k byte slices] ──► b64 per slice ──► joined text
  decode:  text  ──► [4·k char slices] ──► b64 per slice ──► joined bytes

A multiple of 3 input bytes encodes to unpadded base64, so per-slice outputs
concatenate into exactly the single-pass encoding. Likewise any 4-char
aligned slice of valid base64 decodes independently.
"""

from __future__ import annotations

import base64
import binascii
import logging

from gateway.core.exceptions import ArtifactDecodeError

logger = logging.getLogger(__name__)

ENCODE_CHUNK_BYTES: int = 3 * 256 * 1024     # 768 KB of raw input per slice
DECODE_CHUNK_CHARS: int = 4 * 256 * 1024     # 1 MB of base64 text per slice


class TransferCodec:
    """Chunked base64 codec. Stateless; one instance is shared by all requests."""

    def __init__(
        self,
        encode_chunk_bytes: int = ENCODE_CHUNK_BYTES,
        decode_chunk_chars: int = DECODE_CHUNK_CHARS,
    ) -> None:
        if encode_chunk_bytes <= 0 or encode_chunk_bytes % 3:
            raise ValueError("encode_chunk_bytes must be a positive multiple of 3")
        if decode_chunk_chars <= 0 or decode_chunk_chars % 4:
            raise ValueError("decode_chunk_chars must be a positive multiple of 4")
        self._encode_chunk = encode_chunk_bytes
        self._decode_chunk = decode_chunk_chars

    def encode(self, data: bytes) -> str:
        view = memoryview(data)
        parts = [
            base64.b64encode(view[start:start + self._encode_chunk]).decode("ascii")
            for start in range(0, len(view), self._encode_chunk)
        ]
        return "".join(parts)

    def decode(self, text: str) -> bytes:
        """
        Decode base64 text produced by ``encode`` (or any standard encoder).

        Raises:
            ArtifactDecodeError: non-alphabet characters, a length that is not
                a multiple of 4, or padding anywhere but the final quantum.
        """
        if len(text) % 4:
            raise ArtifactDecodeError(
                f"Invalid base64 length {len(text)} (not a multiple of 4)"
            )

        pad_at = text.find("=")
        if pad_at != -1 and pad_at < len(text) - 2:
            raise ArtifactDecodeError("Invalid base64: padding before end of data")

        out = bytearray()
        for start in range(0, len(text), self._decode_chunk):
            chunk = text[start:start + self._decode_chunk]
            try:
                out += base64.b64decode(chunk.encode("ascii"), validate=True)
            except (binascii.Error, UnicodeEncodeError) as exc:
                logger.debug("Base64 decode failed | offset=%d error=%s", start, exc)
                raise ArtifactDecodeError(f"Invalid base64 at offset {start}: {exc}") from exc
        return bytes(out)
