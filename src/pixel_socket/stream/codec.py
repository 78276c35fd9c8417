"""
Frame Codec
===========

Decodes raw WebSocket frames into generic object trees.

Binary frames (primary format):
    zstd-compressed MessagePack → dict / list / scalar tree

Text frames (legacy formats):
    JSON object                  → dict
    bare base64 or data URL      → raw image bytes

Design Rules:
    - The zstd engine is initialized once per process, lazily, behind a
      single-flight lock (concurrent first frames never double-initialize)
    - A frame either decodes completely or raises DecodeError; partial
      output is never returned
    - MessagePack integers decode as exact Python ints (no float
      precision loss on 64-bit fields)
    - Does NOT interpret the decoded tree (see extractor)
"""

import base64
import binascii
import json
import logging
import re
import threading
from typing import Any, Dict, List, Optional, Union

import msgpack
import zstandard

from pixel_socket.errors import DecodeError


logger = logging.getLogger(__name__)


# Generic decoded value: what msgpack and json produce before typed extraction
ObjectTree = Union[
    None, bool, int, float, str, bytes, List["ObjectTree"], Dict[str, "ObjectTree"]
]

DEFAULT_MAX_OUTPUT_SIZE = 256 * 1024 * 1024

_DATA_URL_PREFIX = re.compile(r"^data:[^;,]*;base64,", re.IGNORECASE)
_BASE64_ALPHABET = re.compile(r"^[A-Za-z0-9+/]+={0,2}$")


class ZstdEngine:
    """
    Lazily-initialized, lock-guarded zstd decompressor.

    ZstdDecompressor instances are not safe for concurrent use, so the
    engine serializes decompression on the same lock that guards
    initialization. Frames are decoded one at a time per connection
    anyway; the lock only matters when several clients share an engine.

    Attributes:
        max_output_size: Upper bound for frames that do not declare
            their decompressed size

    Example:
        engine = ZstdEngine()
        raw = engine.decompress(frame)
    """

    def __init__(self, max_output_size: int = DEFAULT_MAX_OUTPUT_SIZE) -> None:
        self.max_output_size = max_output_size

        self._lock = threading.Lock()
        self._decompressor: Optional[zstandard.ZstdDecompressor] = None
        self._init_count: int = 0

    @property
    def initialized(self) -> bool:
        """Whether the decompressor has been created."""
        return self._decompressor is not None

    @property
    def init_count(self) -> int:
        """Number of times initialization actually ran (0 or 1)."""
        return self._init_count

    def ensure_initialized(self) -> None:
        """
        Create the decompressor exactly once.

        Safe to call from any number of threads: only the first caller
        pays the initialization cost, later callers wait on the lock and
        then return without doing anything.
        """
        if self._decompressor is not None:
            return

        with self._lock:
            if self._decompressor is None:
                self._decompressor = zstandard.ZstdDecompressor()
                self._init_count += 1
                logger.debug("zstd decompressor initialized")

    def decompress(self, data: bytes) -> bytes:
        """
        Decompress one complete zstd frame.

        Raises:
            DecodeError: Bad magic, truncated or corrupt input, or
                output larger than max_output_size
        """
        self.ensure_initialized()

        with self._lock:
            try:
                content_size = zstandard.frame_content_size(data)

                if content_size > self.max_output_size:
                    raise DecodeError(
                        f"Declared content size {content_size} exceeds "
                        f"limit {self.max_output_size}"
                    )

                if content_size >= 0:
                    return self._decompressor.decompress(data)

                # Streamed frames carry no content size
                dobj = self._decompressor.decompressobj()
                output = dobj.decompress(data)
                if not dobj.eof:
                    raise DecodeError(
                        f"Truncated zstd frame ({len(data)} bytes received)"
                    )
                if len(output) > self.max_output_size:
                    raise DecodeError(
                        f"Decompressed size {len(output)} exceeds "
                        f"limit {self.max_output_size}"
                    )
                return output

            except zstandard.ZstdError as e:
                raise DecodeError(
                    f"zstd decompression failed ({len(data)} bytes): {e}"
                ) from e


_DEFAULT_ENGINE = ZstdEngine()


def default_engine() -> ZstdEngine:
    """Return the process-wide shared engine."""
    return _DEFAULT_ENGINE


def decode_binary(frame: bytes, engine: Optional[ZstdEngine] = None) -> ObjectTree:
    """
    Decode a binary frame: zstd decompression, then MessagePack.

    Args:
        frame: Raw binary WebSocket frame
        engine: Decompression engine (defaults to the shared one)

    Returns:
        Decoded object tree (normally a dict)

    Raises:
        DecodeError: If either stage fails
    """
    engine = engine or _DEFAULT_ENGINE

    decompressed = engine.decompress(frame)

    try:
        return msgpack.unpackb(decompressed, raw=False, strict_map_key=False)
    except (msgpack.exceptions.UnpackException, ValueError, TypeError) as e:
        raise DecodeError(
            f"MessagePack decode failed ({len(decompressed)} bytes): {e}"
        ) from e


def decode_text(text: str) -> Union[Dict[str, Any], bytes]:
    """
    Decode a text frame.

    JSON objects are returned as dicts. Anything that is not a JSON
    object is tried as a base64-encoded image.

    Args:
        text: Raw text WebSocket frame

    Returns:
        dict for JSON envelopes, bytes for base64 images

    Raises:
        DecodeError: If the text is neither a JSON object nor base64
    """
    try:
        parsed = json.loads(text)
    except (ValueError, RecursionError):
        # Not JSON, or nested deeper than the parser allows
        parsed = None

    if isinstance(parsed, dict):
        return parsed

    return decode_base64_image(text)


def decode_base64_image(text: str) -> bytes:
    """
    Decode a bare base64 image, optionally prefixed with a data URL header.

    The characters are checked against the base64 alphabet before
    decoding. Whitespace (line wrapping) is ignored and missing padding
    is tolerated.

    Raises:
        DecodeError: If the text is not valid base64
    """
    body = _DATA_URL_PREFIX.sub("", text.strip(), count=1)
    body = "".join(body.split())

    if not _BASE64_ALPHABET.match(body):
        raise DecodeError(
            f"Text frame is neither JSON nor base64 ({len(text)} chars)"
        )

    if "=" not in body:
        body += "=" * (-len(body) % 4)

    try:
        data = base64.b64decode(body, validate=True)
    except binascii.Error as e:
        raise DecodeError(f"Base64 decode failed: {e}") from e

    if not data:
        raise DecodeError("Base64 text decoded to zero bytes")

    return data
