"""
Frame Codec Tests
=================

Tests for zstd + MessagePack decoding, text frame decoding, and the
single-flight engine initialization.
"""

import base64
import threading
from concurrent.futures import ThreadPoolExecutor

import msgpack
import pytest
import zstandard

from pixel_socket.errors import DecodeError
from pixel_socket.stream.codec import (
    ZstdEngine,
    decode_base64_image,
    decode_binary,
    decode_text,
    default_engine,
)


class TestDecodeBinary:
    """Tests for the primary binary pipeline."""

    def test_decodes_notification(self, make_frame, notification_tree):
        """A valid frame decodes back into the original tree."""
        tree = decode_binary(make_frame(notification_tree), ZstdEngine())

        assert tree["type"] == "notification-from-pixel-socket"
        assert tree["payload"]["jobId"] == "abc"
        assert isinstance(tree["payload"]["blobData"], bytes)

    def test_large_integers_are_exact(self, make_frame):
        """64-bit values survive without float rounding."""
        big = 2**63 - 1
        tree = decode_binary(make_frame({"timestamp": big, "n": 2**64 - 1}))

        assert tree["timestamp"] == big
        assert isinstance(tree["timestamp"], int)
        assert tree["n"] == 2**64 - 1

    def test_streamed_frame_without_content_size(self):
        """Frames that do not declare their size still decode."""
        packed = msgpack.packb({"type": "ping"}, use_bin_type=True)
        cobj = zstandard.ZstdCompressor().compressobj()
        frame = cobj.compress(packed) + cobj.flush()

        assert zstandard.frame_content_size(frame) == -1
        assert decode_binary(frame) == {"type": "ping"}

    def test_truncated_frame(self, make_frame, notification_tree):
        """A truncated frame raises DecodeError."""
        frame = make_frame(notification_tree)

        with pytest.raises(DecodeError):
            decode_binary(frame[: len(frame) // 2])

    def test_wrong_magic(self):
        """Bytes that are not a zstd frame raise DecodeError."""
        with pytest.raises(DecodeError):
            decode_binary(b"\x00\x01\x02\x03 definitely not zstd")

    def test_empty_frame(self):
        """An empty frame raises DecodeError."""
        with pytest.raises(DecodeError):
            decode_binary(b"")

    def test_corrupted_payload(self, notification_tree):
        """A flipped byte in the compressed body raises DecodeError."""
        packed = msgpack.packb(notification_tree, use_bin_type=True)
        frame = bytearray(
            zstandard.ZstdCompressor(write_checksum=True).compress(packed)
        )
        frame[len(frame) // 2] ^= 0xFF

        with pytest.raises(DecodeError):
            decode_binary(bytes(frame))

    def test_invalid_msgpack_inside_valid_zstd(self):
        """Valid compression around garbage MessagePack raises DecodeError."""
        frame = zstandard.ZstdCompressor().compress(b"\xc1\xc1\xc1")

        with pytest.raises(DecodeError):
            decode_binary(frame)

    def test_trailing_msgpack_data(self):
        """Two concatenated objects are rejected rather than half-decoded."""
        packed = msgpack.packb({"a": 1}) + msgpack.packb({"b": 2})
        frame = zstandard.ZstdCompressor().compress(packed)

        with pytest.raises(DecodeError):
            decode_binary(frame)

    def test_oversized_declared_content(self, make_frame):
        """Frames declaring more than max_output_size are rejected."""
        engine = ZstdEngine(max_output_size=16)

        with pytest.raises(DecodeError):
            decode_binary(make_frame({"blob": b"x" * 1024}), engine)


class TestZstdEngine:
    """Tests for lazy single-flight initialization."""

    def test_lazy(self):
        """The engine does nothing until first use."""
        engine = ZstdEngine()
        assert not engine.initialized
        assert engine.init_count == 0

        engine.ensure_initialized()
        engine.ensure_initialized()

        assert engine.initialized
        assert engine.init_count == 1

    def test_concurrent_first_use_initializes_once(self, monkeypatch):
        """Racing first callers share one initialization."""
        real_factory = zstandard.ZstdDecompressor
        created = []
        gate = threading.Barrier(8)

        def slow_factory(*args, **kwargs):
            created.append(1)
            threading.Event().wait(0.05)
            return real_factory(*args, **kwargs)

        monkeypatch.setattr(zstandard, "ZstdDecompressor", slow_factory)
        engine = ZstdEngine()

        def first_use():
            gate.wait()
            engine.ensure_initialized()

        with ThreadPoolExecutor(max_workers=8) as pool:
            for future in [pool.submit(first_use) for _ in range(8)]:
                future.result()

        assert len(created) == 1
        assert engine.init_count == 1

    def test_concurrent_decoding(self, make_frame):
        """A shared engine decodes correctly from many threads."""
        engine = ZstdEngine()
        frames = [make_frame({"i": i, "blob": bytes([i]) * 64}) for i in range(32)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda f: decode_binary(f, engine), frames))

        assert [r["i"] for r in results] == list(range(32))
        assert engine.init_count == 1

    def test_default_engine_is_shared(self):
        """default_engine() always returns the same handle."""
        assert default_engine() is default_engine()


class TestDecodeText:
    """Tests for the legacy text frame decoder."""

    def test_json_object(self):
        """JSON objects decode to dicts."""
        assert decode_text('{"type": "pong"}') == {"type": "pong"}

    def test_bare_base64(self, png_bytes):
        """Bare base64 decodes to bytes."""
        assert decode_text(base64.b64encode(png_bytes).decode()) == png_bytes

    def test_data_url_prefix(self, png_bytes):
        """A data URL header is stripped before decoding."""
        text = "data:image/png;base64," + base64.b64encode(png_bytes).decode()
        assert decode_text(text) == png_bytes

    def test_wrapped_and_unpadded(self):
        """Line wrapping and missing padding are tolerated."""
        encoded = base64.b64encode(b"hello world!!").decode().rstrip("=")
        wrapped = encoded[:8] + "\n" + encoded[8:]
        assert decode_base64_image(wrapped) == b"hello world!!"

    def test_neither_json_nor_base64(self):
        """Plain prose raises DecodeError."""
        with pytest.raises(DecodeError):
            decode_text("not json, not base64!!")

    def test_json_array_is_not_an_envelope(self):
        """Non-object JSON falls through to base64 and fails there."""
        with pytest.raises(DecodeError):
            decode_text("[1, 2, 3]")

    def test_empty_text(self):
        """Empty text raises DecodeError."""
        with pytest.raises(DecodeError):
            decode_text("")

    def test_deeply_nested_json(self):
        """JSON nested past the parser's recursion limit raises DecodeError."""
        with pytest.raises(DecodeError):
            decode_text("[" * 200_000)

    def test_non_finite_json_numbers_parse(self):
        """Infinity/NaN literals parse; the extractor rejects them later."""
        tree = decode_text('{"timestamp": Infinity}')

        assert tree["timestamp"] == float("inf")
