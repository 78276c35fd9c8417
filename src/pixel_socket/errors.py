"""
Error Types
===========

Exception hierarchy for the PixelSocket client.

Every error raised while handling a connection derives from
PixelSocketError, so callers can register a single on_error handler
and branch on the concrete type when they care.

Kinds:
    - TransportError: open, send, or close failures on the WebSocket
    - DecodeError: decompression or deserialization failure
    - ValidationError: well-formed but semantically invalid message
    - PersistenceError: directory creation or file write failure
"""


class PixelSocketError(Exception):
    """Base class for all PixelSocket errors."""
    pass


class TransportError(PixelSocketError):
    """Raised when the WebSocket transport fails to open, send, or close."""
    pass


class DecodeError(PixelSocketError):
    """Raised when a frame cannot be decompressed or deserialized."""
    pass


class ValidationError(PixelSocketError):
    """Raised when a decoded message does not match a known shape."""
    pass


class PersistenceError(PixelSocketError):
    """Raised when an image cannot be written to the save directory."""
    pass
