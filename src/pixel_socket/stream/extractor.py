"""
Payload Extractor
=================

Projects decoded object trees into typed notification records.

Recognized shapes (checked in this order):
    1. {"type": "notification-from-pixel-socket", "payload": {...}}
           → NotificationPayload
    2. {"type": "image-generated", "data": {"base64Data", "mimeType", "timestamp", ...}}
           → LegacyImageMessage
    3. {"image": <base64>, "metadata": {...}}
           → LegacyImageMessage
    4. any other mapping with a string "type"
           → None (control frame, e.g. a pong)

Design Rules:
    - Validation is explicit: a tree either becomes a complete typed
      record or raises ValidationError, never a partial object
    - Absent wire fields stay None, except the file extension, which is
      resolved from the mime type or sniffed from the bytes
"""

import base64
import binascii
import logging
import math
import time
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from pixel_socket.errors import ValidationError
from pixel_socket.models.notification import (
    ImageMetadata,
    LegacyImageMessage,
    NotificationPayload,
)
from pixel_socket.stream.codec import ObjectTree


logger = logging.getLogger(__name__)


NOTIFICATION_TYPE = "notification-from-pixel-socket"
IMAGE_GENERATED_TYPE = "image-generated"

# Mime subtypes whose conventional extension differs from the subtype
_MIME_EXTENSIONS = {
    "jpeg": "jpg",
    "pjpeg": "jpg",
    "svg+xml": "svg",
    "x-icon": "ico",
    "vnd.microsoft.icon": "ico",
}


Extracted = Union[NotificationPayload, LegacyImageMessage]


def sniff_format(data: bytes) -> str:
    """
    Guess the image format from its leading magic bytes.

    Args:
        data: Raw image bytes

    Returns:
        One of "jpg", "png", "webp", "gif", or "bin" when unrecognized
    """
    header = data[:4]

    if header[:3] == b"\xff\xd8\xff":
        return "jpg"
    if header == b"\x89PNG":
        return "png"
    if header == b"RIFF":
        return "webp"
    if header[:3] == b"GIF":
        return "gif"
    return "bin"


def extension_from_mime(mime_type: Optional[str]) -> Optional[str]:
    """Derive a file extension from a well-formed "type/subtype" mime string."""
    if not isinstance(mime_type, str):
        return None

    main, sep, subtype = mime_type.partition("/")
    subtype = subtype.split(";", 1)[0].strip().lower()
    if not sep or not main.strip() or not subtype or "/" in subtype:
        return None

    return _MIME_EXTENSIONS.get(subtype, subtype)


def legacy_format(mime_type: Optional[str]) -> str:
    """Format token of a legacy message: the part after "/", else "png"."""
    if isinstance(mime_type, str):
        parts = mime_type.split("/")
        if len(parts) > 1 and parts[1]:
            return parts[1]
    return "png"


def extract(tree: ObjectTree) -> Optional[Extracted]:
    """
    Turn a decoded object tree into a typed message.

    Args:
        tree: Output of decode_binary or decode_text

    Returns:
        NotificationPayload or LegacyImageMessage, or None for
        recognized control frames that carry no image

    Raises:
        ValidationError: If the tree matches no known shape or a known
            shape has invalid fields
    """
    if not isinstance(tree, dict):
        raise ValidationError(
            f"Expected a mapping at top level, got {type(tree).__name__}"
        )

    message_type = tree.get("type")

    if message_type == NOTIFICATION_TYPE:
        return extract_notification(tree.get("payload"))

    if message_type == IMAGE_GENERATED_TYPE:
        return _extract_image_generated(tree.get("data"))

    if "image" in tree and "metadata" in tree:
        return _extract_image_with_metadata(tree)

    if isinstance(message_type, str):
        logger.debug(f"Ignoring control frame of type {message_type!r}")
        return None

    raise ValidationError(
        f"Unrecognized message shape (keys: {sorted(str(k) for k in tree)})"
    )


def extract_notification(payload: Any) -> NotificationPayload:
    """
    Validate and project a notification payload.

    Raises:
        ValidationError: If required fields are missing or mistyped, or
            the declared length disagrees with the blob
    """
    if not isinstance(payload, dict):
        raise ValidationError(
            f"Notification payload must be a mapping, got {type(payload).__name__}"
        )

    try:
        notification = NotificationPayload.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid notification payload: {e}") from e

    updates: Dict[str, Any] = {}
    blob = notification.blob_data

    if blob is not None and notification.image_length is not None:
        if notification.image_length != len(blob):
            raise ValidationError(
                f"imageLength {notification.image_length} does not match "
                f"blobData length {len(blob)} (job {notification.job_id})"
            )

    if not notification.file_extension:
        extension = extension_from_mime(notification.mime_type)
        if extension is None and blob is not None:
            extension = sniff_format(blob)
        if extension is not None:
            updates["file_extension"] = extension

    if updates:
        notification = notification.model_copy(update=updates)

    return notification


def _extract_image_generated(data: Any) -> LegacyImageMessage:
    """Validate an image-generated envelope field by field."""
    if not isinstance(data, dict):
        raise ValidationError("image-generated message has no data object")

    encoded = data.get("base64Data")
    mime_type = data.get("mimeType")
    timestamp = data.get("timestamp")

    if not isinstance(encoded, str):
        raise ValidationError("image-generated data.base64Data must be a string")
    if not isinstance(mime_type, str):
        raise ValidationError("image-generated data.mimeType must be a string")
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        raise ValidationError("image-generated data.timestamp must be a number")
    if not math.isfinite(timestamp):
        raise ValidationError(
            f"image-generated data.timestamp must be finite, got {timestamp!r}"
        )

    fields = {
        key: value for key, value in data.items()
        if key not in ("base64Data", "mimeType", "timestamp")
    }
    fields.update(
        timestamp=int(timestamp),
        mimeType=mime_type,
        format=legacy_format(mime_type),
    )

    return _build_legacy(_b64decode(encoded), fields)


def _extract_image_with_metadata(tree: Dict[str, Any]) -> LegacyImageMessage:
    """Validate an {image, metadata} envelope."""
    encoded = tree["image"]
    metadata = tree["metadata"]

    if not isinstance(encoded, str):
        raise ValidationError("Legacy message image must be a base64 string")
    if not isinstance(metadata, dict):
        raise ValidationError("Legacy message metadata must be a mapping")

    fields = dict(metadata)
    fields["format"] = legacy_format(metadata.get("mimeType"))
    if fields.get("timestamp") is None:
        fields["timestamp"] = int(time.time() * 1000)

    return _build_legacy(_b64decode(encoded), fields)


def from_raw_image(data: bytes) -> LegacyImageMessage:
    """Wrap bare base64-decoded bytes, which carry no metadata."""
    return LegacyImageMessage(image=data)


def _build_legacy(image: bytes, fields: Dict[str, Any]) -> LegacyImageMessage:
    try:
        return LegacyImageMessage(
            image=image,
            metadata=ImageMetadata.model_validate(fields),
        )
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid legacy image metadata: {e}") from e


def _b64decode(encoded: str) -> bytes:
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Image field is not valid base64: {e}") from e
