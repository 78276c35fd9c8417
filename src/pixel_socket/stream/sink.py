"""
Image Sink
==========

Writes received images to the configured save directory.

Filename Layout:
    {timestampMillis}_{jobId}.{ext}    primary notifications
    {timestampMillis}.{ext}            legacy / base64 images

Design Rules:
    - No-op when there are no bytes (externally stored) or no directory
    - The directory is (re)created before every write, so deleting it
      while the client runs is harmless
    - Characters outside [A-Za-z0-9._-] in job ids and extensions are
      replaced, so filenames cannot escape the directory
    - Does NOT touch connection state or stats
"""

import logging
import re
import time
from pathlib import Path
from typing import Optional, Union

from pixel_socket.errors import PersistenceError
from pixel_socket.models.notification import ImageMetadata, NotificationPayload
from pixel_socket.stream.extractor import sniff_format


logger = logging.getLogger(__name__)


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def _safe(component: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", component)
    # A bare "." or ".." would still resolve outside the file name
    return cleaned if cleaned.strip(".") else cleaned.replace(".", "_")


def _now_millis() -> int:
    return int(time.time() * 1000)


class ImageSink:
    """
    Persists image bytes under deterministic filenames.

    Attributes:
        save_directory: Target directory, or None to disable persistence

    Example:
        sink = ImageSink("./received_images")
        path = sink.persist_notification(payload)
    """

    def __init__(self, save_directory: Optional[Union[str, Path]] = None) -> None:
        self.save_directory: Optional[Path] = (
            Path(save_directory) if save_directory else None
        )

    @property
    def enabled(self) -> bool:
        """Whether a save directory is configured."""
        return self.save_directory is not None

    def notification_path(self, payload: NotificationPayload) -> Path:
        """Path a notification will be written to."""
        timestamp = payload.timestamp
        if timestamp is None:
            timestamp = _now_millis()
        extension = payload.file_extension or (
            sniff_format(payload.blob_data) if payload.blob_data else "bin"
        )
        filename = f"{timestamp}_{_safe(payload.job_id)}.{_safe(extension)}"
        return self._require_directory() / filename

    def image_path(
        self,
        data: bytes,
        metadata: Optional[ImageMetadata] = None,
    ) -> Path:
        """Path a legacy image will be written to."""
        if metadata is not None:
            timestamp = metadata.timestamp
            if timestamp is None:
                timestamp = _now_millis()
            extension = metadata.format
        else:
            timestamp = _now_millis()
            extension = sniff_format(data)
        filename = f"{timestamp}.{_safe(extension)}"
        return self._require_directory() / filename

    def persist_notification(self, payload: NotificationPayload) -> Optional[Path]:
        """
        Write a notification's image bytes.

        Args:
            payload: Extracted notification

        Returns:
            Path written, or None if there was nothing to write

        Raises:
            PersistenceError: If the directory or file cannot be written
        """
        if payload.blob_data is None or not self.enabled:
            return None

        return self._write(self.notification_path(payload), payload.blob_data)

    def persist_image(
        self,
        data: Optional[bytes],
        metadata: Optional[ImageMetadata] = None,
    ) -> Optional[Path]:
        """
        Write a legacy image.

        Returns:
            Path written, or None if there was nothing to write

        Raises:
            PersistenceError: If the directory or file cannot be written
        """
        if not data or not self.enabled:
            return None

        return self._write(self.image_path(data, metadata), data)

    def _require_directory(self) -> Path:
        if self.save_directory is None:
            raise PersistenceError("No save directory configured")
        return self.save_directory

    def _write(self, path: Path, data: bytes) -> Path:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise PersistenceError(f"Failed to save image to {path}: {e}") from e

        logger.info(f"Saved image to {path} ({len(data)} bytes)")
        return path
