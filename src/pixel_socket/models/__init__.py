"""
Data Models
===========

Typed records and state shared across the PixelSocket client.

Models:
    Notifications:
        - NotificationPayload: Primary binary notification
        - ImageMetadata: Metadata of a legacy image message
        - LegacyImageMessage: Image from a legacy text frame
    
    Connection:
        - ConnectionState: Lifecycle states (IDLE ... CLOSED)
        - ConnectionStats: Liveness and throughput counters
"""

from pixel_socket.models.notification import (
    ImageMetadata,
    LegacyImageMessage,
    NotificationPayload,
)
from pixel_socket.models.state import ConnectionState
from pixel_socket.models.stats import ConnectionStats

__all__ = [
    # Notifications
    "NotificationPayload",
    "ImageMetadata",
    "LegacyImageMessage",
    # Connection
    "ConnectionState",
    "ConnectionStats",
]
