"""
Connection Statistics
=====================

Counters describing the liveness and throughput of a connection.

Design Rules:
    - Mutated only by PixelSocket (connection events) and by the point
      where a notification is accounted (record_image)
    - Callers only ever receive copies, never the live instance
    - An image is counted once per successfully extracted payload,
      never per raw frame
"""

from datetime import datetime
from typing import Optional


class ConnectionStats:
    """Mutable connection counters with snapshot support."""
    
    __slots__ = (
        "images_received",
        "bytes_received",
        "connected_at",
        "is_connected",
        "reconnect_attempts",
    )
    
    def __init__(self) -> None:
        self.images_received: int = 0
        self.bytes_received: int = 0
        self.connected_at: Optional[datetime] = None
        self.is_connected: bool = False
        self.reconnect_attempts: int = 0
    
    def record_image(self, nbytes: int) -> None:
        """Account for one successfully extracted image."""
        self.images_received += 1
        self.bytes_received += nbytes
    
    def mark_open(self) -> None:
        """Record a successful open: connected, timestamped, attempts reset."""
        self.is_connected = True
        self.connected_at = datetime.now()
        self.reconnect_attempts = 0
    
    def copy(self) -> "ConnectionStats":
        """Return an independent snapshot."""
        snapshot = ConnectionStats()
        for name in self.__slots__:
            setattr(snapshot, name, getattr(self, name))
        return snapshot
    
    def to_dict(self) -> dict:
        """Export stats as dict."""
        return {
            "images_received": self.images_received,
            "bytes_received": self.bytes_received,
            "connected_at": (
                self.connected_at.isoformat() if self.connected_at else None
            ),
            "is_connected": self.is_connected,
            "reconnect_attempts": self.reconnect_attempts,
        }
    
    def __repr__(self) -> str:
        return (
            f"ConnectionStats(images_received={self.images_received}, "
            f"bytes_received={self.bytes_received}, "
            f"is_connected={self.is_connected}, "
            f"reconnect_attempts={self.reconnect_attempts})"
        )
