"""
Connection State
================

Discrete lifecycle states for a PixelSocket connection.

Transitions:
    IDLE → CONNECTING:     connect() called
    CONNECTING → OPEN:     WebSocket handshake completed
    CONNECTING → CLOSED:   handshake failed
    OPEN → CLOSING:        disconnect() started the close handshake
    OPEN → CLOSED:         transport closed by the server or the network
    CLOSING → CLOSED:      close handshake finished
    CLOSED → CONNECTING:   scheduled reconnect or manual connect()
"""

from enum import Enum


class ConnectionState(str, Enum):
    """
    Lifecycle state of the client connection.
    
    Owned exclusively by PixelSocket; callers only ever read it.
    """
    
    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"
