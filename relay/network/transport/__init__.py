"""Channel transport implementations."""

from .base import BaseTransport, TransportClosed
from .dummy import DummyTransport
from .websocket import WebSocketTransport

__all__ = ["BaseTransport", "TransportClosed", "DummyTransport", "WebSocketTransport"]
