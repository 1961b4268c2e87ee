from .base import ReadyState, Transport
from .errors import TransportClosed, TransportError, TransportIOError, TransportOpenError
from .websocket import WebSocketTransport

__all__ = [
    "ReadyState", "Transport",
    "TransportError", "TransportOpenError", "TransportIOError", "TransportClosed",
    "WebSocketTransport",
]
