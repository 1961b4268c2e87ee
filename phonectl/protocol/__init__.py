# protocol/__init__.py

from .envelope import Envelope, format_timestamp
from .errors import EnvelopeDecodeError, ProtocolError

__all__ = [
    "Envelope", "format_timestamp",
    "ProtocolError", "EnvelopeDecodeError",
]
