# phonectl/protocol/errors.py

class ProtocolError(Exception):
    """Base for protocol-level failures (envelope parse/encode semantics)."""

class EnvelopeDecodeError(ProtocolError):
    def __init__(self, reason: str, text: str):
        super().__init__(f"invalid envelope ({reason})")
        self.reason = reason
        self.text = text
