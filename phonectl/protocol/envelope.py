# phonectl/protocol/envelope.py
from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from types import MappingProxyType
from typing import Any, Mapping, Optional

from .errors import EnvelopeDecodeError
from .events import RESERVED_FIELDS


def format_timestamp(ts_ms: int, tz: Optional[tzinfo] = None) -> str:
    """Render ms-epoch as 12-hour clock time with milliseconds, e.g. '3:04:05.123 PM'."""
    dt = datetime.fromtimestamp(ts_ms / 1000.0, tz=tz)
    hour12 = dt.hour % 12 or 12
    suffix = "AM" if dt.hour < 12 else "PM"
    return f"{hour12}:{dt.minute:02d}:{dt.second:02d}.{int(ts_ms) % 1000:03d} {suffix}"


def _as_timestamp(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return int(value)


@dataclass(frozen=True)
class Envelope:
    """
    One JSON message exchanged with the device.

    The wire form is a single JSON object: `event`, then the optional
    `timestamp` (ms epoch) and `timestamp_formatted`, then payload fields.
    """
    event: str
    timestamp: Optional[int] = None
    timestamp_formatted: Optional[str] = None
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # freeze payload so the envelope is immutable end to end
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    def as_dict(self) -> dict:
        out: dict = {"event": self.event}
        if self.timestamp is not None:
            out["timestamp"] = self.timestamp
        if self.timestamp_formatted is not None:
            out["timestamp_formatted"] = self.timestamp_formatted
        for k, v in self.payload.items():
            if k not in RESERVED_FIELDS:
                out[k] = v
        return out

    def encode(self) -> str:
        return json.dumps(self.as_dict(), ensure_ascii=False, separators=(",", ":"))

    def get(self, key: str, default: Any = None) -> Any:
        return self.payload.get(key, default)

    @classmethod
    def decode(cls, text: str) -> "Envelope":
        def _reject_constant(name: str) -> Any:
            # NaN, Infinity and -Infinity are not JSON
            raise EnvelopeDecodeError("not json", text)

        try:
            data = json.loads(text, parse_constant=_reject_constant)
        except (TypeError, ValueError):
            raise EnvelopeDecodeError("not json", text) from None

        if not isinstance(data, dict):
            raise EnvelopeDecodeError("not a json object", text)

        event = data.get("event")
        if not isinstance(event, str):
            raise EnvelopeDecodeError("missing 'event'", text)

        formatted = data.get("timestamp_formatted")
        return cls(
            event=event,
            timestamp=_as_timestamp(data.get("timestamp")),
            timestamp_formatted=formatted if isinstance(formatted, str) else None,
            payload={k: v for k, v in data.items() if k not in RESERVED_FIELDS},
        )
