# phonectl/runtime/state.py
from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from typing import Optional, Tuple


class ConnectionStatus(str, enum.Enum):
    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"


class Source(str, enum.Enum):
    CLIENT = "Client"   # sent by this program
    SERVER = "Server"   # received from the device


@dataclass(frozen=True)
class LogEntry:
    """
    One transmitted or received envelope, as shown in the event log.

    `raw` is the exact envelope text; `timestamp` is ms epoch.
    """
    id: int
    raw: str
    timestamp: int
    timestamp_formatted: str
    source: Source

    def fields(self) -> dict:
        return json.loads(self.raw)

    @property
    def event(self) -> Optional[str]:
        return self.fields().get("event")


@dataclass(frozen=True)
class DeviceState:
    """
    Last-known device indicators.
    """
    led_on: bool = False
    ringing: bool = False


@dataclass(frozen=True)
class CodecSnapshot:
    device: DeviceState
    log: Tuple[LogEntry, ...]


@dataclass(frozen=True)
class PhoneStatus:
    """
    A snapshot of the full client status, safe to share across threads.
    """
    connection: ConnectionStatus
    device: DeviceState
    log: Tuple[LogEntry, ...]
    last_error: Optional[str] = None
    decode_errors: int = 0
