from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from typing import Any, Optional


class ReadyState(enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class Transport(ABC):
    """
    Abstract message transport (WebSocket, test doubles, etc.).

    Contract:
      - open()/close() manage the underlying connection. open() blocks until the
        connection is established or fails with TransportOpenError.
      - send(text) transmits one complete text message.
      - recv(timeout) returns one complete text message, or None when nothing
        arrived within `timeout` seconds. Raises TransportClosed once the peer
        has gone away.
      - ready_state reflects the lifecycle; a fresh instance is CLOSED.
    """

    @property
    @abstractmethod
    def ready_state(self) -> ReadyState: ...

    @abstractmethod
    def open(self) -> None: ...

    @abstractmethod
    def close(self) -> None: ...

    @abstractmethod
    def send(self, text: str) -> None: ...

    @abstractmethod
    def recv(self, timeout: Optional[float] = None) -> Optional[str]: ...

    def is_open(self) -> bool:
        return self.ready_state is ReadyState.OPEN

    def __enter__(self) -> "Transport":
        self.open()
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        self.close()
