# phonectl/transport/websocket.py
from __future__ import annotations

from typing import Optional

from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI, WebSocketException
from websockets.sync.client import ClientConnection, connect

from .base import ReadyState, Transport
from .errors import TransportClosed, TransportIOError, TransportOpenError


class WebSocketTransport(Transport):
    """
    WebSocket transport implemented via the `websockets` sync client.

    One instance represents one connection attempt; it is not reopened after
    close. recv(timeout) returns None on timeout so a worker loop can poll its
    stop flag between messages.
    """

    def __init__(self, url: str, open_timeout: float = 5.0, close_timeout: float = 1.0):
        self.url = url
        self.open_timeout = open_timeout
        self.close_timeout = close_timeout
        self.conn: Optional[ClientConnection] = None
        self._state = ReadyState.CLOSED

    @property
    def ready_state(self) -> ReadyState:
        return self._state

    def open(self) -> None:
        self._state = ReadyState.CONNECTING
        try:
            self.conn = connect(
                self.url,
                open_timeout=self.open_timeout,
                close_timeout=self.close_timeout,
            )
        except (OSError, TimeoutError, InvalidURI, InvalidHandshake, WebSocketException) as e:
            self.conn = None
            self._state = ReadyState.CLOSED
            raise TransportOpenError(f"{self.url}: {e}") from None
        self._state = ReadyState.OPEN

    def close(self) -> None:
        if self.conn is not None:
            self._state = ReadyState.CLOSING
            try:
                self.conn.close()
            finally:
                self.conn = None
        self._state = ReadyState.CLOSED

    def send(self, text: str) -> None:
        if self.conn is None:
            raise TransportIOError("send while transport not open")

        try:
            self.conn.send(text)
        except ConnectionClosed as e:
            self._drop()
            raise TransportClosed(f"WebSocket closed during send: {e}") from None
        except (OSError, WebSocketException) as e:
            self._drop()
            raise TransportIOError(f"WebSocket send failed: {e}") from None

    def recv(self, timeout: Optional[float] = None) -> Optional[str]:
        if self.conn is None:
            raise TransportIOError("recv while transport not open")

        try:
            msg = self.conn.recv(timeout=timeout)
        except TimeoutError:
            return None
        except ConnectionClosed as e:
            self._drop()
            raise TransportClosed(f"WebSocket closed: {e}") from None
        except (OSError, WebSocketException) as e:
            self._drop()
            raise TransportIOError(f"WebSocket recv failed: {e}") from None

        if isinstance(msg, (bytes, bytearray)):
            return bytes(msg).decode("utf-8", errors="replace")
        return msg

    def _drop(self) -> None:
        conn, self.conn = self.conn, None
        self._state = ReadyState.CLOSED
        if conn is not None:
            try:
                conn.close()
            except (OSError, WebSocketException):
                # already failed; the original error is what gets raised
                pass
