# phonectl/app/controller.py
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Mapping, Optional

from phonectl.app.config import PhoneConfig
from phonectl.core.errors import DeviceConnectError
from phonectl.protocol.errors import EnvelopeDecodeError
from phonectl.runtime.connection import ConnectionManager, StatusCallback
from phonectl.runtime.event_codec import EventCodec, SnapshotCallback
from phonectl.runtime.reactor import Reactor
from phonectl.runtime.state import ConnectionStatus, PhoneStatus
from phonectl.transport.base import Transport
from phonectl.transport.websocket import WebSocketTransport

TransportFactory = Callable[[PhoneConfig], Transport]


def websocket_transport(config: PhoneConfig) -> Transport:
    return WebSocketTransport(config.url, open_timeout=config.open_timeout_s)


class PhoneController:
    """
    App-level controller for the phone remote.

    Owns the reactor, connection manager and codec. Intents may be called
    from any thread; they are posted onto the reactor and run there.
    With threaded=False the caller drives the reactor (tests, embedding).
    transport_factory builds one transport per attempt from the config.
    """

    def __init__(
        self,
        config: PhoneConfig,
        *,
        transport_factory: TransportFactory = websocket_transport,
        reactor: Optional[Reactor] = None,
        threaded: bool = True,
        on_decode_error: Optional[Callable[[EnvelopeDecodeError], None]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._config = config
        self._log = logger or logging.getLogger(__name__)
        self._transport_factory = transport_factory
        self._threaded = threaded

        self._reactor = reactor or Reactor(logger=self._log)
        self._conn = ConnectionManager(
            self._reactor,
            self._make_transport,
            policy=config.reconnect,
            logger=self._log,
        )
        self._codec = EventCodec(
            self._conn,
            ringtone=config.ringtone,
            log_limit=config.log_limit,
            on_decode_error=on_decode_error,
            logger=self._log,
        )
        self._started = False

    @property
    def config(self) -> PhoneConfig:
        return self._config

    @property
    def reactor(self) -> Reactor:
        return self._reactor

    @property
    def connection(self) -> ConnectionManager:
        return self._conn

    @property
    def codec(self) -> EventCodec:
        return self._codec

    def _make_transport(self) -> Transport:
        # a fresh transport per connection attempt
        return self._transport_factory(self._config)

    # ---------------- lifecycle ----------------
    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._log.info("CONTROLLER_START url=%s", self._config.url)
        if self._threaded:
            self._reactor.start_thread()
        self._reactor.call_soon(self._conn.start)

    def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        if self._threaded:
            self._reactor.stop()
        # reactor is idle now; safe to tear down from this thread
        try:
            self._conn.stop()
        except Exception:
            self._log.exception("CONNECTION_STOP_ERROR")
        self._log.info("CONTROLLER_STOP")

    def __enter__(self) -> "PhoneController":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # ---------------- subscriptions ----------------
    def subscribe_status(self, cb: StatusCallback) -> Callable[[], None]:
        return self._conn.subscribe(cb)

    def subscribe_events(self, cb: SnapshotCallback) -> Callable[[], None]:
        return self._codec.subscribe(cb)

    def wait_connected(self, timeout: float) -> None:
        """Block until the connection is up; raises DeviceConnectError on timeout."""
        ready = threading.Event()

        def _on_status(status: ConnectionStatus) -> None:
            if status is ConnectionStatus.CONNECTED:
                ready.set()

        unsubscribe = self._conn.subscribe(_on_status)
        try:
            if self._conn.status is ConnectionStatus.CONNECTED:
                return
            if not ready.wait(timeout):
                raise DeviceConnectError(
                    f"Device at {self._config.url} not reachable after {timeout:g}s.",
                    hint=self._conn.last_error or "Check the phone is powered and on the same network.",
                    details={"url": self._config.url, "attempts": self._conn.attempts},
                )
        finally:
            unsubscribe()

    # ---------------- intents ----------------
    def toggle_led(self) -> None:
        self._reactor.call_soon(self._codec.toggle_led)

    def toggle_ring(self) -> None:
        self._reactor.call_soon(self._codec.toggle_ring)

    def send_command(self, name: str, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._reactor.call_soon(self._codec.send_command, name, dict(extra or {}))

    def status(self) -> PhoneStatus:
        snap = self._codec.snapshot()
        return PhoneStatus(
            connection=self._conn.status,
            device=snap.device,
            log=snap.log,
            last_error=self._conn.last_error,
            decode_errors=self._codec.decode_errors,
        )
