# phonectl/runtime/connection.py
from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

from phonectl.runtime._internal.rx_worker import ConnectionWorker
from phonectl.runtime.reactor import Reactor, TimerHandle
from phonectl.runtime.reconnect import ReconnectPolicy
from phonectl.runtime.state import ConnectionStatus
from phonectl.transport.base import ReadyState, Transport
from phonectl.transport.errors import TransportError

StatusCallback = Callable[[ConnectionStatus], None]
MessageHandler = Callable[[str], None]
TransportFactory = Callable[[], Transport]


class ConnectionManager:
    """
    Keeps one connection to the device alive.

    Status moves Disconnected -> Connecting -> Connected -> Disconnected.
    While not connected, a supervising timer re-arms on every tick and starts
    a new attempt whenever the current transport reports CLOSED. Failures never
    propagate to the caller; they only show up as status and last_error.

    All methods except subscribe()/on_message() must run on the reactor
    thread (or with the reactor stopped).
    """

    def __init__(
        self,
        reactor: Reactor,
        transport_factory: TransportFactory,
        *,
        policy: Optional[ReconnectPolicy] = None,
        logger: Optional[logging.Logger] = None,
        join_timeout_s: float = 1.0,
    ):
        self._reactor = reactor
        self._transport_factory = transport_factory
        self._policy = policy or ReconnectPolicy()
        self._log = logger or logging.getLogger(__name__)
        self._join_timeout_s = join_timeout_s

        self._status = ConnectionStatus.DISCONNECTED
        self._running = False
        self._generation = 0
        self._attempts = 0

        self._transport: Optional[Transport] = None
        self._worker: Optional[ConnectionWorker] = None
        self._timer: Optional[TimerHandle] = None

        self._lock = threading.Lock()
        self._status_cbs: List[StatusCallback] = []
        self._message_handler: Optional[MessageHandler] = None

        self._last_error: Optional[str] = None

    # ---------------- state ----------------
    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def attempts(self) -> int:
        """Attempts started since the last successful open."""
        return self._attempts

    @property
    def policy(self) -> ReconnectPolicy:
        return self._policy

    # ---------------- subscriptions ----------------
    def subscribe(self, cb: StatusCallback) -> Callable[[], None]:
        with self._lock:
            self._status_cbs.append(cb)

        def _unsubscribe() -> None:
            with self._lock:
                if cb in self._status_cbs:
                    self._status_cbs.remove(cb)

        return _unsubscribe

    def on_message(self, handler: MessageHandler) -> None:
        self._message_handler = handler

    # ---------------- control ----------------
    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._attempts = 0
        self._last_error = None
        self._log.info("CONNECTION_START policy=%s", self._policy)

        self._connect()
        self._arm_retry()

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._log.info("CONNECTION_STOP")

        self._cancel_retry()

        # invalidate everything the current worker may still post
        self._generation += 1

        worker, self._worker = self._worker, None
        transport, self._transport = self._transport, None

        if worker is not None:
            worker.stop()
        if transport is not None:
            try:
                transport.close()
            except Exception:
                self._log.exception("Failed to close transport")
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout=self._join_timeout_s)

        self._set_status(ConnectionStatus.DISCONNECTED)

    def send(self, text: str) -> bool:
        transport = self._transport
        if self._status is not ConnectionStatus.CONNECTED or transport is None:
            self._log.debug("SEND_DROPPED status=%s len=%d", self._status.value, len(text))
            return False

        try:
            transport.send(text)
        except TransportError as e:
            self._last_error = str(e)
            self._log.warning("SEND_FAILED err=%s", e)
            return False

        self._log.debug("SENT len=%d", len(text))
        return True

    # ---------------- attempts ----------------
    def _connect(self) -> None:
        self._generation += 1
        gen = self._generation
        self._attempts += 1

        try:
            transport = self._transport_factory()
        except Exception as e:
            self._log.exception("TRANSPORT_CREATE_FAILED attempt=%d", self._attempts)
            self._last_error = str(e)
            self._transport = None
            self._set_status(ConnectionStatus.DISCONNECTED)
            return

        self._transport = transport
        self._set_status(ConnectionStatus.CONNECTING)
        self._log.info("CONNECT_ATTEMPT attempt=%d gen=%d", self._attempts, gen)

        worker = ConnectionWorker(
            transport,
            self._reactor.call_soon,
            generation=gen,
            on_open=self._on_open,
            on_message=self._on_message,
            on_error=self._on_error,
            on_close=self._on_close,
            logger=self._log,
        )
        self._worker = worker
        worker.start()

    def _attempt_in_flight(self) -> bool:
        transport = self._transport
        return transport is not None and transport.ready_state is not ReadyState.CLOSED

    def _arm_retry(self) -> None:
        if not self._running or self._timer is not None:
            return
        if self._status is ConnectionStatus.CONNECTED:
            return
        delay = self._policy.delay_for(self._attempts)
        self._timer = self._reactor.call_later(delay, self._on_retry_tick)

    def _cancel_retry(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_retry_tick(self) -> None:
        self._timer = None
        if not self._running or self._status is ConnectionStatus.CONNECTED:
            return

        if self._attempt_in_flight():
            self._log.debug("RECONNECT_SKIPPED attempt in flight")
        elif self._policy.exhausted(self._attempts):
            self._log.warning("RECONNECT_GAVE_UP attempts=%d", self._attempts)
            return
        else:
            self._log.info("RECONNECTING attempt=%d", self._attempts + 1)
            self._connect()

        self._arm_retry()

    # ---------------- worker events (reactor thread) ----------------
    def _is_current(self, gen: int) -> bool:
        return self._running and gen == self._generation

    def _on_open(self, gen: int) -> None:
        if not self._is_current(gen):
            return
        self._cancel_retry()
        self._attempts = 0
        self._last_error = None
        self._set_status(ConnectionStatus.CONNECTED)
        self._log.info("CONNECTED gen=%d", gen)

    def _on_message(self, gen: int, text: str) -> None:
        if not self._is_current(gen):
            return
        handler = self._message_handler
        if handler is None:
            return
        try:
            handler(text)
        except Exception:
            self._log.exception("MESSAGE_HANDLER_ERROR")

    def _on_error(self, gen: int, exc: Exception) -> None:
        if not self._is_current(gen):
            return
        # the paired close event drives the transition
        self._last_error = str(exc)
        self._log.warning("TRANSPORT_ERROR gen=%d err=%s", gen, exc)

    def _on_close(self, gen: int) -> None:
        if not self._is_current(gen):
            return
        self._worker = None
        self._set_status(ConnectionStatus.DISCONNECTED)
        self._log.info("DISCONNECTED gen=%d", gen)
        self._arm_retry()

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self._status:
            return
        self._status = status

        with self._lock:
            cbs = list(self._status_cbs)

        for cb in cbs:
            try:
                cb(status)
            except Exception:
                self._log.exception("STATUS_CALLBACK_ERROR")
