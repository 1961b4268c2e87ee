# phonectl/runtime/_internal/rx_worker.py
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

from phonectl.transport.base import Transport
from phonectl.transport.errors import TransportClosed, TransportError

Post = Callable[..., None]   # Reactor.call_soon


class ConnectionWorker(threading.Thread):
    """
    Thread owning one connection attempt.

    Performs the blocking open/recv calls and posts the outcome onto the
    reactor; it never touches connection state itself. Every posted event
    carries `generation` so the manager can ignore a superseded attempt.
    """

    def __init__(
        self,
        transport: Transport,
        post: Post,
        *,
        generation: int,
        on_open: Callable[[int], Any],
        on_message: Callable[[int, str], Any],
        on_error: Callable[[int, Exception], Any],
        on_close: Callable[[int], Any],
        poll_s: float = 0.1,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(daemon=True, name=f"phonectl-conn-{generation}")
        self.transport = transport
        self.generation = generation
        self.poll_s = poll_s
        self._post = post
        self._on_open = on_open
        self._on_message = on_message
        self._on_error = on_error
        self._on_close = on_close
        self._log = logger or logging.getLogger(__name__)
        self._stop_event = threading.Event()

    def run(self) -> None:
        gen = self.generation
        try:
            self.transport.open()
        except Exception as e:
            if not isinstance(e, TransportError):
                self._log.exception("CONN_WORKER_OPEN_EXCEPTION gen=%d", gen)
            # leave the transport CLOSED so the next retry tick can start over
            self._close_quietly()
            self._post(self._on_error, gen, e)
            self._post(self._on_close, gen)
            return

        if self._stop_event.is_set():
            self._close_quietly()
            return

        self._post(self._on_open, gen)
        try:
            while not self._stop_event.is_set():
                text = self.transport.recv(timeout=self.poll_s)
                if text is not None:
                    self._post(self._on_message, gen, text)
        except TransportClosed:
            pass
        except TransportError as e:
            if not self._stop_event.is_set():
                self._post(self._on_error, gen, e)
        except Exception as e:
            self._log.exception("CONN_WORKER_EXCEPTION gen=%d", gen)
            self._post(self._on_error, gen, e)
        finally:
            self._close_quietly()
            self._post(self._on_close, gen)

    def stop(self) -> None:
        self._stop_event.set()

    def _close_quietly(self) -> None:
        try:
            self.transport.close()
        except Exception:
            self._log.debug("CONN_WORKER_CLOSE_FAILED gen=%d", self.generation, exc_info=True)
