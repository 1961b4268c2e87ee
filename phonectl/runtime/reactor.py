# phonectl/runtime/reactor.py
from __future__ import annotations

import heapq
import itertools
import logging
import queue
import threading
import time
from typing import Any, Callable, List, Optional, Tuple


class TimerHandle:
    """A scheduled callback; cancel() makes it a no-op if it has not run yet."""

    __slots__ = ("when", "callback", "args", "cancelled")

    def __init__(self, when: float, callback: Callable[..., Any], args: Tuple[Any, ...]):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class Reactor:
    """
    Single-threaded callback loop.

    Every connection and codec handler runs here, one at a time and to
    completion. Other threads (transport workers, the CLI input loop) hand
    work over with call_soon()/call_later(), both of which are thread-safe.

    Tests drive the loop by hand with run_pending() and a fake clock.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)

        self._ready: "queue.Queue[Tuple[Callable[..., Any], Tuple[Any, ...]]]" = queue.Queue()
        self._timers: List[Tuple[float, int, TimerHandle]] = []
        self._timer_seq = itertools.count()
        self._timer_lock = threading.Lock()

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def time(self) -> float:
        return self._clock()

    # ---------------- Scheduling ----------------
    def call_soon(self, callback: Callable[..., Any], *args: Any) -> None:
        self._ready.put((callback, args))

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        handle = TimerHandle(self._clock() + max(0.0, float(delay)), callback, args)
        with self._timer_lock:
            heapq.heappush(self._timers, (handle.when, next(self._timer_seq), handle))
        # wake a loop blocked on the ready queue so it recomputes its timeout
        self._ready.put((_noop, ()))
        return handle

    # ---------------- Execution ----------------
    def run_pending(self) -> int:
        """Run due timers, then every queued callback. Returns callbacks run."""
        count = 0

        for handle in self._pop_due_timers():
            if not handle.cancelled:
                self._invoke(handle.callback, handle.args)
                count += 1

        while True:
            try:
                callback, args = self._ready.get_nowait()
            except queue.Empty:
                break
            if callback is _noop:
                continue
            self._invoke(callback, args)
            count += 1

        return count

    def run_once(self, timeout: float = 0.05) -> int:
        wait_s = timeout
        next_due = self._next_timer_due()
        if next_due is not None:
            wait_s = max(0.0, min(timeout, next_due - self._clock()))

        try:
            item = self._ready.get(timeout=wait_s) if wait_s > 0 else self._ready.get_nowait()
        except queue.Empty:
            item = None

        count = 0
        if item is not None:
            callback, args = item
            if callback is not _noop:
                self._invoke(callback, args)
                count = 1
        return count + self.run_pending()

    def run_forever(self) -> None:
        while not self._stop_event.is_set():
            self.run_once()

    # ---------------- Thread ----------------
    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def in_loop_thread(self) -> bool:
        return self._thread is not None and threading.current_thread() is self._thread

    def start_thread(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run_forever, name="phonectl-reactor", daemon=True)
        self._thread.start()
        self._log.info("REACTOR_STARTED")

    def stop(self, timeout: Optional[float] = 2.0) -> None:
        self._stop_event.set()
        self._ready.put((_noop, ()))
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            self._thread = None
            self._log.info("REACTOR_STOPPED")

    # ---------------- Internals ----------------
    def _invoke(self, callback: Callable[..., Any], args: Tuple[Any, ...]) -> None:
        try:
            callback(*args)
        except Exception:
            self._log.exception("REACTOR_CALLBACK_ERROR cb=%s", getattr(callback, "__qualname__", callback))

    def _pop_due_timers(self) -> List[TimerHandle]:
        now = self._clock()
        due: List[TimerHandle] = []
        with self._timer_lock:
            while self._timers and self._timers[0][0] <= now:
                due.append(heapq.heappop(self._timers)[2])
        return due

    def _next_timer_due(self) -> Optional[float]:
        with self._timer_lock:
            while self._timers and self._timers[0][2].cancelled:
                heapq.heappop(self._timers)
            return self._timers[0][0] if self._timers else None


def _noop() -> None:
    return None
