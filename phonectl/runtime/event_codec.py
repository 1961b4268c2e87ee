# phonectl/runtime/event_codec.py
from __future__ import annotations

import itertools
import logging
import threading
import time
from datetime import tzinfo
from typing import Any, Callable, List, Mapping, Optional, Tuple

from phonectl.protocol import events
from phonectl.protocol.envelope import Envelope, format_timestamp
from phonectl.protocol.errors import EnvelopeDecodeError
from phonectl.runtime.connection import ConnectionManager
from phonectl.runtime.event_log import DEFAULT_LOG_LIMIT, EventLog
from phonectl.runtime.state import CodecSnapshot, DeviceState, LogEntry, Source

SnapshotCallback = Callable[[CodecSnapshot], None]
DecodeErrorSink = Callable[[EnvelopeDecodeError], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


class EventCodec:
    """
    Translates intents to envelopes and envelopes to device state + log.

    Registers itself as the connection's message sink. Outbound commands are
    logged only when the connection accepted them. LED state follows the
    device's `led_state` notifications only; ringing is updated optimistically
    on `ring`/`stop` and confirmed by `ringtone_stopped`.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        *,
        ringtone: str = events.DEFAULT_RINGTONE,
        log_limit: int = DEFAULT_LOG_LIMIT,
        clock_ms: Callable[[], int] = _now_ms,
        tz: Optional[tzinfo] = None,
        on_decode_error: Optional[DecodeErrorSink] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._conn = connection
        self._ringtone = ringtone
        self._clock_ms = clock_ms
        self._tz = tz
        self._on_decode_error = on_decode_error
        self._log = logger or logging.getLogger(__name__)

        self._events = EventLog(log_limit)
        self._ids = itertools.count(1)
        self._led_on = False
        self._ringing = False
        self._decode_errors = 0

        self._lock = threading.Lock()
        self._cbs: List[SnapshotCallback] = []

        connection.on_message(self.on_inbound_text)

    # ---------------- state ----------------
    @property
    def device(self) -> DeviceState:
        return DeviceState(led_on=self._led_on, ringing=self._ringing)

    @property
    def log(self):
        return self._events.entries

    @property
    def decode_errors(self) -> int:
        return self._decode_errors

    def snapshot(self) -> CodecSnapshot:
        return CodecSnapshot(device=self.device, log=self._events.entries)

    def subscribe(self, cb: SnapshotCallback) -> Callable[[], None]:
        with self._lock:
            self._cbs.append(cb)

        def _unsubscribe() -> None:
            with self._lock:
                if cb in self._cbs:
                    self._cbs.remove(cb)

        return _unsubscribe

    # ---------------- outbound ----------------
    def send_command(self, name: str, extra: Optional[Mapping[str, Any]] = None) -> bool:
        now_ms = self._clock_ms()
        formatted = format_timestamp(now_ms, self._tz)

        payload = {}
        for key, value in (extra or {}).items():
            if key in events.RESERVED_FIELDS:
                self._log.warning("RESERVED_FIELD_IGNORED event=%s field=%s", name, key)
                continue
            payload[key] = value

        text = Envelope(
            event=name,
            timestamp=now_ms,
            timestamp_formatted=formatted,
            payload=payload,
        ).encode()

        if not self._conn.send(text):
            self._log.info("COMMAND_DROPPED event=%s status=%s", name, self._conn.status.value)
            return False

        self._events.append(self._new_entry(text, now_ms, formatted, Source.CLIENT))

        if name == events.RING:
            self._ringing = True
        elif name == events.STOP:
            self._ringing = False

        self._log.info("COMMAND_SENT event=%s", name)
        self._notify()
        return True

    def toggle_led(self) -> bool:
        return self.send_command(events.LED_OFF if self._led_on else events.LED_ON)

    def toggle_ring(self) -> bool:
        if self._ringing:
            return self.send_command(events.STOP)
        return self.send_command(events.RING, {"ringtone": self._ringtone})

    # ---------------- inbound ----------------
    def on_inbound_text(self, text: str) -> None:
        received_ms = self._clock_ms()
        try:
            env = Envelope.decode(text)
        except EnvelopeDecodeError as e:
            self._report_decode_error(e)
            return

        ts_ms, formatted = self._entry_time(env, received_ms)

        if env.event == events.LED_STATE:
            self._led_on = env.get("state") == "on"
        elif env.event == events.RINGTONE_STOPPED:
            self._ringing = False

        self._events.append(self._new_entry(text, ts_ms, formatted, Source.SERVER))
        self._log.debug("EVENT_RECEIVED event=%s", env.event)
        self._notify()

    # ---------------- internals ----------------
    def _entry_time(self, env: Envelope, received_ms: int) -> Tuple[int, str]:
        """Entry timestamp and its display form; out-of-range device times fall back to receipt time."""
        ts_ms = env.timestamp if env.timestamp is not None else received_ms
        if env.timestamp_formatted:
            return ts_ms, env.timestamp_formatted
        try:
            return ts_ms, format_timestamp(ts_ms, self._tz)
        except (OverflowError, OSError, ValueError):
            self._log.warning("INBOUND_TIMESTAMP_OUT_OF_RANGE event=%s timestamp=%s", env.event, ts_ms)
            return received_ms, format_timestamp(received_ms, self._tz)

    def _new_entry(self, raw: str, ts_ms: int, formatted: str, source: Source) -> LogEntry:
        return LogEntry(
            id=next(self._ids),
            raw=raw,
            timestamp=int(ts_ms),
            timestamp_formatted=formatted,
            source=source,
        )

    def _report_decode_error(self, err: EnvelopeDecodeError) -> None:
        self._decode_errors += 1
        self._log.warning("INBOUND_DECODE_FAILED reason=%s text=%.120r", err.reason, err.text)

        sink = self._on_decode_error
        if sink is not None:
            try:
                sink(err)
            except Exception:
                self._log.exception("DECODE_ERROR_SINK_ERROR")

    def _notify(self) -> None:
        snap = self.snapshot()
        with self._lock:
            cbs = list(self._cbs)

        for cb in cbs:
            try:
                cb(snap)
            except Exception:
                self._log.exception("SNAPSHOT_CALLBACK_ERROR")
