from __future__ import annotations

import json
import logging
from datetime import timezone

from phonectl.runtime.event_codec import EventCodec
from phonectl.runtime.state import ConnectionStatus, Source


class FakeConnection:
    """Stands in for ConnectionManager: send() succeeds only while connected."""

    def __init__(self, connected: bool = True):
        self.connected = connected
        self.sent: list[str] = []
        self.handler = None

    @property
    def status(self) -> ConnectionStatus:
        return ConnectionStatus.CONNECTED if self.connected else ConnectionStatus.DISCONNECTED

    def on_message(self, handler) -> None:
        self.handler = handler

    def send(self, text: str) -> bool:
        if not self.connected:
            return False
        self.sent.append(text)
        return True


class FakeClock:
    def __init__(self, start: int = 10_000):
        self.now = start

    def __call__(self) -> int:
        self.now += 1
        return self.now


def _make_codec(*, connected=True, **kwargs):
    conn = FakeConnection(connected=connected)
    codec = EventCodec(
        conn,
        clock_ms=FakeClock(),
        tz=timezone.utc,
        logger=logging.getLogger("test"),
        **kwargs,
    )
    return codec, conn


def test_registers_itself_as_message_sink():
    codec, conn = _make_codec()
    assert conn.handler == codec.on_inbound_text


def test_inbound_led_state_while_disconnected():
    codec, conn = _make_codec(connected=False)

    conn.handler('{"event":"led_state","state":"on","timestamp":1000}')

    assert codec.device.led_on is True
    assert len(codec.log) == 1
    entry = codec.log[0]
    assert entry.source is Source.SERVER
    assert entry.timestamp == 1000
    assert entry.raw == '{"event":"led_state","state":"on","timestamp":1000}'
    assert entry.timestamp_formatted == "12:00:01.000 AM"


def test_led_follows_most_recent_led_state():
    codec, conn = _make_codec()
    for state in ["on", "off", "off", "on", "bogus", "on", "off"]:
        conn.handler(json.dumps({"event": "led_state", "state": state}))
        assert codec.device.led_on is (state == "on")


def test_toggle_led_sends_but_waits_for_confirmation():
    codec, conn = _make_codec()

    assert codec.toggle_led() is True

    assert len(conn.sent) == 1
    sent = json.loads(conn.sent[0])
    assert sent["event"] == "led_on"
    assert isinstance(sent["timestamp"], int)
    assert sent["timestamp_formatted"].endswith("AM")

    assert codec.device.led_on is False
    assert len(codec.log) == 1
    assert codec.log[0].source is Source.CLIENT
    assert codec.log[0].raw == conn.sent[0]
    assert codec.log[0].timestamp == sent["timestamp"]

    conn.handler('{"event":"led_state","state":"on"}')
    assert codec.device.led_on is True

    codec.toggle_led()
    assert json.loads(conn.sent[-1])["event"] == "led_off"


def test_toggle_led_while_disconnected_is_dropped():
    codec, conn = _make_codec(connected=False)
    seen = []
    codec.subscribe(seen.append)

    assert codec.toggle_led() is False

    assert conn.sent == []
    assert codec.log == ()
    assert seen == []


def test_ring_is_optimistic_and_stop_clears():
    codec, conn = _make_codec(ringtone="bell.wav")

    codec.toggle_ring()
    assert codec.device.ringing is True
    sent = json.loads(conn.sent[-1])
    assert sent["event"] == "ring"
    assert sent["ringtone"] == "bell.wav"

    codec.toggle_ring()
    assert codec.device.ringing is False
    assert json.loads(conn.sent[-1])["event"] == "stop"


def test_ringtone_stopped_clears_ringing():
    codec, conn = _make_codec()
    codec.send_command("ring", {"ringtone": "a.wav"})
    assert codec.device.ringing is True

    conn.handler('{"event":"ringtone_stopped"}')
    assert codec.device.ringing is False


def test_ring_while_disconnected_keeps_state():
    codec, conn = _make_codec(connected=False)
    codec.toggle_ring()
    assert codec.device.ringing is False
    assert conn.sent == []


def test_unknown_inbound_event_is_logged_but_inert():
    codec, conn = _make_codec()
    conn.handler('{"event":"battery","level":80}')

    assert codec.device.led_on is False
    assert codec.device.ringing is False
    assert len(codec.log) == 1
    assert codec.log[0].event == "battery"


def test_malformed_inbound_is_reported_once_and_dropped():
    errors = []
    codec, conn = _make_codec(on_decode_error=errors.append)
    seen = []
    codec.subscribe(seen.append)

    conn.handler("{not json")

    assert codec.log == ()
    assert codec.device.led_on is False
    assert codec.device.ringing is False
    assert codec.decode_errors == 1
    assert len(errors) == 1
    assert errors[0].reason == "not json"
    assert seen == []


def test_decode_error_sink_failure_does_not_propagate():
    def boom(_err):
        raise RuntimeError("sink down")

    codec, conn = _make_codec(on_decode_error=boom)
    conn.handler("nope")
    assert codec.decode_errors == 1


def test_inbound_without_timestamp_uses_receipt_time():
    codec, conn = _make_codec()
    conn.handler('{"event":"hello"}')

    entry = codec.log[0]
    assert entry.timestamp == 10_001
    assert entry.timestamp_formatted == "12:00:10.001 AM"


def test_inbound_out_of_range_timestamp_falls_back_to_receipt_time():
    codec, conn = _make_codec()
    seen = []
    codec.subscribe(seen.append)

    conn.handler('{"event":"led_state","state":"on","timestamp":100000000000000000000}')

    assert codec.device.led_on is True
    assert len(codec.log) == 1
    assert codec.log[0].timestamp == 10_001
    assert codec.log[0].timestamp_formatted == "12:00:10.001 AM"
    assert len(seen) == 1
    assert seen[0].device.led_on is True


def test_inbound_non_finite_timestamp_is_malformed():
    errors = []
    codec, conn = _make_codec(on_decode_error=errors.append)

    conn.handler('{"event":"led_state","state":"on","timestamp":NaN}')
    conn.handler('{"event":"x","timestamp":1e400}')

    assert codec.decode_errors == 1
    assert [e.reason for e in errors] == ["not json"]
    assert codec.device.led_on is False
    assert len(codec.log) == 1
    assert codec.log[0].event == "x"
    assert codec.log[0].timestamp == 10_002


def test_inbound_keeps_device_formatted_timestamp():
    codec, conn = _make_codec()
    conn.handler('{"event":"hello","timestamp":5,"timestamp_formatted":"device time"}')
    assert codec.log[0].timestamp_formatted == "device time"


def test_reserved_extra_fields_are_ignored():
    codec, conn = _make_codec()
    codec.send_command("ring", {"event": "hijack", "timestamp": 1, "timestamp_formatted": "x", "ringtone": "a"})

    sent = json.loads(conn.sent[0])
    assert sent["event"] == "ring"
    assert sent["timestamp"] != 1
    assert sent["timestamp_formatted"] != "x"
    assert sent["ringtone"] == "a"


def test_101_inbound_events_keep_100_most_recent():
    codec, conn = _make_codec()
    for i in range(101):
        conn.handler(json.dumps({"event": "tick", "timestamp": 1000 + i}))

    assert len(codec.log) == 100
    stamps = [e.timestamp for e in codec.log]
    assert stamps[0] == 1100
    assert stamps[-1] == 1001
    assert 1000 not in stamps


def test_log_limit_is_configurable():
    codec, conn = _make_codec(log_limit=3)
    for i in range(5):
        conn.handler(json.dumps({"event": "tick", "timestamp": i}))
    assert [e.timestamp for e in codec.log] == [4, 3, 2]


def test_subscribers_see_one_complete_snapshot_per_change():
    codec, conn = _make_codec()
    seen = []
    codec.subscribe(seen.append)

    conn.handler('{"event":"led_state","state":"on","timestamp":1}')

    assert len(seen) == 1
    assert seen[0].device.led_on is True
    assert len(seen[0].log) == 1


def test_subscriber_error_is_contained_and_unsubscribe_works():
    codec, conn = _make_codec()

    def bad(_snap):
        raise RuntimeError("ui crashed")

    codec.subscribe(bad)
    seen = []
    unsubscribe = codec.subscribe(seen.append)

    conn.handler('{"event":"a"}')
    unsubscribe()
    conn.handler('{"event":"b"}')

    assert len(seen) == 1
    assert len(codec.log) == 2


def test_ids_are_per_codec_and_increasing():
    c1, conn1 = _make_codec()
    c2, conn2 = _make_codec()
    conn1.handler('{"event":"a","timestamp":1}')
    conn1.handler('{"event":"b","timestamp":1}')
    conn2.handler('{"event":"c","timestamp":1}')

    assert [e.id for e in c1.log] == [2, 1]
    assert [e.id for e in c2.log] == [1]
