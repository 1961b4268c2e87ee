from __future__ import annotations

import json
import queue
import time

import pytest

from phonectl.app.config import PhoneConfig
from phonectl.app.controller import PhoneController, websocket_transport
from phonectl.core.errors import DeviceConnectError
from phonectl.runtime.reconnect import ReconnectPolicy
from phonectl.runtime.state import ConnectionStatus, Source
from phonectl.transport.base import ReadyState, Transport
from phonectl.transport.errors import TransportClosed, TransportOpenError
from phonectl.transport.websocket import WebSocketTransport


class LoopbackPhone(Transport):
    """
    Plays the phone: answers led_on/led_off with led_state and stop with
    ringtone_stopped. Instances register themselves on the class.
    """

    instances: list = []
    refuse = False

    def __init__(self, *, url: str, open_timeout: float):
        self.url = url
        self.open_timeout = open_timeout
        self._state = ReadyState.CLOSED
        self.inbox: "queue.Queue[object]" = queue.Queue()
        self.sent: list = []
        type(self).instances.append(self)

    @property
    def ready_state(self) -> ReadyState:
        return self._state

    def open(self) -> None:
        if type(self).refuse:
            raise TransportOpenError("connection refused")
        self._state = ReadyState.OPEN

    def close(self) -> None:
        if self._state is not ReadyState.CLOSED:
            self._state = ReadyState.CLOSED
            self.inbox.put(TransportClosed("closed"))

    def send(self, text: str) -> None:
        self.sent.append(text)
        event = json.loads(text)["event"]
        if event in ("led_on", "led_off"):
            state = "on" if event == "led_on" else "off"
            self.inbox.put(json.dumps({"event": "led_state", "state": state, "timestamp": 2_000_000_000_000}))
        elif event == "stop":
            self.inbox.put(json.dumps({"event": "ringtone_stopped", "timestamp": 2_000_000_000_001}))

    def recv(self, timeout=None):
        try:
            item = self.inbox.get(timeout=timeout)
        except queue.Empty:
            return None
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def phone_cls():
    LoopbackPhone.instances = []
    LoopbackPhone.refuse = False
    yield LoopbackPhone
    LoopbackPhone.instances = []


def _controller(**cfg):
    config = PhoneConfig(host="127.0.0.1", port=8765, **cfg)
    return PhoneController(
        config,
        transport_factory=lambda c: LoopbackPhone(url=c.url, open_timeout=c.open_timeout_s),
    )


def _wait_for(pred, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if pred():
            return True
        time.sleep(0.01)
    return pred()


def test_default_transport_is_unopened_websocket():
    config = PhoneConfig(host="10.0.0.3", port=8765, path="/phone", open_timeout_s=2.0)

    t = websocket_transport(config)

    assert isinstance(t, WebSocketTransport)
    assert t.url == "ws://10.0.0.3:8765/phone"
    assert t.open_timeout == 2.0
    assert t.ready_state is ReadyState.CLOSED


def test_transport_created_with_config_url(phone_cls):
    with _controller(path="/phone", open_timeout_s=2.0) as ctl:
        ctl.wait_connected(2.0)
        t = phone_cls.instances[0]
        assert t.url == "ws://127.0.0.1:8765/phone"
        assert t.open_timeout == 2.0


def test_led_roundtrip_updates_state_from_server(phone_cls):
    with _controller() as ctl:
        ctl.wait_connected(2.0)
        assert ctl.status().connection is ConnectionStatus.CONNECTED

        ctl.toggle_led()
        assert _wait_for(lambda: ctl.status().device.led_on)

        st = ctl.status()
        assert [e.source for e in st.log] == [Source.SERVER, Source.CLIENT]
        assert st.log[0].event == "led_state"
        assert st.log[1].event == "led_on"

        ctl.toggle_led()
        assert _wait_for(lambda: not ctl.status().device.led_on)


def test_ring_then_stop(phone_cls):
    with _controller(ringtone="bell.wav") as ctl:
        ctl.wait_connected(2.0)

        ctl.toggle_ring()
        assert _wait_for(lambda: ctl.status().device.ringing)
        sent = json.loads(phone_cls.instances[0].sent[0])
        assert sent["event"] == "ring"
        assert sent["ringtone"] == "bell.wav"

        ctl.toggle_ring()
        assert _wait_for(lambda: any(e.event == "ringtone_stopped" for e in ctl.status().log))
        assert ctl.status().device.ringing is False


def test_send_command_with_extra_fields(phone_cls):
    with _controller() as ctl:
        ctl.wait_connected(2.0)
        ctl.send_command("vibrate", {"pattern": [100, 50], "name": "buzz"})

        assert _wait_for(lambda: len(phone_cls.instances[0].sent) == 1)
        sent = json.loads(phone_cls.instances[0].sent[0])
        assert sent["event"] == "vibrate"
        assert sent["pattern"] == [100, 50]
        assert sent["name"] == "buzz"


def test_subscribers_receive_updates(phone_cls):
    statuses = []
    snapshots = []
    ctl = _controller()
    ctl.subscribe_status(statuses.append)
    ctl.subscribe_events(snapshots.append)

    with ctl:
        ctl.wait_connected(2.0)
        ctl.toggle_led()
        assert _wait_for(lambda: len(snapshots) >= 2)

    assert statuses[:2] == [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]
    assert statuses[-1] is ConnectionStatus.DISCONNECTED


def test_wait_connected_times_out_when_unreachable(phone_cls):
    phone_cls.refuse = True
    with _controller() as ctl:
        with pytest.raises(DeviceConnectError) as ei:
            ctl.wait_connected(0.2)
        assert "connection refused" in ei.value.hint
        assert _wait_for(lambda: ctl.status().connection is ConnectionStatus.DISCONNECTED)


def test_reconnects_after_drop(phone_cls):
    policy = ReconnectPolicy(base_delay=0.05, max_delay=0.05)
    with _controller(reconnect=policy) as ctl:
        ctl.wait_connected(2.0)
        phone_cls.instances[0].close()

        assert _wait_for(lambda: len(phone_cls.instances) >= 2 and ctl.status().connection is ConnectionStatus.CONNECTED)


def test_stop_is_idempotent(phone_cls):
    ctl = _controller()
    ctl.start()
    ctl.wait_connected(2.0)
    ctl.stop()
    ctl.stop()

    assert ctl.connection.status is ConnectionStatus.DISCONNECTED
    assert not ctl.reactor.is_running
