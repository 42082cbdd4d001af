"""
Shared fixtures and fakes for the shield client tests.
Network peers (shield REST server, SSDP, stream sockets) are replaced by
small in-process fakes; nothing here touches the LAN.
"""

import json

import pytest

from shieldclient.models import SessionConfig, ShieldDescriptor
from shieldclient.notify import EVENT_SHIELD_FOUND, Notifier
from shieldclient.session import ShieldSession


def make_packet(sample_number, channels=(0,) * 8, ptype=0, aux=b"\x00" * 6):
    """Build one 33-byte raw data packet."""
    body = bytearray([0xA0, sample_number & 0xFF])
    for value in channels:
        body += (value & 0xFFFFFF).to_bytes(3, "big")
    body += aux
    body.append(0xC0 | ptype)
    assert len(body) == 33
    return bytes(body)


class FakeControl:
    """Stands in for ControlChannel; records every call."""

    def __init__(self, board=None, info=None, replies=None, sample_rate_reply=None):
        self.ip_address = None
        self.calls = []
        self.board = board if board is not None else {
            "board_connected": True,
            "num_channels": 8,
            "board_type": "cyton",
            "gains": [24] * 8,
        }
        self.info = info if info is not None else {
            "name": "OpenBCI-ABCD",
            "mac": "2C:3A:E8:0E:AB:CD",
            "version": "v2.0.0",
            "latency": 10000,
        }
        self.replies = replies or {}
        self.sample_rate_reply = sample_rate_reply or "Success: Sample rate is 250Hz$$$"
        self.errors = {}    # (method, path) -> exception
        self.closed = False

    def _maybe_fail(self, method, path):
        exc = self.errors.get((method, path))
        if exc is not None:
            raise exc

    def get(self, path):
        self.calls.append(("GET", path, None))
        self._maybe_fail("GET", path)
        if path == "/board":
            return json.dumps(self.board)
        if path == "/all":
            return json.dumps(self.info)
        return ""

    def post(self, path, payload):
        self.calls.append(("POST", path, payload))
        self._maybe_fail("POST", path)
        if path == "/command":
            command = payload["command"]
            if command in self.replies:
                return self.replies[command]
            if command.startswith("~"):
                return self.sample_rate_reply
            return "Success"
        return "OK"

    def delete(self, path):
        self.calls.append(("DELETE", path, None))
        self._maybe_fail("DELETE", path)
        return "Reset credentials"

    def close(self):
        self.closed = True

    def commands(self):
        return [payload["command"] for method, path, payload in self.calls
                if method == "POST" and path == "/command"]


class FakeTransport:
    def __init__(self):
        self.running = False
        self.tcp_port = 5000
        self.udp_port = 5001
        self.start_count = 0

    def start(self):
        self.running = True
        self.start_count += 1

    def stop(self):
        self.running = False


class FakeDiscovery:
    """Discovery double; ``announce`` plays the part of an SSDP reply."""

    def __init__(self, notifier, shields=(), announce_on_start=()):
        self.notifier = notifier
        self._shields = list(shields)
        self.announce_on_start = list(announce_on_start)
        self.searching = False
        self.start_calls = 0
        self.stop_calls = 0

    @property
    def shields(self):
        return list(self._shields)

    def is_searching(self):
        return self.searching

    def find(self, local_name):
        for shield in self._shields:
            if shield.local_name == local_name:
                return shield
        return None

    def clear(self):
        self._shields.clear()

    def start(self, attempts=10, retry_interval=3.0):
        self.start_calls += 1
        self.searching = True
        for shield in self.announce_on_start:
            self.announce(shield)

    def stop(self):
        self.stop_calls += 1
        self.searching = False

    def announce(self, shield):
        if any(s.ip_address == shield.ip_address for s in self._shields):
            return
        self._shields.append(shield)
        self.notifier.emit(EVENT_SHIELD_FOUND, shield)


@pytest.fixture(autouse=True)
def fixed_local_ip(monkeypatch):
    monkeypatch.setattr("shieldclient.session.get_local_ip", lambda remote_ip: "10.0.1.2")


@pytest.fixture
def shield():
    return ShieldDescriptor(ip_address="10.0.1.3", local_name="OpenBCI-ABCD")


@pytest.fixture
def control():
    return FakeControl()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def make_session(control, transport):
    """Factory building a ShieldSession wired to fakes."""

    def _make(config=None, shields=(), announce_on_start=(), codec=None):
        notifier = Notifier()
        discovery = FakeDiscovery(notifier, shields, announce_on_start)
        return ShieldSession(
            config or SessionConfig(),
            notifier=notifier,
            discovery=discovery,
            control=control,
            transport=transport,
            codec=codec,
        )

    return _make
