"""
SSDP discovery tests. Replies are fed straight into the response handler.
"""

import pytest

from shieldclient.discovery import (
    ShieldDiscovery,
    _parse_ssdp_headers,
    _shield_name_from_server,
)
from shieldclient.errors import AlreadySearchingError
from shieldclient.notify import EVENT_SHIELD_FOUND, Notifier


def _reply(server, st="urn:schemas-upnp-org:device:Basic:1"):
    lines = [
        "HTTP/1.1 200 OK",
        "CACHE-CONTROL: max-age=1800",
        "LOCATION: http://10.0.1.3:80/description.xml",
        f"SERVER: {server}",
        f"ST: {st}",
        "USN: uuid:38323636-4558-4dda-9188-cda0e6abcdef::upnp:rootdevice",
        "",
        "",
    ]
    return "\r\n".join(lines).encode()


class TestShieldName:
    """Shield name derivation from the SERVER header."""

    def test_shield_name(self):
        assert _shield_name_from_server("Arduino/1.0 UPNP/1.1 OpenBCI-Wifi-ABCD/1.0") == "OpenBCI-ABCD"

    def test_other_device(self):
        assert _shield_name_from_server("Linux/3.14 UPnP/1.0 IpBridge/1.20") is None

    def test_headers_are_case_insensitive(self):
        headers = _parse_ssdp_headers(b"HTTP/1.1 200 OK\r\nServer: a/b/c\r\n\r\n")
        assert headers["SERVER"] == "a/b/c"

    def test_non_reply_is_rejected(self):
        assert _parse_ssdp_headers(b"NOTIFY * HTTP/1.1\r\n\r\n") is None


class TestResponseHandling:
    """Candidate list bookkeeping."""

    def test_new_shield_is_recorded_and_published(self):
        notifier = Notifier()
        found = []
        notifier.on(EVENT_SHIELD_FOUND, found.append)
        discovery = ShieldDiscovery(notifier)

        shield = discovery._handle_response(_reply("Arduino/1.0 UPNP/1.1 OpenBCI-Wifi-ABCD/1.0"), "10.0.1.3")

        assert shield.ip_address == "10.0.1.3"
        assert shield.local_name == "OpenBCI-ABCD"
        assert discovery.shields == [shield]
        assert found == [shield]

    def test_same_ip_different_casing_is_one_shield(self):
        """Two replies from one address yield exactly one descriptor."""
        notifier = Notifier()
        found = []
        notifier.on(EVENT_SHIELD_FOUND, found.append)
        discovery = ShieldDiscovery(notifier)

        discovery._handle_response(_reply("Arduino/1.0 UPNP/1.1 OpenBCI-Wifi-ABCD/1.0"), "10.0.1.3")
        second = discovery._handle_response(_reply("Arduino/1.0 UPNP/1.1 OpenBCI-Wifi-abcd/1.0"), "10.0.1.3")

        assert second is None
        assert len(discovery.shields) == 1
        assert len(found) == 1

    def test_malformed_reply_is_ignored(self):
        discovery = ShieldDiscovery()

        assert discovery._handle_response(b"\x00\x01garbage", "10.0.1.9") is None
        assert discovery._handle_response(_reply("no slashes here"), "10.0.1.9") is None
        assert discovery.shields == []

    def test_other_search_target_is_ignored(self):
        discovery = ShieldDiscovery()

        reply = _reply("Arduino/1.0 UPNP/1.1 OpenBCI-Wifi-ABCD/1.0", st="upnp:rootdevice")

        assert discovery._handle_response(reply, "10.0.1.3") is None

    def test_find_by_name(self):
        discovery = ShieldDiscovery()
        discovery._handle_response(_reply("Arduino/1.0 UPNP/1.1 OpenBCI-Wifi-ABCD/1.0"), "10.0.1.3")

        assert discovery.find("OpenBCI-ABCD").ip_address == "10.0.1.3"
        assert discovery.find("OpenBCI-FFFF") is None

    def test_clear(self):
        discovery = ShieldDiscovery()
        discovery._handle_response(_reply("Arduino/1.0 UPNP/1.1 OpenBCI-Wifi-ABCD/1.0"), "10.0.1.3")
        discovery.clear()

        assert discovery.shields == []


class TestSearchLifecycle:
    """start/stop guards."""

    def test_stop_when_idle_is_noop(self):
        discovery = ShieldDiscovery()
        discovery.stop()
        discovery.stop()

        assert not discovery.is_searching()

    def test_start_twice_is_rejected(self):
        discovery = ShieldDiscovery()
        discovery.start(attempts=1, retry_interval=5.0)
        try:
            assert discovery.is_searching()
            with pytest.raises(AlreadySearchingError):
                discovery.start()
        finally:
            discovery.stop()

        assert not discovery.is_searching()

    def test_round_ends_after_attempts(self):
        discovery = ShieldDiscovery()
        discovery.start(attempts=1, retry_interval=0.05)
        try:
            discovery._on_retry_timer()
            assert not discovery.is_searching()
        finally:
            discovery.stop()

    def test_stop_joins_receive_thread(self):
        """A restart does not leave the previous round's loop running."""
        discovery = ShieldDiscovery()
        discovery.start(attempts=1, retry_interval=5.0)
        first = discovery._thread
        discovery.stop()

        assert not first.is_alive()

        discovery.start(attempts=1, retry_interval=5.0)
        try:
            assert discovery._thread is not first
            assert discovery.is_searching()
        finally:
            discovery.stop()
