"""Shared constants and diagnostics helpers for the WiFi shield client."""

import socket
import logging

log = logging.getLogger("shieldclient")

SSDP_ADDRESS    = "239.255.255.250"     # UPnP multicast group
SSDP_PORT       = 1900
SSDP_SEARCH_TARGET = "urn:schemas-upnp-org:device:Basic:1"
SSDP_MX         = 3

SHIELD_HTTP_PORT = 80           # REST control plane on the shield

SHIELD_NAME_PREFIX = "OpenBCI-"

OUTPUT_MODE_RAW  = "raw"
OUTPUT_MODE_JSON = "json"

BOARD_CYTON    = "cyton"
BOARD_DAISY    = "daisy"
BOARD_GANGLION = "ganglion"
BOARD_NONE     = "none"

PARSE_SUCCESS  = "Success"      # marker in firmware replies that accepted a value

DEFAULT_ATTEMPTS        = 10
DEFAULT_RETRY_INTERVAL  = 3.0   # seconds between discovery attempts
DEFAULT_LATENCY         = 10000 # microseconds between shield packet sends
DEFAULT_CONTROL_TIMEOUT = 5.0   # seconds to wait for a control-plane reply
DEFAULT_SEARCH_TIMEOUT  = 10.0  # seconds for search_to_stream

RECV_CHUNK_SIZE = 4096


def get_local_ip(remote_ip: str) -> str:
    """Return the local LAN address the OS would use to reach ``remote_ip``."""
    probe = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # No datagram is sent; connect() only selects a route.
        probe.connect((remote_ip, SHIELD_HTTP_PORT))
        return probe.getsockname()[0]
    except OSError:
        return "0.0.0.0"
    finally:
        probe.close()


def _format_bytes(prefix: str, data: bytes) -> str:
    hex_part = " ".join(f"{b:02x}" for b in data)
    return f"{prefix} ({len(data)} bytes) {hex_part}"


def debug_bytes(prefix: str, data: bytes):
    """Hex-dump a chunk of bytes at DEBUG level."""
    if log.isEnabledFor(logging.DEBUG):
        log.debug(_format_bytes(prefix, data))
