"""SSDP multicast discovery of WiFi shields on the local network."""

import socket
import threading
from typing import Optional

from .common import (
    DEFAULT_ATTEMPTS,
    DEFAULT_RETRY_INTERVAL,
    SHIELD_NAME_PREFIX,
    SSDP_ADDRESS,
    SSDP_MX,
    SSDP_PORT,
    SSDP_SEARCH_TARGET,
    log,
)
from .errors import AlreadySearchingError
from .models import ShieldDescriptor
from .notify import EVENT_SHIELD_FOUND, Notifier

JOIN_TIMEOUT = 2.0

M_SEARCH = (
    "M-SEARCH * HTTP/1.1\r\n"
    f"HOST: {SSDP_ADDRESS}:{SSDP_PORT}\r\n"
    'MAN: "ssdp:discover"\r\n'
    f"MX: {SSDP_MX}\r\n"
    f"ST: {SSDP_SEARCH_TARGET}\r\n"
    "\r\n"
).encode("ascii")


class ShieldDiscovery:
    """
    Sends SSDP M-SEARCH queries and collects shields that answer.
    The query is repeated every ``retry_interval`` seconds until ``attempts``
    queries have gone out, then the round ends on its own.
    """

    def __init__(self, notifier: Optional[Notifier] = None):
        self.notifier   = notifier or Notifier()
        self._lock      = threading.Lock()
        self._shields: list[ShieldDescriptor] = []
        self._searching = False
        self._sock      = None
        self._thread    = None
        self._stop_event = threading.Event()
        self._timer     = None
        self._attempt   = 0
        self._attempts  = DEFAULT_ATTEMPTS
        self._retry_interval = DEFAULT_RETRY_INTERVAL

    @property
    def shields(self) -> list[ShieldDescriptor]:
        with self._lock:
            return list(self._shields)

    def is_searching(self) -> bool:
        return self._searching

    def find(self, local_name: str) -> Optional[ShieldDescriptor]:
        with self._lock:
            for shield in self._shields:
                if shield.local_name == local_name:
                    return shield
        return None

    def clear(self):
        with self._lock:
            self._shields.clear()

    def start(self, attempts: int = DEFAULT_ATTEMPTS,
              retry_interval: float = DEFAULT_RETRY_INTERVAL):
        with self._lock:
            if self._searching:
                raise AlreadySearchingError("Discovery already in progress")
            self._searching = True
            self._attempt = 0
            self._attempts = attempts
            self._retry_interval = retry_interval
            self._sock = self._open_socket()
            sock = self._sock
            # Each round gets its own flag so a late loop from a previous round exits.
            self._stop_event = stop_event = threading.Event()
            self._thread = threading.Thread(target=self._recv_loop, args=(sock, stop_event), daemon=True)
            self._thread.start()

        log.info("Searching for WiFi shields...")
        self._send_search()

    def stop(self):
        with self._lock:
            was_searching = self._searching
            self._searching = False
            if self._timer:
                self._timer.cancel()
                self._timer = None
            sock, self._sock = self._sock, None
            thread, self._thread = self._thread, None
            self._stop_event.set()
        if sock:
            sock.close()
        if thread is not None and thread is not threading.current_thread():
            thread.join(JOIN_TIMEOUT)
        if was_searching:
            log.debug("Discovery stopped")

    def _open_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 2)
        sock.bind(("", 0))
        sock.settimeout(0.5)
        return sock

    def _send_search(self):
        with self._lock:
            if not self._searching:
                return
            self._attempt += 1
            attempt = self._attempt
            sock = self._sock
            self._timer = threading.Timer(self._retry_interval, self._on_retry_timer)
            self._timer.daemon = True
            self._timer.start()

        try:
            sock.sendto(M_SEARCH, (SSDP_ADDRESS, SSDP_PORT))
        except OSError as e:
            log.warning(f"SSDP search send failed: {e}")
        if attempt > 1:
            log.debug(f"SSDP: still trying to find a shield - attempt {attempt} of {self._attempts}")

    def _on_retry_timer(self):
        if self._attempt < self._attempts:
            self._send_search()
        else:
            log.info("SSDP: stopping because out of attempts")
            self.stop()

    def _recv_loop(self, sock: socket.socket, stop_event: threading.Event):
        while not stop_event.is_set():
            try:
                data, addr = sock.recvfrom(2048)
            except socket.timeout:
                continue
            except OSError as e:
                if not stop_event.is_set():
                    log.error(f"SSDP recv error: {e}")
                break
            self._handle_response(data, addr[0])

    def _handle_response(self, data: bytes, ip: str) -> Optional[ShieldDescriptor]:
        """Record a shield from one M-SEARCH reply. Returns it only when new."""
        headers = _parse_ssdp_headers(data)
        if headers is None:
            log.debug(f"Ignoring malformed SSDP reply from {ip}")
            return None

        st = headers.get("ST")
        if st and st != SSDP_SEARCH_TARGET:
            return None

        name = _shield_name_from_server(headers.get("SERVER", ""))
        if name is None:
            log.debug(f"Not a WiFi shield: {ip} ({headers.get('SERVER', 'no server header')})")
            return None

        shield = ShieldDescriptor(ip_address=ip, local_name=name)
        with self._lock:
            if any(s.ip_address == ip for s in self._shields):
                return None
            self._shields.append(shield)

        log.info(f"Found shield {shield.local_name} at {shield.ip_address}")
        self.notifier.emit(EVENT_SHIELD_FOUND, shield)
        return shield


def _parse_ssdp_headers(data: bytes) -> Optional[dict]:
    """Parse an SSDP HTTP-over-UDP reply into an upper-cased header dict."""
    text = data.decode("utf-8", errors="replace")
    lines = text.split("\r\n") if "\r\n" in text else text.split("\n")
    if not lines or not lines[0].upper().startswith("HTTP/1.1 200"):
        return None

    headers = {}
    for line in lines[1:]:
        if ":" not in line:
            continue
        key, _, value = line.partition(":")
        headers[key.strip().upper()] = value.strip()
    return headers


def _shield_name_from_server(server: str) -> Optional[str]:
    """
    Derive the shield name from the SERVER header.
    e.g. "Arduino/1.0 UPNP/1.1 OpenBCI-Wifi-ABCD/1.0" -> "OpenBCI-ABCD"
    """
    try:
        suffix = server.split("/")[2].split("-")[2]
    except IndexError:
        return None
    if not suffix:
        return None
    return f"{SHIELD_NAME_PREFIX}{suffix}"
