"""TCP and UDP listeners that receive the shield's sample stream."""

import socket
import threading
import time
from typing import Callable, Optional

from .common import RECV_CHUNK_SIZE, log

ChunkSink = Callable[[bytes], None]

JOIN_TIMEOUT = 2.0
UDP_ERROR_BACKOFF = 0.1
UDP_MAX_ERRORS = 10


def _join(thread: Optional[threading.Thread]):
    # stop() may run on the receive thread itself when a listener reacts to data.
    if thread is not None and thread is not threading.current_thread():
        thread.join(JOIN_TIMEOUT)


class TCPListener:
    """
    Accept loop on an ephemeral port. Every accepted connection gets a
    reader thread that hands each received chunk to ``sink``. A connection
    error only ends that connection.
    """

    def __init__(self, sink: ChunkSink, host: str = ""):
        self.sink     = sink
        self.host     = host
        self._sock    = None
        self._running = False
        self._thread  = None
        self._conns: list[socket.socket] = []
        self._lock    = threading.Lock()
        self.connection_count = 0

    @property
    def port(self) -> Optional[int]:
        if self._sock is None:
            return None
        return int(self._sock.getsockname()[1])

    def start(self):
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind((self.host, 0))
        self._sock.listen(4)
        self._sock.settimeout(1.0)
        self._running = True
        self._thread = threading.Thread(target=self._accept_loop, daemon=True)
        self._thread.start()
        log.info(f"TCP listener on port {self.port}")

    def stop(self):
        self._running = False
        with self._lock:
            conns, self._conns = self._conns, []
        for conn in conns:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            conn.close()
        if self._sock:
            self._sock.close()
            self._sock = None
        _join(self._thread)
        self._thread = None

    def _accept_loop(self):
        sock = self._sock
        while self._running:
            try:
                conn, addr = sock.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    log.error(f"TCP accept error: {e}")
                break
            self.connection_count += 1
            log.info(f"Shield stream connected from {addr[0]}:{addr[1]}")
            with self._lock:
                self._conns.append(conn)
            threading.Thread(target=self._read_loop, args=(conn, addr), daemon=True).start()

    def _read_loop(self, conn: socket.socket, addr):
        try:
            while self._running:
                chunk = conn.recv(RECV_CHUNK_SIZE)
                if not chunk:
                    log.info(f"Shield stream from {addr[0]} closed")
                    break
                try:
                    self.sink(chunk)
                except Exception as e:
                    log.error(f"TCP chunk from {addr[0]} not processed: {e}", exc_info=True)
        except OSError as e:
            if self._running:
                log.warning(f"TCP stream error from {addr[0]}: {e}")
        finally:
            with self._lock:
                if conn in self._conns:
                    self._conns.remove(conn)
            conn.close()


class UDPListener:
    """
    One bound datagram socket. A datagram byte-identical to the one
    received just before it is dropped; the shield repeats datagrams on
    purpose in burst mode.
    """

    def __init__(self, sink: ChunkSink, host: str = ""):
        self.sink     = sink
        self.host     = host
        self._sock    = None
        self._running = False
        self._thread  = None
        self._last_datagram = None
        self.packet_count    = 0
        self.duplicate_count = 0

    @property
    def port(self) -> Optional[int]:
        if self._sock is None:
            return None
        return int(self._sock.getsockname()[1])

    def start(self):
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, 1024 * 1024)
        self._sock.bind((self.host, 0))
        self._sock.settimeout(1.0)
        self._running = True
        self._thread = threading.Thread(target=self._recv_loop, daemon=True)
        self._thread.start()
        log.info(f"UDP listener on port {self.port}")

    def stop(self):
        self._running = False
        if self._sock:
            self._sock.close()
            self._sock = None
        _join(self._thread)
        self._thread = None

    def _recv_loop(self):
        sock = self._sock
        errors = 0
        while self._running:
            try:
                data, addr = sock.recvfrom(65536)
            except socket.timeout:
                continue
            except OSError as e:
                if not self._running or sock is not self._sock:
                    break
                errors += 1
                if errors >= UDP_MAX_ERRORS:
                    log.error(f"UDP listener giving up after {errors} errors: {e}")
                    break
                log.warning(f"UDP recv error: {e}")
                time.sleep(UDP_ERROR_BACKOFF)
                continue
            errors = 0
            try:
                self._deliver(data)
            except Exception as e:
                log.error(f"UDP datagram from {addr[0]} not processed: {e}", exc_info=True)

    def _deliver(self, data: bytes) -> bool:
        """Forward ``data`` unless it repeats the previous datagram."""
        if data == self._last_datagram:
            self.duplicate_count += 1
            return False
        self._last_datagram = data
        self.packet_count += 1
        self.sink(data)
        return True


class TransportListener:
    """Runs the TCP and UDP listeners side by side into one sink."""

    def __init__(self, sink: ChunkSink, host: str = ""):
        self.tcp = TCPListener(sink, host)
        self.udp = UDPListener(sink, host)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def tcp_port(self) -> Optional[int]:
        return self.tcp.port

    @property
    def udp_port(self) -> Optional[int]:
        return self.udp.port

    def start(self):
        if self._running:
            return
        self.tcp.start()
        try:
            self.udp.start()
        except OSError:
            self.tcp.stop()
            raise
        self._running = True

    def stop(self):
        if not self._running:
            return
        self._running = False
        self.tcp.stop()
        self.udp.stop()
