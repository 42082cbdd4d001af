"""Session orchestration: discover, connect, sync, stream, disconnect."""

import dataclasses
import json
import logging
import re
import threading
from typing import Optional

from . import commands
from .buffers import FrameContinuityBuffer, RedundancyBuffer
from .codec import PacketCodec
from .common import (
    BOARD_GANGLION,
    BOARD_NONE,
    DEFAULT_SEARCH_TIMEOUT,
    OUTPUT_MODE_RAW,
    PARSE_SUCCESS,
    debug_bytes,
    get_local_ip,
    log,
)
from .control import ControlChannel
from .daisy import DaisyPairing
from .discovery import ShieldDiscovery
from .errors import (
    AlreadyStreamingError,
    DiscoveryTimeoutError,
    NoBoardError,
    NotConnectedError,
    NotStreamingError,
    ShieldError,
)
from .models import (
    ConnectOptions,
    Impedance,
    SessionConfig,
    SessionPhase,
    SessionState,
    ShieldDescriptor,
    Transport,
)
from .notify import (
    EVENT_CLOSE,
    EVENT_DROPPED_PACKET,
    EVENT_IMPEDANCE,
    EVENT_MESSAGE,
    EVENT_RAW_PACKET,
    EVENT_SAMPLE,
    EVENT_SHIELD_FOUND,
    Notifier,
)
from .transport import TransportListener

_NUMBER = re.compile(r"\d+")


class ShieldSession:
    """
    High-level interface to one WiFi shield.

    Sequence: find shield -> POST /tcp|/udp handshake -> GET /board, /all ->
    sample rate -> optional stream start. Decoded samples are published on
    ``notifier`` from the transport threads.
    """

    def __init__(self, config: Optional[SessionConfig] = None, *,
                 notifier: Optional[Notifier] = None,
                 discovery: Optional[ShieldDiscovery] = None,
                 control: Optional[ControlChannel] = None,
                 transport: Optional[TransportListener] = None,
                 codec: Optional[PacketCodec] = None):
        self.config    = config or SessionConfig()
        self.notifier  = notifier or Notifier()
        self.discovery = discovery or ShieldDiscovery(self.notifier)
        self.control   = control or ControlChannel(timeout=self.config.control_timeout)
        self.codec     = codec or PacketCodec(send_counts=self.config.send_counts)
        self.transport = transport or TransportListener(self._process_bytes)

        self._state = SessionState(latency=self.config.latency,
                                   sample_rate=self.config.sample_rate)
        self._state_lock  = threading.Lock()
        # Guards the frame, redundancy and daisy buffers shared by both transports.
        self._ingest_lock = threading.Lock()
        self._frames     = FrameContinuityBuffer(self.codec.extract)
        self._redundancy = RedundancyBuffer()
        self._daisy      = DaisyPairing(self.codec.merge_daisy, on_drop=self._on_daisy_drop)
        # Events collected under _ingest_lock, published after it is released.
        self._outbox: list = []

        if self.config.verbose:
            log.setLevel(logging.DEBUG)

    # ── state accessors ─────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        with self._state_lock:
            snapshot = dataclasses.replace(self._state, gains=list(self._state.gains))
        snapshot.searching = self.discovery.is_searching()
        return snapshot

    @property
    def shields(self) -> list[ShieldDescriptor]:
        return self.discovery.shields

    def is_connected(self) -> bool:
        return self._state.connected

    def is_streaming(self) -> bool:
        return self._state.streaming

    def is_searching(self) -> bool:
        return self.discovery.is_searching()

    def _set_phase(self, phase: SessionPhase):
        with self._state_lock:
            previous = self._state.phase
            self._state.phase = phase
        if previous != phase:
            log.debug(f"Session {previous.value} -> {phase.value}")

    # ── discovery ───────────────────────────────────────────────────────────

    def search_start(self):
        self.discovery.start(self.config.attempts, self.config.retry_interval)

    def search_stop(self):
        self.discovery.stop()

    def search_to_stream(self, shield_name: Optional[str] = None,
                         timeout: float = DEFAULT_SEARCH_TIMEOUT,
                         options: Optional[ConnectOptions] = None, **kwargs):
        """
        Search for a shield (optionally by name) and connect to the first
        match. Fails with DiscoveryTimeoutError if none shows up in time.
        """
        options = options or ConnectOptions(**kwargs)
        if shield_name is not None:
            options.shield_name = shield_name

        found = threading.Event()
        matches: list[ShieldDescriptor] = []

        def _on_shield(shield: ShieldDescriptor):
            if options.shield_name and shield.local_name != options.shield_name:
                return
            if not found.is_set():
                matches.append(shield)
                found.set()

        self.notifier.on(EVENT_SHIELD_FOUND, _on_shield)
        try:
            for shield in self.discovery.shields:
                _on_shield(shield)
            if not found.is_set() and not self.discovery.is_searching():
                self.search_start()
            if not found.wait(timeout):
                self.discovery.stop()
                raise DiscoveryTimeoutError(f"Failed to find a WiFi shield within {timeout}s")
        finally:
            self.notifier.off(EVENT_SHIELD_FOUND, _on_shield)

        self.discovery.stop()
        shield = matches[0]
        log.info(f"Connecting to {shield.local_name} at {shield.ip_address}")
        options.ip_address = shield.ip_address
        self.connect(options)

    # ── connection ──────────────────────────────────────────────────────────

    def _resolve_target(self, options: ConnectOptions) -> str:
        if options.ip_address:
            return options.ip_address
        if options.shield_name:
            shield = self.discovery.find(options.shield_name)
            if shield is None:
                raise ShieldError(f"No discovered shield named {options.shield_name}")
            return shield.ip_address
        raise ValueError("connect needs an ip address or a shield name")

    def connect(self, options: Optional[ConnectOptions] = None, **kwargs):
        """
        Point the shield's stream at our listener and sync board info.
        Any failure leaves the session disconnected with no cached identity.
        """
        options = options or ConnectOptions(**kwargs)
        self._set_phase(SessionPhase.CONNECTING)
        try:
            ip_address = self._resolve_target(options)
            with self._state_lock:
                self._state.ip_address = ip_address
                if options.latency is not None:
                    self._state.latency = options.latency
            self.control.ip_address = ip_address
            log.info(f"Attempting to connect to {ip_address}")

            if not self.transport.running:
                self.transport.start()
            self._reset_buffers()
            self._handshake(ip_address)
            log.info(f"Connected to {ip_address}")

            self._set_phase(SessionPhase.SYNCING)
            self.sync_info(examine_mode=options.examine_mode)
            log.info(f"Synced info with {self._state.shield_name}")

            sample_rate = options.sample_rate or self.config.sample_rate
            if sample_rate:
                log.debug(f"Attempting to set sample rate to {sample_rate}")
                self._set_sample_rate(sample_rate)
            elif not options.examine_mode:
                self._sync_sample_rate()
            log.info(f"Sample rate is {self._state.sample_rate}")

            self._set_phase(SessionPhase.CONNECTED)
            if options.stream_start:
                self.stream_start()
        except Exception:
            with self._state_lock:
                self._state.phase = SessionPhase.DISCONNECTED
                self._state.ip_address = None
                self._state.shield_name = None
            self.control.ip_address = None
            raise

    def _handshake(self, ip_address: str):
        udp = self.config.protocol == Transport.UDP
        payload = {
            "ip": get_local_ip(ip_address),
            "output": OUTPUT_MODE_RAW,
            "port": self.transport.udp_port if udp else self.transport.tcp_port,
            "delimiter": False,
            "latency": self._state.latency,
        }
        if udp:
            payload["redundancy"] = self.config.burst
        path = "/udp" if udp else "/tcp"
        log.debug(f"Stream handshake {path}: {payload}")
        self.control.post(path, payload)

    def sync_info(self, examine_mode: bool = False) -> dict:
        """Read GET /board and GET /all into the session state."""
        board = _parse_json(self.control.get("/board"), "/board")
        board_connected = bool(board.get("board_connected", False))
        if not board_connected and not examine_mode:
            raise NoBoardError("No board connected to the shield, please check power of the board")

        board_type = board.get("board_type") or BOARD_NONE
        gains = [int(g) for g in board.get("gains") or []]
        with self._state_lock:
            self._state.board_connected = board_connected
            self._state.board_type = board_type
            self._state.number_of_channels = int(board.get("num_channels", 0))
            self._state.gains = gains
        self.codec.configure(board_type, gains)
        log.debug(f"Board: type={board_type} channels={self._state.number_of_channels} gains={gains}")

        info = _parse_json(self.control.get("/all"), "/all")
        with self._state_lock:
            self._state.shield_name = info.get("name")
            self._state.mac_address = info.get("mac")
            self._state.firmware_version = info.get("version")
            if info.get("latency") is not None:
                self._state.latency = int(info["latency"])
        return board

    def disconnect(self):
        """Mark the session disconnected and stop listeners and timers."""
        with self._state_lock:
            was_active = self._state.phase != SessionPhase.DISCONNECTED
            self._state.phase = SessionPhase.DISCONNECTED
        self.discovery.stop()
        self.transport.stop()
        self._reset_buffers()
        if was_active:
            log.debug("Session disconnected")
            self.notifier.emit(EVENT_CLOSE)

    def destroy(self):
        self.disconnect()
        self.discovery.clear()
        self.control.close()

    # ── streaming ───────────────────────────────────────────────────────────

    def stream_start(self):
        with self._state_lock:
            if self._state.streaming:
                raise AlreadyStreamingError("Already streaming")
            if not self._state.connected:
                raise NotConnectedError("Must be connected to the shield to start streaming")
        self.write(commands.STREAM_START)
        self._set_phase(SessionPhase.STREAMING)
        log.debug("Sent stream start to board")

    def stream_stop(self):
        with self._state_lock:
            if not self._state.streaming:
                raise NotStreamingError("No stream to stop")
        self.write(commands.STREAM_STOP)
        self._set_phase(SessionPhase.CONNECTED)
        log.debug("Sent stream stop to board")

    # ── board commands ──────────────────────────────────────────────────────

    def write(self, command: str) -> str:
        """Send a board command through POST /command and return the reply."""
        if self.config.debug:
            debug_bytes(">>>", command.encode())
        response = self.control.post("/command", {"command": command})
        self.notifier.emit(EVENT_MESSAGE, response)
        return response

    def _set_sample_rate(self, sample_rate: int) -> int:
        cmd = commands.sample_rate_set(self._state.board_type, sample_rate)
        return self._apply_sample_rate_reply(self.write(cmd))

    def _sync_sample_rate(self) -> int:
        return self._apply_sample_rate_reply(self.write(commands.sample_rate_get()))

    def set_sample_rate(self, sample_rate: int) -> int:
        self._require_connected()
        return self._set_sample_rate(sample_rate)

    def sync_sample_rate(self) -> int:
        self._require_connected()
        return self._sync_sample_rate()

    def _apply_sample_rate_reply(self, reply: str) -> int:
        if PARSE_SUCCESS not in reply:
            raise ShieldError(f"Sample rate not accepted: {reply.strip()}")
        match = _NUMBER.search(reply)
        if match is None:
            raise ShieldError(f"No sample rate in reply: {reply.strip()}")
        sample_rate = int(match.group())
        with self._state_lock:
            self._state.sample_rate = sample_rate
        return sample_rate

    def channel_off(self, channel_number: int) -> str:
        return self.write(commands.channel_off(channel_number))

    def channel_on(self, channel_number: int) -> str:
        return self.write(commands.channel_on(channel_number))

    def channel_set(self, channel_number: int, power_down: bool = False, gain: int = 24,
                    input_type: str = "normal", bias: bool = True, srb2: bool = True,
                    srb1: bool = False) -> str:
        cmd = commands.channel_set(channel_number, power_down, gain, input_type, bias, srb2, srb1)
        response = self.write(cmd)
        self.codec.set_gain(channel_number, gain)
        with self._state_lock:
            gains = self._state.gains
            if len(gains) < channel_number:
                gains.extend([0] * (channel_number - len(gains)))
            gains[channel_number - 1] = gain
        return response

    def impedance_set(self, channel_number: int, p_input: bool = False, n_input: bool = False) -> str:
        return self.write(commands.impedance_set(channel_number, p_input, n_input))

    def impedance_start(self) -> str:
        if self._state.board_type != BOARD_GANGLION:
            raise ValueError("Expected board type to be ganglion")
        return self.write(commands.GANGLION_IMPEDANCE_START)

    def impedance_stop(self) -> str:
        if self._state.board_type != BOARD_GANGLION:
            raise ValueError("Expected board type to be ganglion")
        return self.write(commands.GANGLION_IMPEDANCE_STOP)

    def sd_start(self, duration: str) -> str:
        self._require_connected()
        return self.write(commands.sd_start(duration))

    def sd_stop(self) -> str:
        self._require_connected()
        return self.write(commands.SD_LOG_STOP)

    def soft_reset(self) -> str:
        return self.write(commands.SOFT_RESET)

    def sync_register_settings(self) -> str:
        """Return the board's register dump text."""
        return self.write(commands.QUERY_REGISTERS)

    def erase_wifi_credentials(self):
        """Make the shield forget its network; it drops off the LAN afterwards."""
        response = self.control.delete("/wifi")
        log.info(f"Shield credentials erased: {response.strip()}")
        self.disconnect()

    def _require_connected(self):
        if not self._state.connected:
            raise NotConnectedError("Must be connected to the shield")

    # ── ingestion ───────────────────────────────────────────────────────────

    def _reset_buffers(self):
        with self._ingest_lock:
            self._frames.reset()
            self._redundancy.reset()
            self._daisy.reset()

    def _on_daisy_drop(self, sample):
        self._outbox.append((EVENT_DROPPED_PACKET, sample))

    def _process_bytes(self, chunk: bytes):
        """Sink for both transports: bytes -> raw packets -> samples."""
        if self.config.debug:
            debug_bytes("<<<", chunk)
        with self._ingest_lock:
            self._outbox = events = []
            packets = self._frames.push(chunk)
            if packets:
                released = self._redundancy.ingest(packets)
                events.extend((EVENT_RAW_PACKET, raw) for raw in released)

                board_type = self._state.board_type
                for item in self.codec.decode(released):
                    if isinstance(item, Impedance):
                        events.append((EVENT_IMPEDANCE, item))
                        continue
                    sample = self._daisy.add(item, board_type)
                    if sample is not None:
                        events.append((EVENT_SAMPLE, sample))

        # Listeners may call back into the session (disconnect, connect).
        for event, payload in events:
            self.notifier.emit(event, payload)


def _parse_json(body: str, path: str) -> dict:
    try:
        parsed = json.loads(body)
    except ValueError as e:
        raise ShieldError(f"Malformed reply from {path}: {e}") from e
    if not isinstance(parsed, dict):
        raise ShieldError(f"Malformed reply from {path}: expected an object")
    return parsed
