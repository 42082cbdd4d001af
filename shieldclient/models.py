"""Data structures for shield discovery, session configuration and samples."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np

from .common import (
    BOARD_NONE,
    DEFAULT_ATTEMPTS,
    DEFAULT_CONTROL_TIMEOUT,
    DEFAULT_LATENCY,
    DEFAULT_RETRY_INTERVAL,
)


class Transport(str, Enum):
    TCP = "tcp"
    UDP = "udp"


class SessionPhase(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING   = "connecting"
    SYNCING      = "syncing"
    CONNECTED    = "connected"
    STREAMING    = "streaming"


@dataclass(frozen=True)
class ShieldDescriptor:
    ip_address: str
    local_name: str


@dataclass(frozen=True)
class SessionConfig:
    """Validated session options. Immutable once the session is built."""
    attempts:        int   = DEFAULT_ATTEMPTS
    retry_interval:  float = DEFAULT_RETRY_INTERVAL
    latency:         int   = DEFAULT_LATENCY
    sample_rate:     int   = 0
    protocol:        Transport = Transport.TCP
    burst:           bool  = False
    send_counts:     bool  = False
    control_timeout: float = DEFAULT_CONTROL_TIMEOUT
    debug:           bool  = False
    verbose:         bool  = False

    def __post_init__(self):
        try:
            protocol = Transport(self.protocol)
        except ValueError:
            choices = ", ".join(t.value for t in Transport)
            raise ValueError(f"protocol must be one of {choices}, got: {self.protocol!r}")
        # frozen dataclass: coerce plain strings through object.__setattr__
        object.__setattr__(self, "protocol", protocol)

        if not isinstance(self.attempts, int) or self.attempts < 1:
            raise ValueError(f"attempts must be a positive integer, got: {self.attempts}")
        if not isinstance(self.retry_interval, (int, float)) or self.retry_interval <= 0:
            raise ValueError(f"retry_interval must be > 0, got: {self.retry_interval}")
        if not isinstance(self.latency, int) or self.latency < 0:
            raise ValueError(f"latency must be >= 0, got: {self.latency}")
        if not isinstance(self.sample_rate, int) or self.sample_rate < 0:
            raise ValueError(f"sample_rate must be >= 0, got: {self.sample_rate}")
        if not isinstance(self.control_timeout, (int, float)) or self.control_timeout <= 0:
            raise ValueError(f"control_timeout must be > 0, got: {self.control_timeout}")
        for flag in ("burst", "send_counts", "debug", "verbose"):
            if not isinstance(getattr(self, flag), bool):
                raise ValueError(f"{flag} must be true or false")


@dataclass
class ConnectOptions:
    ip_address:   Optional[str] = None
    shield_name:  Optional[str] = None
    latency:      Optional[int] = None
    sample_rate:  Optional[int] = None
    examine_mode: bool = False
    stream_start: bool = False


@dataclass
class SessionState:
    """Snapshot of a session. Only the owning Session mutates its copy."""
    phase:             SessionPhase = SessionPhase.DISCONNECTED
    searching:         bool = False
    ip_address:        Optional[str] = None
    board_type:        str = BOARD_NONE
    board_connected:   bool = False
    number_of_channels: int = 0
    sample_rate:       int = 0
    latency:           int = DEFAULT_LATENCY
    shield_name:       Optional[str] = None
    mac_address:       Optional[str] = None
    firmware_version:  Optional[str] = None
    gains:             list[int] = field(default_factory=list)

    @property
    def connected(self) -> bool:
        return self.phase in (SessionPhase.CONNECTED, SessionPhase.STREAMING)

    @property
    def streaming(self) -> bool:
        return self.phase == SessionPhase.STREAMING


@dataclass
class Sample:
    """One decoded sample. ``channel_data`` is volts unless counts were requested."""
    sample_number: int
    channel_data:  np.ndarray
    accel_data:    Optional[np.ndarray] = None
    aux_data:      bytes = b""
    stop_byte:     int = 0xC0
    timestamp:     float = 0.0
    valid:         bool = True


@dataclass
class Impedance:
    channel_number:  int
    impedance_value: int
