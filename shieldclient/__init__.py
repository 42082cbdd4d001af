"""WiFi shield client package.

Discovers biosignal WiFi shields on the LAN, configures them over their REST
control plane and decodes the TCP/UDP sample stream they push back.
"""

from .common import (
	BOARD_CYTON,
	BOARD_DAISY,
	BOARD_GANGLION,
	BOARD_NONE,
	SSDP_SEARCH_TARGET,
	get_local_ip,
)
from .errors import (
	AlreadySearchingError,
	AlreadyStreamingError,
	ControlError,
	ControlTimeoutError,
	DiscoveryTimeoutError,
	NoBoardError,
	NotConnectedError,
	NotStreamingError,
	ShieldError,
)
from .models import (
	ConnectOptions,
	Impedance,
	Sample,
	SessionConfig,
	SessionPhase,
	SessionState,
	ShieldDescriptor,
	Transport,
)
from .notify import Notifier
from .buffers import FrameContinuityBuffer, RedundancyBuffer
from .codec import PacketCodec, extract_raw_packets
from .control import ControlChannel
from .daisy import DaisyPairing
from .discovery import ShieldDiscovery
from .transport import TCPListener, TransportListener, UDPListener
from .session import ShieldSession

__version__ = "0.1.0"

__all__ = [
	"BOARD_CYTON",
	"BOARD_DAISY",
	"BOARD_GANGLION",
	"BOARD_NONE",
	"SSDP_SEARCH_TARGET",
	"get_local_ip",
	"AlreadySearchingError",
	"AlreadyStreamingError",
	"ControlError",
	"ControlTimeoutError",
	"DiscoveryTimeoutError",
	"NoBoardError",
	"NotConnectedError",
	"NotStreamingError",
	"ShieldError",
	"ConnectOptions",
	"Impedance",
	"Sample",
	"SessionConfig",
	"SessionPhase",
	"SessionState",
	"ShieldDescriptor",
	"Transport",
	"Notifier",
	"FrameContinuityBuffer",
	"RedundancyBuffer",
	"PacketCodec",
	"extract_raw_packets",
	"ControlChannel",
	"DaisyPairing",
	"ShieldDiscovery",
	"TCPListener",
	"TransportListener",
	"UDPListener",
	"ShieldSession",
]
