"""Public shield client API and CLI entrypoint."""

import logging
import time

from .common import (
    BOARD_CYTON,
    BOARD_DAISY,
    BOARD_GANGLION,
    BOARD_NONE,
    SSDP_SEARCH_TARGET,
    get_local_ip,
    log,
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
from .buffers import FrameContinuityBuffer, RedundancyBuffer
from .codec import PacketCodec, extract_raw_packets
from .control import ControlChannel
from .daisy import DaisyPairing
from .discovery import ShieldDiscovery
from .transport import TCPListener, TransportListener, UDPListener
from .session import ShieldSession

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
    "EVENT_CLOSE",
    "EVENT_DROPPED_PACKET",
    "EVENT_IMPEDANCE",
    "EVENT_MESSAGE",
    "EVENT_RAW_PACKET",
    "EVENT_SAMPLE",
    "EVENT_SHIELD_FOUND",
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
    "main",
]


def _configure_logging(level_name: str):
    level = getattr(logging, level_name.upper(), logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(message)s')
    else:
        root_logger.setLevel(level)

    logging.getLogger('shieldclient').setLevel(level)


def main(argv=None):
    import argparse

    parser = argparse.ArgumentParser(description="WiFi shield streaming test receiver")
    parser.add_argument("--ip",       default=None, help="Shield IP (auto-discover if omitted)")
    parser.add_argument("--name",     default=None, help="Only connect to the shield with this name")
    parser.add_argument("--protocol", default="tcp", choices=[t.value for t in Transport],
                        help="Streaming transport (default: tcp)")
    parser.add_argument("--burst",    action="store_true", help="Ask the shield to repeat UDP datagrams")
    parser.add_argument("--rate",     default=None, type=int, help="Sample rate Hz")
    parser.add_argument("--latency",  default=10000, type=int, help="Shield latency in microseconds")
    parser.add_argument("--secs",     default=5, type=int, help="Seconds to stream")
    parser.add_argument("--timeout",  default=10.0, type=float, help="Seconds to search for a shield")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        help="Logging verbosity (default: INFO)")
    args = parser.parse_args(argv)

    _configure_logging(args.log_level)

    session = ShieldSession(SessionConfig(
        protocol=args.protocol,
        burst=args.burst,
        latency=args.latency,
    ))

    counts = {"samples": 0, "impedance": 0, "dropped": 0}
    session.notifier.on(EVENT_SAMPLE, lambda _s: counts.__setitem__("samples", counts["samples"] + 1))
    session.notifier.on(EVENT_IMPEDANCE, lambda _i: counts.__setitem__("impedance", counts["impedance"] + 1))
    session.notifier.on(EVENT_DROPPED_PACKET, lambda _d: counts.__setitem__("dropped", counts["dropped"] + 1))

    options = ConnectOptions(ip_address=args.ip, shield_name=args.name,
                             sample_rate=args.rate, stream_start=True)
    try:
        if args.ip:
            session.connect(options)
        else:
            session.search_to_stream(timeout=args.timeout, options=options)

        state = session.state
        log.info(f"Streaming from {state.shield_name} ({state.board_type}, "
                 f"{state.number_of_channels} channels, {state.sample_rate} Hz)")

        t_end = time.time() + args.secs
        last_report = time.time()
        while time.time() < t_end:
            time.sleep(0.25)
            if time.time() - last_report >= 1.0:
                last_report = time.time()
                log.info(f"Samples: {counts['samples']}  Impedance: {counts['impedance']}  "
                         f"Dropped daisy halves: {counts['dropped']}")

        log.info(f"Done. {counts['samples']} samples, {counts['dropped']} dropped")
        return 0

    except KeyboardInterrupt:
        log.info("Interrupted")
        return 0
    except ShieldError as e:
        log.error(f"{e}")
        return 1
    finally:
        if session.is_streaming():
            try:
                session.stream_stop()
            except ShieldError as e:
                log.warning(f"Stream stop failed: {e}")
        session.destroy()


if __name__ == "__main__":
    raise SystemExit(main())
