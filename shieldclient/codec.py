"""Raw packet extraction and sample decoding for the shield byte stream."""

import re
import time
from typing import Optional, Sequence, Union

import numpy as np

from .common import BOARD_DAISY, BOARD_GANGLION, log
from .models import Impedance, Sample

# ── Packet layout ────────────────────────────────────────────────────────────
# byte 0      start byte 0xA0
# byte 1      sample number (or channel number for impedance packets)
# bytes 2-25  8 channels x 24-bit big-endian two's complement
# bytes 26-31 aux: 3 x 16-bit accelerometer axes on type 0 packets
# byte 32     stop byte 0xC0 | packet type
PACKET_SIZE = 33
START_BYTE  = 0xA0
STOP_BYTE_MIN = 0xC0
STOP_BYTE_MAX = 0xCF

PACKET_TYPE_ACCEL     = 0
PACKET_TYPE_RAW_AUX   = 1
PACKET_TYPE_IMPEDANCE = 7

CHANNELS_PER_PACKET = 8
GANGLION_CHANNELS   = 4
DEFAULT_GAIN        = 24

ADS1299_VREF        = 4.5
CYTON_MAX_COUNTS    = 2 ** 23 - 1
GANGLION_SCALE      = 1.2 / (8388607.0 * 1.5 * 51.0)
ACCEL_SCALE         = 0.002 / 2 ** 4     # g per count

_DIGITS = re.compile(rb"\d+")


def extract_raw_packets(buffer: bytes) -> tuple[list[bytes], Optional[bytes]]:
    """
    Pull every complete packet out of ``buffer``.
    Returns the packets and the trailing bytes that may still begin a
    packet (None when nothing is left over).
    """
    packets = []
    i = 0
    end = len(buffer)
    while i <= end - PACKET_SIZE:
        if buffer[i] == START_BYTE and STOP_BYTE_MIN <= buffer[i + PACKET_SIZE - 1] <= STOP_BYTE_MAX:
            packets.append(bytes(buffer[i:i + PACKET_SIZE]))
            i += PACKET_SIZE
        else:
            i += 1

    leftover = bytes(buffer[i:]) if i < end else None
    return packets, leftover


def packet_type(raw_packet: bytes) -> int:
    return raw_packet[PACKET_SIZE - 1] & 0x0F


def _counts_24bit(payload: np.ndarray) -> np.ndarray:
    """Sign-extend big-endian 24-bit words; ``payload`` has shape (n, 3)."""
    x = (
        (payload[:, 0].astype(np.int32) << 16)
        | (payload[:, 1].astype(np.int32) << 8)
        |  payload[:, 2].astype(np.int32)
    )
    return np.where(x & 0x800000, x - 0x1000000, x).astype(np.int32)


class PacketCodec:
    """
    Default sample codec. Turns raw packets into Sample / Impedance objects
    using the board type and per-channel gains reported by the shield.
    """

    def __init__(self, send_counts: bool = False):
        self.scale = not send_counts
        self.board_type = None
        self.gains: list[int] = []

    def configure(self, board_type: str, gains: Sequence[int] = ()):
        self.board_type = board_type
        self.gains = [int(g) for g in gains]

    def set_gain(self, channel_number: int, gain: int):
        """Update the gain of channel ``channel_number`` (1-based)."""
        idx = channel_number - 1
        if idx >= len(self.gains):
            self.gains.extend([DEFAULT_GAIN] * (idx + 1 - len(self.gains)))
        self.gains[idx] = int(gain)

    def extract(self, buffer: bytes) -> tuple[list[bytes], Optional[bytes]]:
        return extract_raw_packets(buffer)

    def decode(self, raw_packets: Sequence[bytes]) -> list[Union[Sample, Impedance]]:
        decoded = []
        for raw in raw_packets:
            try:
                decoded.append(self.decode_packet(raw))
            except ValueError as e:
                log.debug(f"Skipping undecodable packet: {e}")
        return decoded

    def decode_packet(self, raw: bytes) -> Union[Sample, Impedance]:
        if len(raw) != PACKET_SIZE or raw[0] != START_BYTE:
            raise ValueError(f"not a raw data packet ({len(raw)} bytes)")
        ptype = packet_type(raw)
        if ptype == PACKET_TYPE_IMPEDANCE:
            return self._decode_impedance(raw)
        return self._decode_sample(raw, ptype)

    def _channel_scales(self, offset: int, n_channels: int) -> np.ndarray:
        if self.board_type == BOARD_GANGLION:
            return np.full(n_channels, GANGLION_SCALE)
        gains = []
        for ch in range(offset, offset + n_channels):
            gain = self.gains[ch] if ch < len(self.gains) and self.gains[ch] else DEFAULT_GAIN
            gains.append(gain)
        return ADS1299_VREF / np.asarray(gains, dtype=np.float64) / CYTON_MAX_COUNTS

    def _decode_sample(self, raw: bytes, ptype: int) -> Sample:
        data = np.frombuffer(raw, dtype=np.uint8)
        sample_number = int(data[1])

        n_channels = GANGLION_CHANNELS if self.board_type == BOARD_GANGLION else CHANNELS_PER_PACKET
        counts = _counts_24bit(data[2:2 + 3 * CHANNELS_PER_PACKET].reshape(-1, 3))[:n_channels]

        # Upper daisy channels arrive on even sample numbers and use gains 9-16.
        offset = CHANNELS_PER_PACKET if (self.board_type == BOARD_DAISY and sample_number % 2 == 0) else 0
        if self.scale:
            channel_data = counts * self._channel_scales(offset, n_channels)
        else:
            channel_data = counts

        aux = bytes(raw[26:32])
        accel = None
        if ptype == PACKET_TYPE_ACCEL:
            axes = np.frombuffer(aux, dtype=">i2").astype(np.int32)
            accel = axes * ACCEL_SCALE if self.scale else axes

        return Sample(
            sample_number=sample_number,
            channel_data=channel_data,
            accel_data=accel,
            aux_data=aux,
            stop_byte=raw[PACKET_SIZE - 1],
            timestamp=time.time(),
        )

    def _decode_impedance(self, raw: bytes) -> Impedance:
        match = _DIGITS.search(bytes(raw[2:PACKET_SIZE - 1]))
        if match is None:
            raise ValueError("impedance packet without a value")
        return Impedance(channel_number=int(raw[1]), impedance_value=int(match.group()))

    def merge_daisy(self, lower: Sample, upper: Sample) -> Sample:
        """Combine lower (channels 1-8) and upper (9-16) halves into one sample."""
        accel = lower.accel_data if lower.accel_data is not None else upper.accel_data
        return Sample(
            sample_number=lower.sample_number,
            channel_data=np.concatenate([lower.channel_data, upper.channel_data]),
            accel_data=accel,
            aux_data=lower.aux_data,
            stop_byte=lower.stop_byte,
            timestamp=(lower.timestamp + upper.timestamp) / 2.0,
            valid=lower.valid and upper.valid,
        )
