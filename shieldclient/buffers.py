"""Byte-stream continuity and raw-packet redundancy buffering."""

from typing import Callable, Optional

from .common import log

# (buffer) -> (raw packets, leftover tail or None)
PacketExtractor = Callable[[bytes], tuple[list[bytes], Optional[bytes]]]


class FrameContinuityBuffer:
    """
    Joins transport chunks so packets split across chunks are not lost.
    The tail the extractor could not use is carried into the next call.
    A tail identical to the previous one means the stream is not
    advancing, so it is thrown away instead of being carried forever.
    """

    def __init__(self, extract: PacketExtractor):
        self.extract  = extract
        self.buffer: Optional[bytes] = None
        self._previous: Optional[bytes] = None
        self.reset_count = 0

    def push(self, chunk: bytes) -> list[bytes]:
        self._previous = self.buffer
        data = self.buffer + chunk if self.buffer else bytes(chunk)

        packets, leftover = self.extract(data)
        self.buffer = leftover or None

        if self.buffer is not None and self.buffer == self._previous:
            self.reset_count += 1
            log.debug(f"Discarding stuck frame buffer ({len(self.buffer)} bytes)")
            self.buffer = None
        return packets

    def reset(self):
        self.buffer = None
        self._previous = None


class RedundancyBuffer:
    """
    Releases raw packets one round late. A held packet is released when a
    byte-identical copy shows up in the next batch; if nothing in the next
    batch matches, everything held is flushed and the new batch is held.
    """

    def __init__(self):
        self.held: list[bytes] = []

    def ingest(self, incoming: list[bytes]) -> list[bytes]:
        if not self.held:
            self.held = list(incoming)
            return []

        claimed = [False] * len(self.held)
        confirmed = []
        unconfirmed = []
        for packet in incoming:
            for i, held in enumerate(self.held):
                if not claimed[i] and held == packet:
                    claimed[i] = True
                    confirmed.append(held)
                    break
            else:
                unconfirmed.append(packet)

        if not confirmed:
            released = self.held
            self.held = list(incoming)
            return released

        self.held = unconfirmed
        return confirmed

    def reset(self):
        self.held = []
