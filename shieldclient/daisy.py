"""Pairing of half-channel samples from a 16 channel (daisy) board."""

from typing import Callable, Optional

from .common import BOARD_DAISY, log
from .models import Sample

SampleMerger = Callable[[Sample, Sample], Sample]


def _pair_number(sample_number: int) -> int:
    # Lower channels ride on odd sample numbers, upper on the next even one.
    # The 8-bit counter wraps, so 255 pairs with 0.
    return ((sample_number + 1) // 2) % 128


class DaisyPairing:
    """
    Holds at most one half sample until its partner arrives.
    A half that is replaced before it was paired counts as dropped.
    """

    def __init__(self, merge: SampleMerger,
                 on_drop: Optional[Callable[[Sample], None]] = None):
        self.merge   = merge
        self.on_drop = on_drop
        self.pending: Optional[Sample] = None
        self.dropped_count = 0

    def add(self, sample: Sample, board_type: str) -> Optional[Sample]:
        """Return the sample to publish, or None while waiting for a partner."""
        if board_type != BOARD_DAISY:
            return sample

        if self.pending is None:
            self.pending = sample
            return None

        if _pair_number(self.pending.sample_number) == _pair_number(sample.sample_number):
            if self.pending.sample_number % 2 == 1:
                lower, upper = self.pending, sample
            else:
                lower, upper = sample, self.pending
            self.pending = None
            return self.merge(lower, upper)

        dropped, self.pending = self.pending, sample
        self.dropped_count += 1
        log.debug(f"Daisy half {dropped.sample_number} lost its partner "
                  f"(next was {sample.sample_number})")
        if self.on_drop:
            self.on_drop(dropped)
        return None

    def reset(self):
        self.pending = None
