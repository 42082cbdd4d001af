"""
Daisy half-sample pairing tests.
"""

import numpy as np

from shieldclient.codec import PacketCodec
from shieldclient.common import BOARD_CYTON, BOARD_DAISY
from shieldclient.daisy import DaisyPairing
from shieldclient.models import Sample


def _sample(n, value=0.0):
    return Sample(sample_number=n, channel_data=np.full(8, value), timestamp=float(n))


def _pairing(drops=None):
    codec = PacketCodec()
    on_drop = drops.append if drops is not None else None
    return DaisyPairing(codec.merge_daisy, on_drop=on_drop)


class TestDaisyPairing:
    """Pairing of lower/upper channel halves."""

    def test_non_daisy_board_passes_through(self):
        pairing = _pairing()
        sample = _sample(1)

        assert pairing.add(sample, BOARD_CYTON) is sample
        assert pairing.pending is None

    def test_odd_then_even_merges(self):
        """Samples 1 then 2 yield one 16 channel sample."""
        pairing = _pairing()

        assert pairing.add(_sample(1, 1.0), BOARD_DAISY) is None
        merged = pairing.add(_sample(2, 2.0), BOARD_DAISY)

        assert merged is not None
        assert merged.sample_number == 1
        assert merged.channel_data.shape == (16,)
        assert np.all(merged.channel_data[:8] == 1.0)
        assert np.all(merged.channel_data[8:] == 2.0)
        assert pairing.pending is None

    def test_two_odds_in_a_row_drop_the_first(self):
        """Samples 1 then 3 merge nothing and 3 becomes pending."""
        drops = []
        pairing = _pairing(drops)

        assert pairing.add(_sample(1), BOARD_DAISY) is None
        assert pairing.add(_sample(3), BOARD_DAISY) is None

        assert pairing.pending.sample_number == 3
        assert pairing.dropped_count == 1
        assert [s.sample_number for s in drops] == [1]

    def test_pairing_recovers_after_a_drop(self):
        pairing = _pairing()
        pairing.add(_sample(1), BOARD_DAISY)
        pairing.add(_sample(3), BOARD_DAISY)

        merged = pairing.add(_sample(4), BOARD_DAISY)

        assert merged is not None
        assert merged.sample_number == 3

    def test_reset_clears_pending(self):
        pairing = _pairing()
        pairing.add(_sample(1), BOARD_DAISY)
        pairing.reset()

        assert pairing.pending is None

    def test_counter_wrap_merges_255_with_0(self):
        """The lower half 255 pairs with the upper half 0 after the wrap."""
        pairing = _pairing()

        assert pairing.add(_sample(255, 1.0), BOARD_DAISY) is None
        merged = pairing.add(_sample(0, 2.0), BOARD_DAISY)

        assert merged is not None
        assert merged.sample_number == 255
        assert np.all(merged.channel_data[:8] == 1.0)
        assert np.all(merged.channel_data[8:] == 2.0)
        assert pairing.dropped_count == 0

    def test_upper_half_first_is_still_placed_high(self):
        """An even half arriving first still fills channels 9-16."""
        pairing = _pairing()

        pairing.add(_sample(2, 2.0), BOARD_DAISY)
        merged = pairing.add(_sample(1, 1.0), BOARD_DAISY)

        assert merged.sample_number == 1
        assert np.all(merged.channel_data[:8] == 1.0)
