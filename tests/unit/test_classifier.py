"""
Unit Tests for the Whale Classifier

Run with:
    pytest tests/unit/test_classifier.py -v
"""

import pytest

from core.schemas import WhaleTier
from engine.classifier import classify

CUTOFF = 20_000.0


class TestClassify:

    @pytest.mark.parametrize("notional,tier", [
        (CUTOFF, WhaleTier.MEDIUM),
        (CUTOFF * 2 - 0.01, WhaleTier.MEDIUM),
        (CUTOFF * 2, WhaleTier.LARGE),
        (CUTOFF * 5 - 0.01, WhaleTier.LARGE),
        (CUTOFF * 5, WhaleTier.MEGA),
        (CUTOFF * 50, WhaleTier.MEGA),
    ])
    def test_tier_boundaries(self, notional, tier):
        assert classify(notional, CUTOFF, 2, 5) == tier

    def test_custom_multiples(self):
        assert classify(30_000, CUTOFF, k1=1.2, k2=1.4) == WhaleTier.MEGA

    def test_below_cutoff_raises(self):
        with pytest.raises(ValueError):
            classify(CUTOFF - 1, CUTOFF)
