"""Tests for the Fibonacci zone calculator."""

import math

import pytest

from rsiscope.services.market.fibonacci import calculate_fib_zone
from tests.helpers import make_candle


class TestFibZone:
    """Golden Pocket and 0.786 level from the window swing."""

    def test_uptrend_retraces_from_high(self):
        candles = [
            make_candle(0, 100.5, open_=100.5, high=101.0, low=100.0),
            make_candle(1, 195.0, open_=195.0, high=200.0, low=190.0),
        ]
        zone = calculate_fib_zone(candles)
        assert zone.gp.top == pytest.approx(200 - 61.8)
        assert zone.gp.bottom == pytest.approx(200 - 65.0)
        assert zone.fib786 == pytest.approx(200 - 78.6)

    def test_downtrend_retraces_from_low(self):
        candles = [
            make_candle(0, 195.0, open_=195.0, high=200.0, low=190.0),
            make_candle(1, 100.5, open_=100.5, high=101.0, low=100.0),
        ]
        zone = calculate_fib_zone(candles)
        assert zone.gp.top == pytest.approx(100 + 65.0)
        assert zone.gp.bottom == pytest.approx(100 + 61.8)
        assert zone.fib786 == pytest.approx(100 + 78.6)

    def test_top_is_always_above_bottom(self):
        for closes in ([100.0, 150.0, 120.0], [150.0, 100.0, 130.0]):
            candles = [make_candle(i, c) for i, c in enumerate(closes)]
            zone = calculate_fib_zone(candles)
            assert zone.gp.top >= zone.gp.bottom

    def test_zero_range_is_empty(self):
        candles = [make_candle(i, 100.0) for i in range(5)]
        zone = calculate_fib_zone(candles)
        assert zone.gp is None
        assert zone.fib786 is None

    @pytest.mark.parametrize("bad", [math.nan, math.inf])
    def test_non_finite_extreme_is_empty(self, bad):
        candles = [
            make_candle(0, 100.0, high=bad, low=bad),
            make_candle(1, 150.0, high=160.0, low=140.0),
            make_candle(2, 120.0, high=125.0, low=110.0),
        ]
        zone = calculate_fib_zone(candles)
        assert zone.gp is None
        assert zone.fib786 is None

    def test_non_finite_outside_window_is_ignored(self):
        candles = [
            make_candle(0, 100.5, open_=100.5, high=101.0, low=100.0),
            make_candle(1, 195.0, open_=195.0, high=200.0, low=190.0),
            make_candle(2, 150.0, high=math.nan, low=math.nan),
        ]
        assert calculate_fib_zone(candles, end=2).fib786 == pytest.approx(200 - 78.6)

    def test_fewer_than_two_candles_is_empty(self):
        assert calculate_fib_zone([]).gp is None
        assert calculate_fib_zone([make_candle(0, 100.0, high=110.0, low=90.0)]).gp is None

    def test_end_limits_the_window(self):
        """end=len-1 ignores the newest candle (the zone as of one candle ago)."""
        candles = [
            make_candle(0, 100.0, high=101.0, low=100.0),
            make_candle(1, 200.0, high=200.0, low=199.0),
            make_candle(2, 300.0, high=300.0, low=299.0),
        ]
        full = calculate_fib_zone(candles)
        past = calculate_fib_zone(candles, end=2)
        assert full.fib786 == pytest.approx(300 - 0.786 * 200)
        assert past.fib786 == pytest.approx(200 - 0.786 * 100)
        assert calculate_fib_zone(candles, end=1).gp is None
