"""Tests for pivot detection and RSI divergence."""

from rsiscope.services.market.divergence import (
    detect_bearish_divergence,
    detect_bullish_divergence,
    find_pivot_highs,
    find_pivot_lows,
)
from tests.helpers import make_candle, points


def _price_with_lows(n, dips):
    """Flat candles (low 100, high 110) with the given {index: low} dips."""
    return [make_candle(i, 105.0, high=110.0, low=dips.get(i, 100.0)) for i in range(n)]


def _price_with_highs(n, peaks):
    return [make_candle(i, 105.0, high=peaks.get(i, 110.0), low=100.0) for i in range(n)]


def _rsi_with(n, overrides, base=50.0):
    return points([overrides.get(i, base) for i in range(n)])


class TestPivots:
    """Pivot scans over index ranges."""

    def test_single_dip_is_only_pivot(self):
        data = points([5, 5, 5, 1, 5, 5, 5])
        pivots = find_pivot_lows(data, lambda p: p.value, lambda p: p.time, lookback=3)
        assert [p.index for p in pivots] == [3]

    def test_flat_run_reports_last_bar(self):
        """Ties are allowed on the left and rejected on the right."""
        data = points([5, 3, 3, 5])
        pivots = find_pivot_lows(data, lambda p: p.value, lambda p: p.time, lookback=1)
        assert [p.index for p in pivots] == [2]

    def test_pivot_high(self):
        data = points([1, 2, 9, 2, 1])
        pivots = find_pivot_highs(data, lambda p: p.value, lambda p: p.time, lookback=2)
        assert len(pivots) == 1
        assert pivots[0].value == 9
        assert pivots[0].time == data[2].time

    def test_too_short(self):
        assert find_pivot_lows(points([1, 2, 3]), lambda p: p.value, lambda p: p.time, lookback=5) == []


class TestBullishDivergence:
    """Price lower low + RSI higher low."""

    def test_detects_aligned_divergence(self):
        klines = _price_with_lows(70, {30: 90.0, 45: 85.0})
        rsi = _rsi_with(70, {30: 20.0, 45: 25.0})
        signal = detect_bullish_divergence(klines, rsi)
        assert signal is not None
        assert signal.pivot_time == klines[45].time
        assert signal.rsi_value == 25.0

    def test_short_history_is_none(self):
        klines = _price_with_lows(59, {30: 90.0, 45: 85.0})
        rsi = _rsi_with(59, {30: 20.0, 45: 25.0})
        assert detect_bullish_divergence(klines, rsi) is None

    def test_misaligned_pivots_is_none(self):
        klines = _price_with_lows(70, {30: 90.0, 45: 85.0})
        rsi = _rsi_with(70, {31: 20.0, 45: 25.0})
        assert detect_bullish_divergence(klines, rsi) is None

    def test_pivots_too_far_apart_is_none(self):
        klines = _price_with_lows(90, {10: 90.0, 75: 85.0})
        rsi = _rsi_with(90, {10: 20.0, 75: 25.0})
        assert detect_bullish_divergence(klines, rsi) is None

    def test_no_divergence_when_rsi_confirms(self):
        klines = _price_with_lows(70, {30: 90.0, 45: 85.0})
        rsi = _rsi_with(70, {30: 25.0, 45: 20.0})
        assert detect_bullish_divergence(klines, rsi) is None


class TestBearishDivergence:
    """Price higher high + RSI lower high."""

    def test_detects_aligned_divergence(self):
        klines = _price_with_highs(70, {30: 120.0, 45: 125.0})
        rsi = _rsi_with(70, {30: 80.0, 45: 75.0})
        signal = detect_bearish_divergence(klines, rsi)
        assert signal is not None
        assert signal.pivot_time == klines[45].time
        assert signal.rsi_value == 75.0

    def test_short_history_is_none(self):
        assert detect_bearish_divergence(_price_with_highs(10, {}), _rsi_with(10, {})) is None
