"""Regular RSI divergence against price swing pivots.

Pivots are found by scanning index ranges of the original sequences; nothing is sliced or copied.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, TypeVar

from rsiscope.models.market_models import Candle, IndicatorPoint


T = TypeVar("T")

PIVOT_LOOKBACK = 5
RANGE_MIN_BARS = 5
RANGE_MAX_BARS = 60
MIN_HISTORY = 60


@dataclass(frozen=True)
class Pivot:
    index: int
    value: float
    time: int


@dataclass(frozen=True)
class DivergenceSignal:
    pivot_time: int
    rsi_value: float


def find_pivot_lows(
    data: Sequence[T],
    value_of: Callable[[T], float],
    time_of: Callable[[T], int],
    lookback: int = PIVOT_LOOKBACK,
) -> List[Pivot]:
    """Left side may tie, right side must be strictly higher, so the last bar of a flat run is the pivot."""
    pivots: List[Pivot] = []
    if len(data) < 2 * lookback + 1:
        return pivots

    for i in range(lookback, len(data) - lookback):
        current = value_of(data[i])
        if any(value_of(data[i - j]) < current for j in range(1, lookback + 1)):
            continue
        if any(value_of(data[i + j]) <= current for j in range(1, lookback + 1)):
            continue
        pivots.append(Pivot(index=i, value=current, time=time_of(data[i])))
    return pivots


def find_pivot_highs(
    data: Sequence[T],
    value_of: Callable[[T], float],
    time_of: Callable[[T], int],
    lookback: int = PIVOT_LOOKBACK,
) -> List[Pivot]:
    pivots: List[Pivot] = []
    if len(data) < 2 * lookback + 1:
        return pivots

    for i in range(lookback, len(data) - lookback):
        current = value_of(data[i])
        if any(value_of(data[i - j]) > current for j in range(1, lookback + 1)):
            continue
        if any(value_of(data[i + j]) >= current for j in range(1, lookback + 1)):
            continue
        pivots.append(Pivot(index=i, value=current, time=time_of(data[i])))
    return pivots


def _last_two_aligned(price_pivots: List[Pivot], rsi_pivots: List[Pivot]) -> Optional[tuple]:
    if len(price_pivots) < 2 or len(rsi_pivots) < 2:
        return None

    last_price, prev_price = price_pivots[-1], price_pivots[-2]
    last_rsi, prev_rsi = rsi_pivots[-1], rsi_pivots[-2]

    # Price and RSI must pivot on the same candles
    if last_price.time != last_rsi.time or prev_price.time != prev_rsi.time:
        return None

    bars = last_price.index - prev_price.index
    if bars < RANGE_MIN_BARS or bars > RANGE_MAX_BARS:
        return None

    return last_price, prev_price, last_rsi, prev_rsi


def detect_bullish_divergence(
    klines: Sequence[Candle],
    rsi: Sequence[IndicatorPoint],
    lookback: int = PIVOT_LOOKBACK,
) -> Optional[DivergenceSignal]:
    """Price lower low + RSI higher low on the same two pivot candles."""
    if len(klines) < MIN_HISTORY or len(rsi) < MIN_HISTORY:
        return None

    pair = _last_two_aligned(
        find_pivot_lows(klines, lambda c: c.low, lambda c: c.time, lookback),
        find_pivot_lows(rsi, lambda p: p.value, lambda p: p.time, lookback),
    )
    if pair is None:
        return None

    last_price, prev_price, last_rsi, prev_rsi = pair
    if last_price.value < prev_price.value and last_rsi.value > prev_rsi.value:
        return DivergenceSignal(pivot_time=last_rsi.time, rsi_value=last_rsi.value)
    return None


def detect_bearish_divergence(
    klines: Sequence[Candle],
    rsi: Sequence[IndicatorPoint],
    lookback: int = PIVOT_LOOKBACK,
) -> Optional[DivergenceSignal]:
    """Price higher high + RSI lower high on the same two pivot candles."""
    if len(klines) < MIN_HISTORY or len(rsi) < MIN_HISTORY:
        return None

    pair = _last_two_aligned(
        find_pivot_highs(klines, lambda c: c.high, lambda c: c.time, lookback),
        find_pivot_highs(rsi, lambda p: p.value, lambda p: p.time, lookback),
    )
    if pair is None:
        return None

    last_price, prev_price, last_rsi, prev_rsi = pair
    if last_price.value > prev_price.value and last_rsi.value < prev_rsi.value:
        return DivergenceSignal(pivot_time=last_rsi.time, rsi_value=last_rsi.value)
    return None
