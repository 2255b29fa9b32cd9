"""Fibonacci retracement zones: Golden Pocket (0.618-0.65) and the 0.786 level from the window's swing."""

from __future__ import annotations

import math
from typing import Optional, Sequence

from rsiscope.models.market_models import Candle, FibZone, GoldenPocket


GP_NEAR = 0.618
GP_FAR = 0.65
FIB_786 = 0.786


def calculate_fib_zone(candles: Sequence[Candle], end: Optional[int] = None) -> FibZone:
    """
    Zone from candles[:end] (no copy). Trend is up when the lowest low comes before the highest high.
    Returns an empty FibZone with fewer than 2 candles, a zero range or a non-finite high/low.
    """
    stop = len(candles) if end is None else max(0, min(end, len(candles)))
    if stop < 2:
        return FibZone()
    if not all(math.isfinite(candles[i].high) and math.isfinite(candles[i].low) for i in range(stop)):
        return FibZone()

    high_idx = low_idx = 0
    highest = candles[0].high
    lowest = candles[0].low
    for i in range(1, stop):
        # Strict comparison: the first occurrence of an extreme wins
        if candles[i].high > highest:
            highest, high_idx = candles[i].high, i
        if candles[i].low < lowest:
            lowest, low_idx = candles[i].low, i

    span = highest - lowest
    if span == 0:
        return FibZone()

    if low_idx < high_idx:
        near = highest - span * GP_NEAR
        far = highest - span * GP_FAR
        fib786 = highest - span * FIB_786
    else:
        near = lowest + span * GP_NEAR
        far = lowest + span * GP_FAR
        fib786 = lowest + span * FIB_786

    return FibZone(gp=GoldenPocket(top=max(near, far), bottom=min(near, far)), fib786=fib786)
