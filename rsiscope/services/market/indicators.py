"""Batch indicators over a candle series (RSI, SMA, Stochastic-RSI) with warm-up truncation.

Every function is pure: same candles in, same series out. Too little data or
non-finite prices give an empty series instead of an exception.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from rsiscope.models.market_models import Candle, IndicatorPoint, SymbolIndicatorBundle


def _finite_closes(candles: Sequence[Candle]) -> bool:
    return all(math.isfinite(c.close) for c in candles)


def calculate_rsi(candles: Sequence[Candle], period: int = 14) -> List[IndicatorPoint]:
    """Wilder RSI. The first point belongs to candle index period + 1."""
    if period < 1 or len(candles) <= period or not _finite_closes(candles):
        return []

    gains: List[float] = []
    losses: List[float] = []
    for i in range(1, len(candles)):
        change = candles[i].close - candles[i - 1].close
        gains.append(max(0.0, change))
        losses.append(max(0.0, -change))

    # Seed with the simple mean of the first `period` deltas
    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    out: List[IndicatorPoint] = []
    for i in range(period, len(gains)):
        if avg_loss == 0.0:
            rsi = 100.0
        else:
            rs = avg_gain / avg_loss
            rsi = 100.0 - (100.0 / (1.0 + rs))

        # Emitted from the averages before gains[i] (the delta ending at candle i + 1) is folded in
        out.append(IndicatorPoint(time=candles[i + 1].time, value=rsi))

        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
    return out


def _rolling_mean(times: Sequence[int], values: Sequence[float], length: int) -> List[IndicatorPoint]:
    if length < 1 or len(values) < length:
        return []
    out: List[IndicatorPoint] = []
    for i in range(length - 1, len(values)):
        window_sum = sum(values[i - length + 1 : i + 1])
        out.append(IndicatorPoint(time=times[i], value=window_sum / length))
    return out


def calculate_sma(series: Sequence[IndicatorPoint], length: int) -> List[IndicatorPoint]:
    """Trailing mean; output length is max(0, len(series) - length + 1)."""
    return _rolling_mean([p.time for p in series], [p.value for p in series], length)


def calculate_price_sma(candles: Sequence[Candle], length: int) -> List[IndicatorPoint]:
    if not _finite_closes(candles):
        return []
    return _rolling_mean([c.time for c in candles], [c.close for c in candles], length)


def calculate_raw_stochastic(rsi: Sequence[IndicatorPoint], length: int) -> List[IndicatorPoint]:
    if length < 1 or len(rsi) < length:
        return []

    out: List[IndicatorPoint] = []
    for i in range(length - 1, len(rsi)):
        window = [p.value for p in rsi[i - length + 1 : i + 1]]
        highest = max(window)
        lowest = min(window)
        stoch = 0.0
        if highest - lowest > 0:
            stoch = 100.0 * (rsi[i].value - lowest) / (highest - lowest)
        out.append(IndicatorPoint(time=rsi[i].time, value=stoch))
    return out


def calculate_stoch_rsi(
    rsi: Sequence[IndicatorPoint],
    stoch_length: int = 14,
    k_length: int = 3,
    d_length: int = 3,
) -> Tuple[List[IndicatorPoint], List[IndicatorPoint]]:
    """Returns (%K, %D). Each smoothing layer shortens the series further."""
    raw = calculate_raw_stochastic(rsi, stoch_length)
    k_line = calculate_sma(raw, k_length)
    d_line = calculate_sma(k_line, d_length)
    return k_line, d_line


@dataclass(frozen=True)
class IndicatorEngine:
    rsi_period: int = 14
    sma_period: int = 14
    stoch_length: int = 14
    k_smoothing: int = 3
    d_smoothing: int = 3

    def _validate_periods(self) -> None:
        if self.rsi_period < 1:
            raise ValueError("rsi_period must be >= 1")
        if self.sma_period < 1:
            raise ValueError("sma_period must be >= 1")
        if self.stoch_length < 1:
            raise ValueError("stoch_length must be >= 1")
        if self.k_smoothing < 1:
            raise ValueError("k_smoothing must be >= 1")
        if self.d_smoothing < 1:
            raise ValueError("d_smoothing must be >= 1")

    @property
    def warmup(self) -> int:
        """Candles consumed before the first %D point exists."""
        return self.rsi_period + 1 + (self.stoch_length - 1) + (self.k_smoothing - 1) + (self.d_smoothing - 1)

    def compute(self, candles: Sequence[Candle], limit: Optional[int] = None) -> SymbolIndicatorBundle:
        """Build the full bundle; with `limit`, every series keeps only its newest `limit` entries."""
        self._validate_periods()
        if not candles or not _finite_closes(candles):
            return SymbolIndicatorBundle.empty()

        rsi = calculate_rsi(candles, self.rsi_period)
        sma = calculate_sma(rsi, self.sma_period)
        price_sma = calculate_price_sma(candles, self.sma_period)
        stoch_k, stoch_d = calculate_stoch_rsi(rsi, self.stoch_length, self.k_smoothing, self.d_smoothing)
        latest = candles[-1]

        def tail(seq):
            seq = list(seq)
            return seq[-limit:] if limit else seq

        return SymbolIndicatorBundle(
            rsi=tail(rsi),
            sma=tail(sma),
            price_sma=tail(price_sma),
            stoch_k=tail(stoch_k),
            stoch_d=tail(stoch_d),
            klines=tail(candles),
            price=float(latest.close),
            volume=float(latest.volume),
        )
