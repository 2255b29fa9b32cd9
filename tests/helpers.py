"""Candle / series builders shared by the test modules."""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from rsiscope.infrastructure.utils.config import AlertConditions
from rsiscope.models.market_models import Candle, IndicatorPoint, SymbolIndicatorBundle


BASE_TIME = 1_700_000_000_000
HOUR_MS = 3_600_000


def make_candle(
    i: int,
    close: float,
    *,
    open_: Optional[float] = None,
    high: Optional[float] = None,
    low: Optional[float] = None,
    volume: float = 100.0,
    taker_buy_volume: Optional[float] = None,
    step: int = HOUR_MS,
) -> Candle:
    open_ = close if open_ is None else open_
    return Candle(
        time=BASE_TIME + i * step,
        open=open_,
        high=max(open_, close) if high is None else high,
        low=min(open_, close) if low is None else low,
        close=close,
        volume=volume,
        taker_buy_volume=volume / 2 if taker_buy_volume is None else taker_buy_volume,
    )


def candles_from_closes(closes: Iterable[float], volume: float = 100.0) -> List[Candle]:
    """Each candle opens at the previous close."""
    out: List[Candle] = []
    prev: Optional[float] = None
    for i, c in enumerate(closes):
        out.append(make_candle(i, c, open_=prev if prev is not None else c, volume=volume))
        prev = c
    return out


def points(values: Sequence[float], start: int = 0) -> List[IndicatorPoint]:
    return [IndicatorPoint(time=BASE_TIME + (start + i) * HOUR_MS, value=v) for i, v in enumerate(values)]


def make_bundle(
    *,
    rsi: Optional[Sequence[float]] = None,
    sma: Optional[Sequence[float]] = None,
    stoch_k: Optional[Sequence[float]] = None,
    stoch_d: Optional[Sequence[float]] = None,
    price_sma: Optional[Sequence[float]] = None,
    klines: Optional[List[Candle]] = None,
) -> SymbolIndicatorBundle:
    """A bundle that passes the two-point precondition; unspecified series are flat and quiet."""
    klines = klines if klines is not None else [make_candle(0, 100.0), make_candle(1, 100.0)]
    offset = len(klines) - 2

    def series(values: Optional[Sequence[float]], default: float) -> List[IndicatorPoint]:
        values = list(values) if values is not None else [default, default]
        return points(values, start=offset + 2 - len(values))

    return SymbolIndicatorBundle(
        rsi=series(rsi, 50.0),
        sma=series(sma, 50.0),
        price_sma=series(price_sma, 100.0),
        stoch_k=series(stoch_k, 50.0),
        stoch_d=series(stoch_d, 50.0),
        klines=klines,
        price=klines[-1].close,
        volume=klines[-1].volume,
    )


def only(*enabled: str) -> AlertConditions:
    """AlertConditions with every toggle off except `enabled`."""
    flags = {name: name in enabled for name in AlertConditions.model_fields}
    return AlertConditions(**flags)
