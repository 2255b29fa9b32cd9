"""Market domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class Timeframe(str, Enum):
    """Closed set of kline intervals the dashboard can display."""

    FIVE_MINUTE = "5m"
    FIFTEEN_MINUTE = "15m"
    THIRTY_MINUTE = "30m"
    ONE_HOUR = "1h"
    TWO_HOUR = "2h"
    FOUR_HOUR = "4h"
    EIGHT_HOUR = "8h"
    ONE_DAY = "1d"
    THREE_DAY = "3d"
    ONE_WEEK = "1w"


@dataclass(frozen=True)
class Candle:
    time: int               # open time, epoch ms
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    taker_buy_volume: float = 0.0


@dataclass(frozen=True)
class IndicatorPoint:
    time: int               # open time of the originating candle
    value: float


@dataclass(frozen=True)
class SymbolIndicatorBundle:
    """Everything derived for one symbol/timeframe on one refresh tick."""

    rsi: List[IndicatorPoint] = field(default_factory=list)
    sma: List[IndicatorPoint] = field(default_factory=list)
    price_sma: List[IndicatorPoint] = field(default_factory=list)
    stoch_k: List[IndicatorPoint] = field(default_factory=list)
    stoch_d: List[IndicatorPoint] = field(default_factory=list)
    klines: List[Candle] = field(default_factory=list)
    price: float = 0.0
    volume: float = 0.0

    @classmethod
    def empty(cls) -> "SymbolIndicatorBundle":
        return cls()

    @property
    def has_data(self) -> bool:
        return bool(self.klines)


@dataclass
class VolumeBucket:
    price: float            # lower bound of the bucket
    volume: float = 0.0
    buy_volume: float = 0.0
    sell_volume: float = 0.0


@dataclass(frozen=True)
class VolumeProfile:
    buckets: List[VolumeBucket]
    poc: float
    vah: float
    val: float
    max_volume: float
    min_price: float
    max_price: float


@dataclass(frozen=True)
class GoldenPocket:
    top: float
    bottom: float

    def contains(self, price: float) -> bool:
        return self.bottom <= price <= self.top


@dataclass(frozen=True)
class FibZone:
    gp: Optional[GoldenPocket] = None
    fib786: Optional[float] = None


@dataclass(frozen=True)
class VolumeProfileLevels:
    poc: Optional[float] = None
    vah: Optional[float] = None
    val: Optional[float] = None


@dataclass(frozen=True)
class HTFLevels:
    weekly: VolumeProfileLevels = field(default_factory=VolumeProfileLevels)
    monthly: VolumeProfileLevels = field(default_factory=VolumeProfileLevels)
