"""Binance public REST client (klines only) using asyncio + aiohttp.

Features:
- Shared ClientSession (owned, or injected for tests)
- Any failure (HTTP status, network, timeout, decode) is logged and surfaces as []
- Previous-week / previous-month volume-profile levels for HTF overlays
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import aiohttp

from rsiscope.infrastructure.logging.logging import get_logger
from rsiscope.infrastructure.utils.timeutils import to_ms, utc_now
from rsiscope.models.market_models import Candle, HTFLevels, Timeframe
from rsiscope.services.market.volume_profile import calculate_volume_profile, summarize_levels


KLINES_PATH = "/api/v3/klines"
HTF_INTERVAL = "1h"
HTF_BUCKETS = 100
MAX_KLINES_PER_REQUEST = 1000

JsonList = List[Any]


class BinanceAPIError(RuntimeError):
    pass


def parse_kline(row: Sequence[Any]) -> Candle:
    """Binance kline row: [open_time, open, high, low, close, volume, close_time, quote_vol, trades, taker_buy_base, ...]."""
    return Candle(
        time=int(row[0]),
        open=float(row[1]),
        high=float(row[2]),
        low=float(row[3]),
        close=float(row[4]),
        volume=float(row[5]),
        taker_buy_volume=float(row[9]) if len(row) > 9 else 0.0,
    )


def previous_period_range(period: str, now: Optional[datetime] = None) -> Tuple[int, int]:
    """
    (start_ms, end_ms) of the previous calendar week (Mon 00:00 -> Sun 23:59:59.999 UTC)
    or previous calendar month.
    """
    now = now or utc_now()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    today = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)

    if period == "week":
        this_monday = today - timedelta(days=today.weekday())
        start = this_monday - timedelta(days=7)
        return to_ms(start), to_ms(this_monday) - 1

    if period == "month":
        first_of_month = today.replace(day=1)
        start = (first_of_month - timedelta(days=1)).replace(day=1)
        return to_ms(start), to_ms(first_of_month) - 1

    raise ValueError("period must be 'week' or 'month'")


class BinanceClient:
    def __init__(
        self,
        base_url: str = "https://api.binance.com",
        *,
        request_timeout_sec: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._logger = get_logger("binance")
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=request_timeout_sec)
        self._session = session
        self._owns_session = session is None

    async def start(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

    async def stop(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "BinanceClient":
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    async def _get_klines(self, params: Dict[str, Any]) -> JsonList:
        if self._session is None:
            await self.start()
        assert self._session is not None

        async with self._session.get(f"{self._base_url}{KLINES_PATH}", params=params, timeout=self._timeout) as resp:
            if resp.status != 200:
                raise BinanceAPIError(f"HTTP {resp.status} for {params.get('symbol')}")
            data = await resp.json()
        if not isinstance(data, list):
            raise BinanceAPIError(f"unexpected klines payload: {type(data).__name__}")
        return data

    async def fetch_candles(self, symbol: str, timeframe: Union[str, Timeframe], limit: int) -> List[Candle]:
        """Oldest-first candles, or [] on any failure."""
        interval = timeframe.value if isinstance(timeframe, Timeframe) else str(timeframe)
        params = {"symbol": symbol, "interval": interval, "limit": min(int(limit), MAX_KLINES_PER_REQUEST)}
        try:
            rows = await self._get_klines(params)
            return [parse_kline(r) for r in rows]
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, BinanceAPIError, ValueError, TypeError, IndexError) as e:
            self._logger.warning("klines_fetch_failed", symbol=symbol, timeframe=interval, error=str(e))
            return []

    async def fetch_candle_history(
        self,
        symbol: str,
        timeframe: Union[str, Timeframe],
        count: int,
        end_ms: Optional[int] = None,
    ) -> List[Candle]:
        """
        The newest `count` candles (oldest first), paging backwards past the per-request cap.
        Stops early when Binance has no older data; [] on any failure.
        """
        interval = timeframe.value if isinstance(timeframe, Timeframe) else str(timeframe)
        pages: List[List[Candle]] = []
        remaining = int(count)
        try:
            while remaining > 0:
                params: Dict[str, Any] = {
                    "symbol": symbol,
                    "interval": interval,
                    "limit": min(remaining, MAX_KLINES_PER_REQUEST),
                }
                if end_ms is not None:
                    params["endTime"] = int(end_ms)
                page = [parse_kline(r) for r in await self._get_klines(params)]
                if not page:
                    break
                pages.append(page)
                remaining -= len(page)
                if len(page) < params["limit"]:
                    break
                end_ms = page[0].time - 1
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, BinanceAPIError, ValueError, TypeError, IndexError) as e:
            self._logger.warning("klines_history_fetch_failed", symbol=symbol, timeframe=interval, error=str(e))
            return []

        self._logger.debug("klines_history_fetched", symbol=symbol, timeframe=interval, pages=len(pages))
        return [c for page in reversed(pages) for c in page]

    async def fetch_klines_range(
        self,
        symbol: str,
        interval: str,
        start_ms: int,
        end_ms: int,
        limit: int = MAX_KLINES_PER_REQUEST,
    ) -> List[Candle]:
        params = {
            "symbol": symbol,
            "interval": interval,
            "startTime": int(start_ms),
            "endTime": int(end_ms),
            "limit": min(int(limit), MAX_KLINES_PER_REQUEST),
        }
        rows = await self._get_klines(params)
        return [parse_kline(r) for r in rows]

    async def fetch_htf_levels(self, symbol: str, now: Optional[datetime] = None) -> HTFLevels:
        """Previous week / month POC-VAH-VAL from 1h candles; all None on failure."""
        week_start, week_end = previous_period_range("week", now)
        month_start, month_end = previous_period_range("month", now)
        try:
            weekly, monthly = await asyncio.gather(
                self.fetch_klines_range(symbol, HTF_INTERVAL, week_start, week_end),
                self.fetch_klines_range(symbol, HTF_INTERVAL, month_start, month_end),
            )
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, BinanceAPIError, ValueError, TypeError, IndexError) as e:
            self._logger.warning("htf_levels_fetch_failed", symbol=symbol, error=str(e))
            return HTFLevels()

        return HTFLevels(
            weekly=summarize_levels(calculate_volume_profile(weekly, HTF_BUCKETS)),
            monthly=summarize_levels(calculate_volume_profile(monthly, HTF_BUCKETS)),
        )
