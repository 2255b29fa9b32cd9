"""
Replay alerts over Binance history.

Usage:
  python -m rsiscope.app.replay [--symbols BTCUSDT ETHUSDT] [--timeframe 1h] [--count 1000]

Downloads klines, then walks forward candle by candle applying the same pipeline
as the engine (indicators over the live fetch window, alert evaluation) with the
candle's open time as the clock and an in-memory alert state.
"""

from __future__ import annotations

import argparse
import asyncio
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from rsiscope.infrastructure.binance.binance_client import BinanceClient
from rsiscope.infrastructure.logging.logging import configure_logging, get_logger
from rsiscope.infrastructure.utils.config import RsiscopeConfig, load_config
from rsiscope.infrastructure.utils.timeutils import from_ms
from rsiscope.models.alert_models import AlertEvent
from rsiscope.models.market_models import Candle
from rsiscope.services.alerts.evaluator import AlertEvaluator
from rsiscope.services.alerts.state import InMemoryAlertStateStore
from rsiscope.services.market.indicators import IndicatorEngine

log = get_logger("replay")


@dataclass
class ReplayAlert:
    time: int
    event: AlertEvent


def replay_alerts(
    candles_by_symbol: Dict[str, List[Candle]],
    config: RsiscopeConfig,
    timeframe: str,
) -> List[ReplayAlert]:
    """
    For each symbol, evaluate alerts at every candle once enough history exists.
    The window handed to the indicators matches the engine's fetch size.
    """
    ind_cfg = config.indicators
    engine = IndicatorEngine(
        rsi_period=ind_cfg.rsi_period,
        sma_period=ind_cfg.sma_period,
        stoch_length=ind_cfg.stoch_length,
        k_smoothing=ind_cfg.k_smoothing,
        d_smoothing=ind_cfg.d_smoothing,
    )
    store = InMemoryAlertStateStore()
    evaluator = AlertEvaluator(store, config.alerts.conditions, cooldown_ms=config.alerts.cooldown_ms)

    window = ind_cfg.fetch_limit
    out: List[ReplayAlert] = []
    for symbol, candles in candles_by_symbol.items():
        for i in range(engine.warmup, len(candles)):
            start = max(0, i + 1 - window)
            bundle = engine.compute(candles[start : i + 1], limit=ind_cfg.display_limit)
            now = candles[i].time
            for ev in evaluator.evaluate(symbol, timeframe, bundle, now=now):
                out.append(ReplayAlert(time=now, event=ev))
    return out


async def _fetch_all_candles(client: BinanceClient, symbols: List[str], timeframe: str, count: int) -> Dict[str, List[Candle]]:
    out: Dict[str, List[Candle]] = {}
    results = await asyncio.gather(*(client.fetch_candle_history(s, timeframe, count) for s in symbols))
    for sym, candles in zip(symbols, results):
        if candles:
            out[sym] = candles
        else:
            log.warning("fetch_symbol_failed", symbol=sym)
    return out


def _print_report(alerts: List[ReplayAlert], timeframe: str) -> None:
    print("\n" + "=" * 60)
    print(f"REPLAY - alerts on {timeframe}")
    print("=" * 60)
    counts = Counter(a.event.type.value for a in alerts)
    print(f"  Total alerts: {len(alerts)}")
    for kind, n in sorted(counts.items()):
        print(f"  {kind:<22} {n}")
    print("=" * 60)
    if alerts:
        print("\nLast 10 alerts:")
        for a in alerts[-10:]:
            rsi = f" rsi={a.event.rsi:.2f}" if a.event.rsi is not None else ""
            print(f"  {from_ms(a.time).isoformat()[:19]} {a.event.symbol} {a.event.type.value}{rsi}")
    print()


async def run_replay(
    config_path: Optional[Path] = None,
    symbols_override: Optional[List[str]] = None,
    timeframe: Optional[str] = None,
    count: int = 1000,
) -> List[ReplayAlert]:
    config = load_config(config_path)
    configure_logging(config.log_level, json_logs=False)

    symbols = symbols_override or list(config.dashboard.symbols)
    tf = timeframe or config.dashboard.timeframe
    log.info("replay_start", symbols=symbols, timeframe=tf, count=count)

    async with BinanceClient(config.binance.base_url, request_timeout_sec=config.binance.request_timeout_sec) as client:
        candles_by_symbol = await _fetch_all_candles(client, symbols, tf, count)

    if not candles_by_symbol:
        log.error("no_data", message="No history downloaded for any symbol")
        print("Error: no history downloaded. Check symbols and network.")
        return []

    alerts = replay_alerts(candles_by_symbol, config, tf)
    _print_report(alerts, tf)
    return alerts


def main() -> None:
    parser = argparse.ArgumentParser(description="Replay alert rules over Binance history")
    parser.add_argument("--config", type=Path, default=None, help="Path to config YAML")
    parser.add_argument("--symbols", nargs="+", default=None, help="Symbols (e.g. BTCUSDT ETHUSDT). Defaults to config.")
    parser.add_argument("--timeframe", default=None, help="Kline interval (e.g. 1h). Defaults to config.")
    parser.add_argument("--count", type=int, default=1000, help="Candles per symbol (paged past 1000)")
    args = parser.parse_args()
    asyncio.run(
        run_replay(
            config_path=args.config,
            symbols_override=args.symbols,
            timeframe=args.timeframe,
            count=args.count,
        )
    )


if __name__ == "__main__":
    main()
