"""Dashboard engine: fetch -> compute -> evaluate on a fixed interval."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Dict, List, Optional

from rsiscope.infrastructure.binance.binance_client import BinanceClient
from rsiscope.infrastructure.logging.logging import configure_logging, get_logger, tick_context
from rsiscope.infrastructure.storage.sqlite_repository import SQLiteRepository
from rsiscope.infrastructure.utils.config import RsiscopeConfig, get_effective_alert_conditions, load_config
from rsiscope.infrastructure.utils.timeutils import now_ms, utc_now
from rsiscope.models.alert_models import AlertEvent
from rsiscope.models.market_models import Candle, FibZone, HTFLevels, SymbolIndicatorBundle, VolumeProfile
from rsiscope.services.alerts.evaluator import AlertEvaluator
from rsiscope.services.alerts.state import JsonFileAlertStateStore
from rsiscope.services.market.fibonacci import calculate_fib_zone
from rsiscope.services.market.indicators import IndicatorEngine
from rsiscope.services.market.volume_profile import calculate_volume_profile
from rsiscope.services.monitoring.metrics import MetricsSnapshot
from rsiscope.services.monitoring.metrics_store import write_metrics
from rsiscope.services.notifications.notification_log import NotificationLog


class DashboardEngine:
    """
    One tick = fetch every symbol concurrently, compute bundles, evaluate alerts, commit.

    A new tick supersedes a still-running one: the old task is cancelled and its
    sequence number no longer matches, so it commits nothing.
    """

    def __init__(
        self,
        config: RsiscopeConfig,
        client: BinanceClient,
        evaluator: AlertEvaluator,
        notifications: NotificationLog,
        *,
        repo: Optional[SQLiteRepository] = None,
        state_store: Optional[JsonFileAlertStateStore] = None,
        metrics: Optional[MetricsSnapshot] = None,
        runtime_config_path: Optional[Path] = None,
        metrics_path: Optional[Path] = None,
    ) -> None:
        self._config = config
        self._client = client
        self._evaluator = evaluator
        self._notifications = notifications
        self._repo = repo
        self._state_store = state_store
        self._runtime_config_path = runtime_config_path
        self._metrics_path = metrics_path
        self._log = get_logger("engine", timeframe=config.dashboard.timeframe)

        ind = config.indicators
        self._indicators = IndicatorEngine(
            rsi_period=ind.rsi_period,
            sma_period=ind.sma_period,
            stoch_length=ind.stoch_length,
            k_smoothing=ind.k_smoothing,
            d_smoothing=ind.d_smoothing,
        )
        self.metrics = metrics or MetricsSnapshot(
            timeframe=config.dashboard.timeframe,
            symbols=len(config.dashboard.symbols),
        )

        self._bundles: Dict[str, SymbolIndicatorBundle] = {}
        self._seq = 0
        self._current: Optional[asyncio.Task] = None
        self._htf_cache: Dict[str, HTFLevels] = {}

    # ---------------- Read side (API) ----------------

    @property
    def config(self) -> RsiscopeConfig:
        return self._config

    @property
    def client(self) -> BinanceClient:
        return self._client

    @property
    def symbols(self) -> List[str]:
        return list(self._config.dashboard.symbols)

    @property
    def notifications(self) -> NotificationLog:
        return self._notifications

    def bundles(self) -> Dict[str, SymbolIndicatorBundle]:
        return dict(self._bundles)

    def bundle(self, symbol: str) -> Optional[SymbolIndicatorBundle]:
        return self._bundles.get(symbol)

    def volume_profile(self, symbol: str) -> Optional[VolumeProfile]:
        b = self._bundles.get(symbol)
        if b is None:
            return None
        return calculate_volume_profile(b.klines, self._config.indicators.volume_profile_buckets)

    def fib_zone(self, symbol: str) -> Optional[FibZone]:
        b = self._bundles.get(symbol)
        if b is None:
            return None
        return calculate_fib_zone(b.klines)

    async def htf_levels(self, symbol: str, refresh: bool = False) -> HTFLevels:
        if refresh or symbol not in self._htf_cache:
            self._htf_cache[symbol] = await self._client.fetch_htf_levels(symbol)
        return self._htf_cache[symbol]

    # ---------------- Ticks ----------------

    def start_tick(self) -> asyncio.Task:
        """Start a new tick, cancelling a still-running one."""
        if self._current is not None and not self._current.done():
            self._current.cancel()
            self.metrics.ticks_superseded += 1
            self._log.warning("tick_superseded", seq=self._seq)

        self._seq += 1
        self._current = asyncio.create_task(self._tick(self._seq))
        return self._current

    async def refresh(self) -> bool:
        """Run one tick to completion. False when it was superseded or failed."""
        task = self.start_tick()
        await asyncio.wait({task})
        if task.cancelled():
            return False
        return task.result()

    async def _fetch_all(self) -> Dict[str, List[Candle]]:
        tf = self._config.dashboard.timeframe
        limit = self._config.indicators.fetch_limit
        symbols = self.symbols
        results = await asyncio.gather(*(self._client.fetch_candles(s, tf, limit) for s in symbols))
        return dict(zip(symbols, results))

    async def _tick(self, seq: int) -> bool:
        with tick_context(seq):
            return await self._run_tick(seq)

    async def _run_tick(self, seq: int) -> bool:
        started = time.perf_counter()
        tf = self._config.dashboard.timeframe
        try:
            candles_by_symbol = await self._fetch_all()

            # Cooperative cancellation: a newer tick owns the state now
            if seq != self._seq:
                self._log.info("tick_discarded", seq=seq, current=self._seq)
                return False

            conditions = get_effective_alert_conditions(self._config, self._runtime_config_path)
            display_limit = self._config.indicators.display_limit
            bundles: Dict[str, SymbolIndicatorBundle] = {}
            events: List[AlertEvent] = []
            empty = 0

            for symbol, candles in candles_by_symbol.items():
                if not candles:
                    empty += 1
                    self._log.warning("empty_fetch", symbol=symbol)
                bundle = self._indicators.compute(candles, limit=display_limit)
                bundles[symbol] = bundle
                events.extend(self._evaluator.evaluate(symbol, tf, bundle, conditions=conditions))

            self._commit(bundles, events, empty, started)
            return True
        except asyncio.CancelledError:
            self._log.info("tick_cancelled", seq=seq)
            raise
        except Exception as e:
            self.metrics.ticks_failed += 1
            self._log.error("tick_failed", seq=seq, error=str(e))
            return False

    def _commit(
        self,
        bundles: Dict[str, SymbolIndicatorBundle],
        events: List[AlertEvent],
        empty: int,
        started: float,
    ) -> None:
        self._bundles = bundles

        for ev in events:
            self._notifications.add(ev)
            self.metrics.record_alert(ev.type.value)

        if self._state_store is not None:
            self._state_store.prune(now_ms(), self._config.alerts.cooldown_ms)

        m = self.metrics
        m.ticks_completed += 1
        m.symbols = len(bundles)
        m.symbols_with_data = sum(1 for b in bundles.values() if b.has_data)
        m.empty_fetches += empty
        m.last_tick_at = utc_now().isoformat()
        m.last_tick_duration_ms = round((time.perf_counter() - started) * 1000, 2)

        self._log.info(
            "tick_completed",
            seq=self._seq,
            symbols=m.symbols,
            with_data=m.symbols_with_data,
            alerts=len(events),
            duration_ms=m.last_tick_duration_ms,
        )
        try:
            write_metrics(m.to_dict(), self._metrics_path)
        except OSError as e:
            self._log.warning("metrics_persist_failed", error=str(e))

    async def run_forever(self) -> None:
        """Start a tick every refresh interval; a slow tick is superseded by the next one."""
        interval = self._config.dashboard.refresh_interval_seconds
        self.metrics.running = True
        self._log.info("engine_started", symbols=self.symbols, interval_sec=interval)
        if self._repo is not None:
            self._repo.log_event(
                ts=utc_now().isoformat(),
                level="INFO",
                type="engine",
                message="Engine started",
                data={"symbols": self.symbols, "timeframe": self._config.dashboard.timeframe},
            )
        try:
            while True:
                self.start_tick()
                await asyncio.sleep(interval)
        finally:
            self.metrics.running = False
            if self._current is not None and not self._current.done():
                self._current.cancel()
            self._log.info("engine_stopped")


def build_engine(config: RsiscopeConfig) -> DashboardEngine:
    """Wire the engine with its production collaborators (Binance, SQLite, JSON alert state)."""
    repo = SQLiteRepository(Path(config.storage.sqlite_path))
    store = JsonFileAlertStateStore(Path(config.alerts.state_path))
    evaluator = AlertEvaluator(store, config.alerts.conditions, cooldown_ms=config.alerts.cooldown_ms)
    client = BinanceClient(config.binance.base_url, request_timeout_sec=config.binance.request_timeout_sec)
    return DashboardEngine(
        config,
        client,
        evaluator,
        NotificationLog(repo, config.storage.notification_limit),
        repo=repo,
        state_store=store,
        metrics_path=Path(config.storage.metrics_path),
    )


async def run_engine(config_path: Path | None = None) -> None:
    config = load_config(config_path)
    configure_logging(config.log_level)
    log = get_logger("engine")
    log.info("config_loaded", symbols=len(config.dashboard.symbols), timeframe=config.dashboard.timeframe)

    engine = build_engine(config)
    client = engine.client
    await client.start()
    try:
        await engine.run_forever()
    except asyncio.CancelledError:
        pass
    finally:
        await client.stop()
