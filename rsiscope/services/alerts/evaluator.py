"""Alert evaluator.

Runs once per symbol per refresh tick over the latest SymbolIndicatorBundle and
emits AlertEvents for the rules whose trigger conditions just transitioned.

State lives in an injected AlertStateStore:
- cooldown stamps (epoch ms) under `symbol|timeframe|<alert kind>`
- arming flags (bool) under `symbol|timeframe|stoch-recovery-armed` and `symbol|timeframe|in-gp`

Each rule is independent: missing data skips only that rule, and an unexpected
error in one rule is logged without stopping the others.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Union

from rsiscope.infrastructure.logging.logging import get_logger
from rsiscope.infrastructure.utils.config import AlertConditions
from rsiscope.infrastructure.utils.timeutils import now_ms
from rsiscope.models.alert_models import AlertEvent, AlertKind
from rsiscope.models.market_models import Candle, FibZone, SymbolIndicatorBundle, Timeframe
from rsiscope.services.alerts.state import (
    IN_GOLDEN_POCKET,
    STOCH_RECOVERY_ARMED,
    AlertStateStore,
    ArmState,
    alert_key,
)
from rsiscope.services.market.divergence import detect_bearish_divergence, detect_bullish_divergence
from rsiscope.services.market.fibonacci import calculate_fib_zone


ALERT_COOLDOWN_MS = 180_000

EXTREME_TIMEFRAMES: FrozenSet[str] = frozenset({"15m", "1h", "2h", "4h", "8h", "1d", "1w"})
CROSS_TIMEFRAMES: FrozenSet[str] = frozenset({"15m", "1h", "2h", "4h", "8h", "1d", "3d"})
DIVERGENCE_TIMEFRAMES: FrozenSet[str] = frozenset({"1h", "4h", "8h", "1d", "3d"})
STOCH_TIMEFRAMES: FrozenSet[str] = frozenset({"1h", "2h", "4h", "8h", "1d", "3d"})
ADVANCED_TIMEFRAMES: FrozenSet[str] = frozenset({"1h", "4h", "1d", "3d"})

OVERBOUGHT = 70.0
OVERSOLD = 30.0
STOCH_RECOVERY_CEILING = 5.0
FIB_786_BAND = 0.005
VOLUME_LOOKBACK = 20
BREAKOUT_VOLUME_MULT = 2.0
CAPITULATION_VOLUME_MULT = 3.0
CAPITULATION_BODY_MULT = 1.5
ACCUMULATION_MAX_RANGE = 0.10
ACCUMULATION_RATIO = 1.75


@dataclass
class _Pass:
    """Per-(symbol, timeframe) context for one evaluation pass."""

    symbol: str
    timeframe: str
    bundle: SymbolIndicatorBundle
    now: int
    store: AlertStateStore
    cooldown_ms: int
    events: List[AlertEvent] = field(default_factory=list)
    armed_at_start: Dict[str, ArmState] = field(default_factory=dict)
    _fib: Optional[FibZone] = None

    def __post_init__(self) -> None:
        # An arming written during this pass is only seen by the next one
        for flag in (STOCH_RECOVERY_ARMED, IN_GOLDEN_POCKET):
            self.armed_at_start[flag] = ArmState.from_value(self.store.get(self.key(flag)))

    @property
    def klines(self) -> List[Candle]:
        return self.bundle.klines

    @property
    def fib(self) -> FibZone:
        if self._fib is None:
            self._fib = calculate_fib_zone(self.klines)
        return self._fib

    def key(self, rule: str) -> str:
        return alert_key(self.symbol, self.timeframe, rule)

    def can_fire(self, kind: AlertKind) -> bool:
        last = self.store.get(self.key(kind.value))
        if last is None or isinstance(last, bool):
            return True
        return self.now - int(last) >= self.cooldown_ms

    def fire(self, kind: AlertKind, rsi: Optional[float] = None, body: Optional[str] = None) -> None:
        self.events.append(AlertEvent(symbol=self.symbol, timeframe=self.timeframe, type=kind, rsi=rsi, body=body))
        self.store.set(self.key(kind.value), self.now)

    def arm_state(self, flag: str) -> ArmState:
        return self.armed_at_start[flag]

    def set_arm_state(self, flag: str, state: ArmState) -> None:
        self.store.set(self.key(flag), state.to_value())


def _average_volume(klines: Sequence[Candle], period: int) -> float:
    if len(klines) < period:
        return 0.0
    window = klines[-period:]
    return sum(k.volume for k in window) / len(window)


class AlertEvaluator:
    def __init__(
        self,
        store: AlertStateStore,
        conditions: Optional[AlertConditions] = None,
        cooldown_ms: int = ALERT_COOLDOWN_MS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._conditions = conditions or AlertConditions()
        self._cooldown_ms = cooldown_ms
        self._clock = clock
        self._log = get_logger("alert_evaluator")

    @property
    def conditions(self) -> AlertConditions:
        return self._conditions

    @conditions.setter
    def conditions(self, value: AlertConditions) -> None:
        self._conditions = value

    def evaluate(
        self,
        symbol: str,
        timeframe: Union[str, Timeframe],
        bundle: SymbolIndicatorBundle,
        conditions: Optional[AlertConditions] = None,
        now: Optional[int] = None,
    ) -> List[AlertEvent]:
        """Evaluate every enabled rule for one symbol. Never raises on data problems."""
        tf = timeframe.value if isinstance(timeframe, Timeframe) else str(timeframe)
        cond = conditions or self._conditions

        if (
            len(bundle.rsi) < 2
            or len(bundle.sma) < 2
            or len(bundle.stoch_k) < 2
            or len(bundle.stoch_d) < 2
            or len(bundle.klines) < 2
        ):
            return []

        ctx = _Pass(
            symbol=symbol,
            timeframe=tf,
            bundle=bundle,
            now=self._clock() if now is None else now,
            store=self._store,
            cooldown_ms=self._cooldown_ms,
        )

        rules = [
            ("extreme", cond.extreme, EXTREME_TIMEFRAMES, self._check_extreme),
            ("rsi_sma_cross", cond.rsi_sma_cross, CROSS_TIMEFRAMES, self._check_rsi_sma_cross),
            ("divergence", cond.divergence, DIVERGENCE_TIMEFRAMES, self._check_divergence),
            ("stoch_recovery", cond.stoch_recovery, STOCH_TIMEFRAMES, self._check_stoch_recovery),
            ("stoch_cross", cond.stoch_cross, STOCH_TIMEFRAMES, self._check_stoch_cross),
            ("price_golden_pocket", cond.price_golden_pocket, ADVANCED_TIMEFRAMES, self._check_price_golden_pocket),
            ("gp_reversal_volume", cond.gp_reversal_volume, ADVANCED_TIMEFRAMES, self._check_gp_reversal),
            ("fib786_reversal", cond.fib786_reversal, ADVANCED_TIMEFRAMES, self._check_fib786_reversal),
            ("breakout_volume", cond.breakout_volume, ADVANCED_TIMEFRAMES, self._check_breakout_volume),
            ("capitulation_volume", cond.capitulation_volume, ADVANCED_TIMEFRAMES, self._check_capitulation_volume),
            ("accumulation_volume", cond.accumulation_volume, ADVANCED_TIMEFRAMES, self._check_accumulation_volume),
        ]

        for name, enabled, timeframes, check in rules:
            if not enabled or tf not in timeframes:
                continue
            try:
                check(ctx)
            except Exception as e:
                self._log.warning("alert_rule_error", rule=name, symbol=symbol, timeframe=tf, error=str(e))

        for ev in ctx.events:
            self._log.info("alert_fired", symbol=symbol, timeframe=tf, type=ev.type.value, rsi=ev.rsi)
        return ctx.events

    # ---------------- Rules ----------------

    @staticmethod
    def _check_extreme(ctx: _Pass) -> None:
        prev, last = ctx.bundle.rsi[-2], ctx.bundle.rsi[-1]
        if last.value > OVERBOUGHT and prev.value <= OVERBOUGHT and ctx.can_fire(AlertKind.OVERBOUGHT):
            ctx.fire(AlertKind.OVERBOUGHT, rsi=last.value)
        if last.value < OVERSOLD and prev.value >= OVERSOLD and ctx.can_fire(AlertKind.OVERSOLD):
            ctx.fire(AlertKind.OVERSOLD, rsi=last.value)

    @staticmethod
    def _check_rsi_sma_cross(ctx: _Pass) -> None:
        prev_rsi, last_rsi = ctx.bundle.rsi[-2], ctx.bundle.rsi[-1]
        prev_sma, last_sma = ctx.bundle.sma[-2], ctx.bundle.sma[-1]
        if last_rsi.value > last_sma.value and prev_rsi.value <= prev_sma.value and ctx.can_fire(AlertKind.BULLISH_CROSS):
            ctx.fire(AlertKind.BULLISH_CROSS, rsi=last_rsi.value)
        if last_rsi.value < last_sma.value and prev_rsi.value >= prev_sma.value and ctx.can_fire(AlertKind.DEATH_CROSS):
            ctx.fire(AlertKind.DEATH_CROSS, rsi=last_rsi.value)

    @staticmethod
    def _check_divergence(ctx: _Pass) -> None:
        last_rsi = ctx.bundle.rsi[-1]

        # Only a divergence confirmed on the latest RSI point counts
        bullish = detect_bullish_divergence(ctx.klines, ctx.bundle.rsi)
        if bullish and bullish.pivot_time == last_rsi.time and ctx.can_fire(AlertKind.BULLISH_DIVERGENCE):
            ctx.fire(AlertKind.BULLISH_DIVERGENCE, rsi=last_rsi.value)

        bearish = detect_bearish_divergence(ctx.klines, ctx.bundle.rsi)
        if bearish and bearish.pivot_time == last_rsi.time and ctx.can_fire(AlertKind.BEARISH_DIVERGENCE):
            ctx.fire(AlertKind.BEARISH_DIVERGENCE, rsi=last_rsi.value)

    @staticmethod
    def _check_stoch_recovery(ctx: _Pass) -> None:
        prev_k, last_k = ctx.bundle.stoch_k[-2], ctx.bundle.stoch_k[-1]
        if prev_k.value == 0 and 0 < last_k.value < STOCH_RECOVERY_CEILING and ctx.can_fire(AlertKind.STOCH_RECOVERY):
            ctx.fire(AlertKind.STOCH_RECOVERY)
            ctx.set_arm_state(STOCH_RECOVERY_ARMED, ArmState.ARMED)

    @staticmethod
    def _check_stoch_cross(ctx: _Pass) -> None:
        if ctx.arm_state(STOCH_RECOVERY_ARMED) is not ArmState.ARMED:
            return
        prev_k, last_k = ctx.bundle.stoch_k[-2], ctx.bundle.stoch_k[-1]
        prev_d, last_d = ctx.bundle.stoch_d[-2], ctx.bundle.stoch_d[-1]
        if last_k.value > last_d.value and prev_k.value <= prev_d.value and ctx.can_fire(AlertKind.STOCH_BULLISH_CROSS):
            ctx.fire(AlertKind.STOCH_BULLISH_CROSS)
            ctx.set_arm_state(STOCH_RECOVERY_ARMED, ArmState.IDLE)

    @staticmethod
    def _check_price_golden_pocket(ctx: _Pass) -> None:
        gp = ctx.fib.gp
        if gp is None:
            return
        is_in = gp.contains(ctx.klines[-1].close)
        was_in = gp.contains(ctx.klines[-2].close)
        if is_in and not was_in and ctx.can_fire(AlertKind.PRICE_GOLDEN_POCKET):
            ctx.fire(AlertKind.PRICE_GOLDEN_POCKET)
            ctx.set_arm_state(IN_GOLDEN_POCKET, ArmState.ARMED)

    @staticmethod
    def _check_gp_reversal(ctx: _Pass) -> None:
        if ctx.arm_state(IN_GOLDEN_POCKET) is not ArmState.ARMED:
            return

        klines = ctx.klines
        # GP as it stood one candle ago
        past_gp = calculate_fib_zone(klines, end=len(klines) - 1).gp
        if past_gp is None:
            return

        was_in = past_gp.contains(klines[-2].close)
        is_out = not past_gp.contains(klines[-1].close)
        if not (was_in and is_out and len(klines) > 4):
            return

        v0, v1, v2, v3 = klines[-1].volume, klines[-2].volume, klines[-3].volume, klines[-4].volume
        if v0 > v1 > v2 > v3 and ctx.can_fire(AlertKind.GP_REVERSAL_VOLUME):
            ctx.fire(AlertKind.GP_REVERSAL_VOLUME)
            ctx.set_arm_state(IN_GOLDEN_POCKET, ArmState.IDLE)

    @staticmethod
    def _check_fib786_reversal(ctx: _Pass) -> None:
        level = ctx.fib.fib786
        if not level:
            return
        zone_top = level * (1 + FIB_786_BAND)
        zone_bottom = level * (1 - FIB_786_BAND)
        prev, last = ctx.klines[-2], ctx.klines[-1]

        was_in = prev.low <= zone_top and prev.high >= zone_bottom
        now_out = last.low > zone_top or last.high < zone_bottom
        if was_in and now_out and ctx.can_fire(AlertKind.FIB_786_REVERSAL):
            ctx.fire(AlertKind.FIB_786_REVERSAL)

    @staticmethod
    def _check_breakout_volume(ctx: _Pass) -> None:
        klines = ctx.klines
        if len(klines) <= VOLUME_LOOKBACK:
            return
        lookback = klines[-(VOLUME_LOOKBACK + 1):-1]
        swing_high = max(k.high for k in lookback)
        avg_volume = _average_volume(lookback, VOLUME_LOOKBACK)
        last = klines[-1]
        if last.close > swing_high and last.volume > avg_volume * BREAKOUT_VOLUME_MULT and ctx.can_fire(AlertKind.BREAKOUT_VOLUME):
            ctx.fire(AlertKind.BREAKOUT_VOLUME)

    @staticmethod
    def _check_capitulation_volume(ctx: _Pass) -> None:
        klines = ctx.klines
        if len(klines) <= VOLUME_LOOKBACK or not ctx.bundle.price_sma:
            return
        lookback = klines[-(VOLUME_LOOKBACK + 1):-1]
        avg_volume = _average_volume(lookback, VOLUME_LOOKBACK)
        avg_body = sum(abs(k.close - k.open) for k in lookback) / len(lookback)
        price_sma = ctx.bundle.price_sma[-1].value
        last = klines[-1]

        is_red = last.close < last.open
        is_large_body = abs(last.close - last.open) > avg_body * CAPITULATION_BODY_MULT
        is_high_volume = last.volume > avg_volume * CAPITULATION_VOLUME_MULT
        is_below_sma = last.close < price_sma
        if is_red and is_large_body and is_high_volume and is_below_sma and ctx.can_fire(AlertKind.CAPITULATION_VOLUME):
            ctx.fire(AlertKind.CAPITULATION_VOLUME)

    @staticmethod
    def _check_accumulation_volume(ctx: _Pass) -> None:
        klines = ctx.klines
        if len(klines) < VOLUME_LOOKBACK:
            return
        window = klines[-VOLUME_LOOKBACK:]
        price_range = max(k.high for k in window) - min(k.low for k in window)
        avg_price = sum(k.close for k in window) / len(window)
        if avg_price <= 0 or price_range / avg_price >= ACCUMULATION_MAX_RANGE:
            return

        ups = [k.volume for k in window if k.close > k.open]
        downs = [k.volume for k in window if k.close < k.open]
        avg_up = sum(ups) / len(ups) if ups else 0.0
        avg_down = sum(downs) / len(downs) if downs else 0.0
        if avg_down <= 0:
            return

        ratio = avg_up / avg_down
        if ratio > ACCUMULATION_RATIO and ctx.can_fire(AlertKind.ACCUMULATION_VOLUME):
            ctx.fire(
                AlertKind.ACCUMULATION_VOLUME,
                body=f"Accumulation: up-candle volume {ratio:.2f}x down-candle volume",
            )
