"""Alert and notification domain models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple


class AlertKind(str, Enum):
    OVERBOUGHT = "overbought"
    OVERSOLD = "oversold"
    BULLISH_CROSS = "bullish-cross"
    DEATH_CROSS = "death-cross"
    BULLISH_DIVERGENCE = "bullish-divergence"
    BEARISH_DIVERGENCE = "bearish-divergence"
    STOCH_RECOVERY = "stoch-recovery"
    STOCH_BULLISH_CROSS = "stoch-bullish-cross"
    PRICE_GOLDEN_POCKET = "price-golden-pocket"
    GP_REVERSAL_VOLUME = "gp-reversal-volume"
    FIB_786_REVERSAL = "fib-786-reversal"
    BREAKOUT_VOLUME = "breakout-volume"
    CAPITULATION_VOLUME = "capitulation-volume"
    ACCUMULATION_VOLUME = "accumulation-volume"


@dataclass(frozen=True)
class AlertEvent:
    symbol: str
    timeframe: str
    type: AlertKind
    rsi: Optional[float] = None
    body: Optional[str] = None


@dataclass(frozen=True)
class Notification:
    id: int
    created_at: str         # ISO UTC
    symbol: str
    timeframe: str
    type: AlertKind
    read: bool = False
    rsi: Optional[float] = None
    body: Optional[str] = None

    def to_event(self) -> AlertEvent:
        return AlertEvent(symbol=self.symbol, timeframe=self.timeframe, type=self.type, rsi=self.rsi, body=self.body)


@dataclass(frozen=True)
class NotificationDetails:
    icon: str
    title: str
    body: str
    accent_color: str
    icon_color: str


# kind -> (icon, default body, accent color, icon color)
_DISPLAY: Dict[AlertKind, Tuple[str, str, str, str]] = {
    AlertKind.OVERBOUGHT: ("fa-arrow-trend-up", "Overbought", "bg-red-500", "text-red-500"),
    AlertKind.OVERSOLD: ("fa-arrow-trend-down", "Oversold", "bg-green-500", "text-green-500"),
    AlertKind.BULLISH_CROSS: ("fa-angles-up", "Bullish Cross: RSI over SMA.", "bg-sky-500", "text-sky-500"),
    AlertKind.DEATH_CROSS: ("fa-angles-down", "Death Cross: RSI under SMA.", "bg-purple-500", "text-purple-500"),
    AlertKind.BULLISH_DIVERGENCE: ("fa-chart-line", "Bullish Divergence detected.", "bg-green-600", "text-green-500"),
    AlertKind.BEARISH_DIVERGENCE: ("fa-chart-line", "Bearish Divergence detected.", "bg-red-600", "text-red-500"),
    AlertKind.STOCH_RECOVERY: ("fa-level-up-alt", "Stoch Recovery from Zero", "bg-cyan-500", "text-cyan-500"),
    AlertKind.STOCH_BULLISH_CROSS: ("fa-signal", "Stoch Bullish Cross after Recovery", "bg-blue-500", "text-blue-500"),
    AlertKind.PRICE_GOLDEN_POCKET: ("fa-magnet", "Price in Golden Pocket", "bg-amber-500", "text-amber-500"),
    AlertKind.GP_REVERSAL_VOLUME: ("fa-chart-line", "GP Reversal with rising volume", "bg-amber-600", "text-amber-600"),
    AlertKind.FIB_786_REVERSAL: ("fa-wave-square", "Reversal from 0.786 Fib Zone", "bg-fuchsia-500", "text-fuchsia-500"),
    AlertKind.BREAKOUT_VOLUME: ("fa-bolt", "Breakout with Volume Surge", "bg-yellow-500", "text-yellow-500"),
    AlertKind.CAPITULATION_VOLUME: ("fa-skull-crossbones", "Capitulation Volume Detected", "bg-slate-500", "text-slate-500"),
    AlertKind.ACCUMULATION_VOLUME: ("fa-box-archive", "Accumulation Volume Detected", "bg-indigo-500", "text-indigo-500"),
}


def notification_details(event: AlertEvent) -> NotificationDetails:
    """Display metadata for an alert (toast / notification panel)."""
    icon, body, accent, icon_color = _DISPLAY[event.type]
    if event.type in (AlertKind.OVERBOUGHT, AlertKind.OVERSOLD) and event.rsi is not None:
        body = f"{body} at {event.rsi:.2f}"
    elif event.body:
        body = event.body
    return NotificationDetails(
        icon=icon,
        title=f"{event.symbol} ({event.timeframe})",
        body=body,
        accent_color=accent,
        icon_color=icon_color,
    )
