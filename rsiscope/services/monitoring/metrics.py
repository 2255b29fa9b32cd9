"""In-memory metrics snapshot for the API + console."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional


@dataclass
class MetricsSnapshot:
    running: bool = False
    timeframe: str = ""
    symbols: int = 0
    ticks_completed: int = 0
    ticks_superseded: int = 0
    ticks_failed: int = 0
    last_tick_at: Optional[str] = None
    last_tick_duration_ms: Optional[float] = None
    symbols_with_data: int = 0
    empty_fetches: int = 0
    alerts_fired: int = 0
    alerts_by_kind: Dict[str, int] = field(default_factory=dict)

    def record_alert(self, kind: str) -> None:
        self.alerts_fired += 1
        self.alerts_by_kind[kind] = self.alerts_by_kind.get(kind, 0) + 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
