"""Alert state: cooldown stamps and arming flags keyed by `symbol|timeframe|rule`."""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

from rsiscope.infrastructure.logging.logging import get_logger


StateValue = Union[int, bool, None]

STOCH_RECOVERY_ARMED = "stoch-recovery-armed"
IN_GOLDEN_POCKET = "in-gp"


def alert_key(symbol: str, timeframe: str, rule: str) -> str:
    return f"{symbol}|{timeframe}|{rule}"


class ArmState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"

    @classmethod
    def from_value(cls, value: StateValue) -> "ArmState":
        return cls.ARMED if value is True else cls.IDLE

    def to_value(self) -> bool:
        return self is ArmState.ARMED


class AlertStateStore(Protocol):
    def get(self, key: str) -> StateValue: ...

    def set(self, key: str, value: StateValue) -> None: ...


class InMemoryAlertStateStore:
    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> StateValue:
        return self._data.get(key)

    def set(self, key: str, value: StateValue) -> None:
        self._data[key] = value

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._data)


class JsonFileAlertStateStore:
    """Dict-backed store persisted to a JSON file on every write (tmp file + atomic replace)."""

    def __init__(self, state_path: Path) -> None:
        self._path = state_path
        self._data: Dict[str, Any] = {}
        self._log = get_logger("alert_state")
        self.load()

    def load(self) -> None:
        if not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            self._log.warning("alert_state_load_failed", path=str(self._path), error=str(e))
            return
        if isinstance(data, dict):
            self._data = data

    def save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        tmp.write_text(json.dumps(self._data, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(self._path)

    def get(self, key: str) -> StateValue:
        return self._data.get(key)

    def set(self, key: str, value: StateValue) -> None:
        self._data[key] = value
        self.save()

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._data)

    def prune(self, now: int, max_age_ms: int) -> int:
        """Drop cooldown stamps older than max_age_ms. Arming flags are kept. Returns the number removed."""
        stale = [
            k
            for k, v in self._data.items()
            if isinstance(v, (int, float)) and not isinstance(v, bool) and now - v >= max_age_ms
        ]
        for k in stale:
            del self._data[k]
        if stale:
            self.save()
        return len(stale)
