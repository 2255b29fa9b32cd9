# rsiscope/api/state.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from rsiscope.app.engine import DashboardEngine


@dataclass
class AppState:
    engine: DashboardEngine
    runtime_config_path: Optional[Path] = None


_state: Optional[AppState] = None


def set_state(state: Optional[AppState]) -> None:
    global _state
    _state = state


def get_state() -> AppState:
    if _state is None:
        raise RuntimeError("API state not initialized. Start engine first (or init state).")
    return _state
