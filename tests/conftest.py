"""Shared test fixtures."""

from pathlib import Path

import pytest

from rsiscope.infrastructure.storage.sqlite_repository import SQLiteRepository
from rsiscope.infrastructure.utils.config import RsiscopeConfig
from rsiscope.services.alerts.state import InMemoryAlertStateStore


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep developer env overrides out of config-dependent tests."""
    for var in ("LOG_LEVEL", "DASHBOARD__TIMEFRAME", "DASHBOARD__SYMBOLS", "BINANCE__BASE_URL"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def store():
    return InMemoryAlertStateStore()


@pytest.fixture
def repo(tmp_path: Path):
    r = SQLiteRepository(tmp_path / "rsiscope.db")
    yield r
    r.close()


@pytest.fixture
def config(tmp_path: Path) -> RsiscopeConfig:
    """Two symbols on 1h with every file path inside tmp_path."""
    return RsiscopeConfig.from_dict(
        {
            "dashboard": {"symbols": ["BTCUSDT", "ETHUSDT"], "timeframe": "1h"},
            "alerts": {"state_path": str(tmp_path / "alert_states.json")},
            "storage": {
                "sqlite_path": str(tmp_path / "rsiscope.db"),
                "metrics_path": str(tmp_path / "metrics.json"),
            },
        }
    )
