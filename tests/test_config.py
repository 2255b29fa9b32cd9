"""Tests for configuration loading, env overrides and runtime alert toggles."""

import pytest

from rsiscope.infrastructure.utils.config import (
    DEFAULT_SYMBOLS,
    RsiscopeConfig,
    get_effective_alert_conditions,
    load_config,
    load_runtime_overrides,
    save_runtime_overrides,
)


class TestDefaults:
    def test_builtin_defaults(self):
        config = RsiscopeConfig.from_dict({})
        assert config.dashboard.symbols == DEFAULT_SYMBOLS
        assert config.dashboard.timeframe == "15m"
        assert config.dashboard.refresh_interval_seconds == 60.0
        assert config.alerts.cooldown_ms == 180_000
        assert config.storage.notification_limit == 50
        assert all(config.alerts.conditions.model_dump().values())

    def test_fetch_limit(self):
        assert RsiscopeConfig.from_dict({}).indicators.fetch_limit == 80 + 14 + 14 + 3 + 3


class TestValidation:
    def test_symbols_normalized(self):
        config = RsiscopeConfig.from_dict({"dashboard": {"symbols": ["btcusdt", " ETHUSDT ", "BTCUSDT"]}})
        assert config.dashboard.symbols == ["BTCUSDT", "ETHUSDT"]

    def test_invalid_timeframe(self):
        with pytest.raises(ValueError):
            RsiscopeConfig.from_dict({"dashboard": {"timeframe": "7m"}})

    def test_invalid_log_level(self):
        with pytest.raises(ValueError):
            RsiscopeConfig.from_dict({"log_level": "chatty"})

    def test_empty_symbols_rejected(self):
        with pytest.raises(ValueError):
            RsiscopeConfig.from_dict({"dashboard": {"symbols": []}})


class TestLoading:
    def test_from_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "dashboard:\n  timeframe: 4h\n  symbols: [SOLUSDT]\nalerts:\n  conditions:\n    extreme: false\n",
            encoding="utf-8",
        )
        config = load_config(path)
        assert config.dashboard.timeframe == "4h"
        assert config.dashboard.symbols == ["SOLUSDT"]
        assert config.alerts.conditions.extreme is False

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            RsiscopeConfig.from_yaml(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("dashboard: [unclosed", encoding="utf-8")
        with pytest.raises(ValueError):
            RsiscopeConfig.from_yaml(path)

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("DASHBOARD__SYMBOLS", "adausdt,linkusdt")
        monkeypatch.setenv("DASHBOARD__TIMEFRAME", "1d")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        config = RsiscopeConfig.from_dict({})
        assert config.dashboard.symbols == ["ADAUSDT", "LINKUSDT"]
        assert config.dashboard.timeframe == "1d"
        assert config.log_level == "DEBUG"


class TestRuntimeOverrides:
    def test_missing_file_is_empty(self, tmp_path):
        assert load_runtime_overrides(tmp_path / "runtime.json") == {}

    def test_toggles_win_over_yaml(self, tmp_path):
        path = tmp_path / "runtime.json"
        config = RsiscopeConfig.from_dict({"alerts": {"conditions": {"divergence": False}}})

        save_runtime_overrides({"alert_conditions": {"extreme": False}}, path)
        save_runtime_overrides({"alert_conditions": {"divergence": True, "breakout_volume": None}}, path)

        effective = get_effective_alert_conditions(config, path)
        assert effective.extreme is False
        assert effective.divergence is True
        assert effective.breakout_volume is True
        assert load_runtime_overrides(path) == {"alert_conditions": {"extreme": False, "divergence": True}}
