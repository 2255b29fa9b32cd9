"""Configuration management for the dashboard engine.

Rules:
- YAML provides defaults (symbols, timeframe, indicator periods, alert toggles).
- Environment variables / .env override a few key settings on top of YAML.
- Alert toggles changed from the API live in data/runtime_config.json and win over YAML.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rsiscope.models.market_models import Timeframe


DEFAULT_SYMBOLS: List[str] = [
    "BTCUSDT",
    "ETHUSDT",
    "PAXGUSDT",
    "SOLUSDT",
    "BNBUSDT",
    "XRPUSDT",
    "DOGEUSDT",
    "AVAXUSDT",
    "SUIUSDT",
    "ADAUSDT",
    "LINKUSDT",
    "TRXUSDT",
]


VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _normalize_base_url(v: Any) -> str:
    v = str(v).strip().rstrip("/")
    if not v.startswith(("http://", "https://")):
        raise ValueError("base_url must start with http:// or https://")
    return v


def _normalize_timeframe(v: Any) -> str:
    try:
        return Timeframe(str(v).strip()).value
    except ValueError:
        raise ValueError(f"timeframe must be one of: {[t.value for t in Timeframe]}")


def _normalize_symbols(v: Any) -> List[str]:
    if isinstance(v, str):
        v = v.split(",")
    if not isinstance(v, (list, tuple)):
        return list(DEFAULT_SYMBOLS)
    out: List[str] = []
    for x in v:
        s = str(x).strip().upper() if x else ""
        if s and s not in out:
            out.append(s)
    if not out:
        raise ValueError("symbols must contain at least one symbol")
    return out


def _normalize_log_level(v: Any) -> str:
    if str(v).upper() not in VALID_LOG_LEVELS:
        raise ValueError(f"Log level must be one of: {sorted(VALID_LOG_LEVELS)}")
    return str(v).upper()


class BinanceConfig(BaseModel):
    """Public Binance REST endpoint (no credentials needed for klines)."""

    base_url: str = Field(default="https://api.binance.com", description="Binance REST base URL")
    request_timeout_sec: float = Field(default=10.0, gt=0, le=120)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        return _normalize_base_url(v)


class IndicatorConfig(BaseModel):
    """Indicator periods and display window."""

    rsi_period: int = Field(default=14, ge=2, le=200)
    sma_period: int = Field(default=14, ge=1, le=200)
    stoch_length: int = Field(default=14, ge=1, le=200)
    k_smoothing: int = Field(default=3, ge=1, le=50)
    d_smoothing: int = Field(default=3, ge=1, le=50)
    display_limit: int = Field(default=80, ge=10, le=1000)
    volume_profile_buckets: int = Field(default=50, ge=5, le=500)

    @property
    def fetch_limit(self) -> int:
        """Candles to request so every series still has display_limit points after warm-up."""
        return self.display_limit + self.rsi_period + self.stoch_length + self.k_smoothing + self.d_smoothing


class AlertConditions(BaseModel):
    """Per-alert-type enable flags. The evaluator reads these, never writes them."""

    extreme: bool = True
    rsi_sma_cross: bool = True
    divergence: bool = True
    stoch_recovery: bool = True
    stoch_cross: bool = True
    price_golden_pocket: bool = True
    gp_reversal_volume: bool = True
    fib786_reversal: bool = True
    breakout_volume: bool = True
    capitulation_volume: bool = True
    accumulation_volume: bool = True


class AlertsConfig(BaseModel):
    cooldown_ms: int = Field(default=180_000, ge=0, le=86_400_000)
    state_path: str = Field(default="data/alert_states.json")
    conditions: AlertConditions = Field(default_factory=AlertConditions)


class DashboardConfig(BaseModel):
    symbols: List[str] = Field(default_factory=lambda: list(DEFAULT_SYMBOLS))
    timeframe: str = Field(default="15m")
    refresh_interval_seconds: float = Field(default=60.0, ge=5.0, le=3600.0)

    @field_validator("timeframe")
    @classmethod
    def validate_timeframe(cls, v: str) -> str:
        return _normalize_timeframe(v)

    @field_validator("symbols", mode="before")
    @classmethod
    def validate_symbols(cls, v: Any) -> List[str]:
        return _normalize_symbols(v)


class StorageConfig(BaseModel):
    sqlite_path: str = Field(default="data/rsiscope.db")
    notification_limit: int = Field(default=50, ge=1, le=10_000)
    metrics_path: str = Field(default="data/metrics.json")


class APIConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1024, le=65535)
    cors_origins: List[str] = Field(default=["http://localhost:3000", "http://localhost:5173"])


class RsiscopeConfig(BaseSettings):
    """Main configuration class.

    We parse YAML as base config, then re-apply a handful of env overrides.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RSISCOPE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = Field(default="INFO")

    binance: BinanceConfig = Field(default_factory=BinanceConfig)
    dashboard: DashboardConfig = Field(default_factory=DashboardConfig)
    indicators: IndicatorConfig = Field(default_factory=IndicatorConfig)
    alerts: AlertsConfig = Field(default_factory=AlertsConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    api: APIConfig = Field(default_factory=APIConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        return _normalize_log_level(v)

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "RsiscopeConfig":
        """Load configuration from YAML, then apply env overrides on top."""
        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        try:
            with open(yaml_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RsiscopeConfig":
        try:
            base = cls.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Configuration validation error: {e}")
        return _apply_env_overrides(base)


def _apply_env_overrides(base: RsiscopeConfig) -> RsiscopeConfig:
    if os.getenv("LOG_LEVEL"):
        base.log_level = _normalize_log_level(os.getenv("LOG_LEVEL", base.log_level))

    if os.getenv("DASHBOARD__TIMEFRAME"):
        base.dashboard.timeframe = _normalize_timeframe(os.getenv("DASHBOARD__TIMEFRAME", ""))

    symbols_env = os.getenv("DASHBOARD__SYMBOLS")
    if symbols_env:
        base.dashboard.symbols = _normalize_symbols(symbols_env)

    if os.getenv("BINANCE__BASE_URL"):
        base.binance.base_url = _normalize_base_url(os.getenv("BINANCE__BASE_URL", ""))

    return base


def load_config(config_path: Optional[Path] = None) -> RsiscopeConfig:
    """Load configuration from YAML + .env. Falls back to built-in defaults when no file exists."""
    load_dotenv(dotenv_path=Path(".env"))

    if config_path is None:
        possible_paths = [Path("config/default.yaml"), Path("config/config.yaml"), Path("config.yaml")]
        for path in possible_paths:
            if path.exists():
                config_path = path
                break
        else:
            return RsiscopeConfig.from_dict({})

    return RsiscopeConfig.from_yaml(config_path)


# Global config instance
_config: Optional[RsiscopeConfig] = None


def get_config() -> RsiscopeConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config(config_path: Optional[Path] = None) -> RsiscopeConfig:
    global _config
    _config = load_config(config_path)
    return _config


# --------- Runtime overrides (API can toggle alert conditions without editing YAML) ---------
RUNTIME_CONFIG_PATH = Path("data/runtime_config.json")


def load_runtime_overrides(path: Optional[Path] = None) -> Dict[str, Any]:
    """Read runtime_config.json. Missing or unreadable file -> {}."""
    path = path or RUNTIME_CONFIG_PATH
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}
    except (json.JSONDecodeError, OSError):
        return {}


def save_runtime_overrides(overrides: Dict[str, Any], path: Optional[Path] = None) -> None:
    """Merge overrides into runtime_config.json (None values are ignored)."""
    path = path or RUNTIME_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    current = load_runtime_overrides(path)
    for k, v in overrides.items():
        if v is None:
            continue
        if isinstance(v, dict) and isinstance(current.get(k), dict):
            current[k].update({ik: iv for ik, iv in v.items() if iv is not None})
        else:
            current[k] = v
    with open(path, "w", encoding="utf-8") as f:
        json.dump(current, f, indent=2)


def get_effective_alert_conditions(config: RsiscopeConfig, path: Optional[Path] = None) -> AlertConditions:
    """Alert toggles: runtime_config.json takes priority over YAML, key by key."""
    overrides = load_runtime_overrides(path).get("alert_conditions")
    base = config.alerts.conditions.model_dump()
    if isinstance(overrides, dict):
        base.update({k: bool(v) for k, v in overrides.items() if k in base})
    return AlertConditions(**base)
