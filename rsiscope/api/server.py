# rsiscope/api/server.py
from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from rsiscope.api.state import AppState, get_state, set_state
from rsiscope.app.engine import DashboardEngine, build_engine
from rsiscope.infrastructure.logging.logging import configure_logging, get_logger
from rsiscope.infrastructure.utils.config import (
    RUNTIME_CONFIG_PATH,
    RsiscopeConfig,
    get_effective_alert_conditions,
    load_config,
    save_runtime_overrides,
)
from rsiscope.models.alert_models import notification_details


JsonDict = Dict[str, Any]


# --------- Schemas ---------
class AlertConditionsPayload(BaseModel):
    """Partial update: only the provided toggles change (applies from the next tick)."""

    extreme: Optional[bool] = None
    rsi_sma_cross: Optional[bool] = None
    divergence: Optional[bool] = None
    stoch_recovery: Optional[bool] = None
    stoch_cross: Optional[bool] = None
    price_golden_pocket: Optional[bool] = None
    gp_reversal_volume: Optional[bool] = None
    fib786_reversal: Optional[bool] = None
    breakout_volume: Optional[bool] = None
    capitulation_volume: Optional[bool] = None
    accumulation_volume: Optional[bool] = None


# --------- Helpers ---------
def _engine() -> DashboardEngine:
    return get_state().engine


def _known_symbol(symbol: str) -> str:
    sym = symbol.strip().upper()
    if sym not in _engine().symbols:
        raise HTTPException(status_code=404, detail=f"Unknown symbol: {sym}")
    return sym


def _summary(symbol: str, engine: DashboardEngine) -> JsonDict:
    b = engine.bundle(symbol)
    if b is None:
        return {"symbol": symbol, "has_data": False, "price": None, "volume": None, "rsi": None, "stoch_k": None}
    return {
        "symbol": symbol,
        "has_data": b.has_data,
        "price": b.price,
        "volume": b.volume,
        "rsi": b.rsi[-1].value if b.rsi else None,
        "stoch_k": b.stoch_k[-1].value if b.stoch_k else None,
    }


def create_app(config: Optional[RsiscopeConfig] = None, start_engine: bool = True) -> FastAPI:
    config = config or load_config()
    log = get_logger("api")

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        task: Optional[asyncio.Task] = None
        engine: Optional[DashboardEngine] = None
        if start_engine:
            configure_logging(config.log_level)
            engine = build_engine(config)
            await engine.client.start()
            set_state(AppState(engine=engine, runtime_config_path=RUNTIME_CONFIG_PATH))
            task = asyncio.create_task(engine.run_forever())
            log.info("api_started", host=config.api.host, port=config.api.port)
        try:
            yield
        finally:
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            if engine is not None:
                await engine.client.stop()
                set_state(None)

    app = FastAPI(title="RSI Scope API", version="0.1.0", lifespan=lifespan)

    # CORS (frontend)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/metrics")
    def metrics():
        return _engine().metrics.to_dict()

    @app.get("/symbols")
    def symbols() -> List[JsonDict]:
        engine = _engine()
        return [_summary(s, engine) for s in engine.symbols]

    @app.get("/symbols/{symbol}")
    def symbol_bundle(symbol: str):
        sym = _known_symbol(symbol)
        b = _engine().bundle(sym)
        if b is None:
            raise HTTPException(status_code=404, detail=f"No data yet for {sym}")
        return {"symbol": sym, "timeframe": _engine().config.dashboard.timeframe, **asdict(b)}

    @app.get("/symbols/{symbol}/volume-profile")
    def volume_profile(symbol: str):
        sym = _known_symbol(symbol)
        profile = _engine().volume_profile(sym)
        return {"symbol": sym, "profile": asdict(profile) if profile is not None else None}

    @app.get("/symbols/{symbol}/fib")
    def fib(symbol: str):
        sym = _known_symbol(symbol)
        zone = _engine().fib_zone(sym)
        return {"symbol": sym, "fib": asdict(zone) if zone is not None else None}

    @app.get("/symbols/{symbol}/htf-levels")
    async def htf_levels(symbol: str, refresh: bool = False):
        sym = _known_symbol(symbol)
        levels = await _engine().htf_levels(sym, refresh=refresh)
        return {"symbol": sym, **asdict(levels)}

    @app.get("/notifications")
    def notifications():
        log_ = _engine().notifications
        items = []
        for n in log_.list():
            d = asdict(n)
            d["display"] = asdict(notification_details(n.to_event()))
            items.append(d)
        return {"unread": log_.unread_count(), "items": items}

    @app.post("/notifications/read")
    def mark_notifications_read():
        log_ = _engine().notifications
        log_.mark_all_read()
        return {"unread": log_.unread_count()}

    @app.delete("/notifications")
    def clear_notifications():
        _engine().notifications.clear()
        return {"cleared": True}

    @app.get("/settings/alerts")
    def get_alert_settings():
        s = get_state()
        return get_effective_alert_conditions(s.engine.config, s.runtime_config_path).model_dump()

    @app.post("/settings/alerts")
    def update_alert_settings(payload: AlertConditionsPayload):
        s = get_state()
        changes = payload.model_dump(exclude_none=True)
        if changes:
            save_runtime_overrides({"alert_conditions": changes}, s.runtime_config_path)
            log.info("alert_settings_updated", **changes)
        return get_effective_alert_conditions(s.engine.config, s.runtime_config_path).model_dump()

    return app


app = create_app()
