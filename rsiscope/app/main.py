"""Entrypoint.

Usage:
  python -m rsiscope.app.main engine    # run the refresh loop (no API)
  python -m rsiscope.app.main api       # run FastAPI server (starts the engine in-process)
  python -m rsiscope.app.main replay --symbols BTCUSDT --timeframe 1h --count 1000
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

import uvicorn

from rsiscope.app.engine import run_engine
from rsiscope.infrastructure.utils.config import load_config


def main() -> None:
    parser = argparse.ArgumentParser("rsiscope")
    parser.add_argument("command", choices=["engine", "api", "replay"], help="What to run")
    parser.add_argument("--config", type=Path, default=None, help="Path to config YAML")
    parser.add_argument("--symbols", nargs="+", default=None, help="replay: symbols (defaults to config)")
    parser.add_argument("--timeframe", default=None, help="replay: kline interval (defaults to config)")
    parser.add_argument("--count", type=int, default=1000, help="replay: candles per symbol")
    args = parser.parse_args()

    if args.command == "engine":
        asyncio.run(run_engine(args.config))
        return

    if args.command == "api":
        config = load_config(args.config)
        uvicorn.run("rsiscope.api.server:app", host=config.api.host, port=config.api.port, reload=False)
        return

    if args.command == "replay":
        from rsiscope.app.replay import run_replay
        asyncio.run(
            run_replay(
                config_path=args.config,
                symbols_override=args.symbols,
                timeframe=args.timeframe,
                count=args.count,
            )
        )
        return


if __name__ == "__main__":
    main()
