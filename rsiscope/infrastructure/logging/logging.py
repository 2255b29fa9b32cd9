"""structlog setup for the engine, the API and replay runs.

JSON lines for the long-running engine/API; a console renderer for replay, whose
report is read by a person. Each tick's log lines carry `tick=<seq>` via contextvars.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog


# Per-request access logs drown out tick lines at INFO
NOISY_LOGGERS = ("aiohttp.access", "aiohttp.client", "uvicorn.access")


def configure_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(colors=False)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str, **kwargs: Any) -> structlog.BoundLogger:
    return structlog.get_logger().bind(component=component, **kwargs)


@contextmanager
def tick_context(seq: int) -> Iterator[None]:
    """Bind `tick=seq` to every log line emitted inside the block (task-local)."""
    with structlog.contextvars.bound_contextvars(tick=seq):
        yield
