"""Tests for the structlog setup helpers."""

import asyncio
import logging

import pytest
import structlog

from rsiscope.infrastructure.logging.logging import NOISY_LOGGERS, configure_logging, get_logger, tick_context


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


class TestConfigureLogging:
    def test_noisy_loggers_raised_to_warning(self):
        configure_logging("DEBUG")
        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_noisy_loggers_follow_stricter_level(self):
        configure_logging("ERROR", json_logs=False)
        assert logging.getLogger("uvicorn.access").level == logging.ERROR

    def test_get_logger_binds_component(self):
        with structlog.testing.capture_logs() as logs:
            get_logger("engine", timeframe="1h").info("tick_completed", alerts=2)
        assert logs == [
            {"component": "engine", "timeframe": "1h", "alerts": 2, "event": "tick_completed", "log_level": "info"}
        ]


class TestTickContext:
    """tick=<seq> is bound per task and removed afterwards."""

    def test_binds_and_unbinds(self):
        with tick_context(7):
            assert structlog.contextvars.get_contextvars() == {"tick": 7}
        assert structlog.contextvars.get_contextvars() == {}

    def test_task_local(self):
        async def tick(seq, seen):
            with tick_context(seq):
                await asyncio.sleep(0)
                seen[seq] = structlog.contextvars.get_contextvars()["tick"]

        async def scenario():
            seen = {}
            await asyncio.gather(tick(1, seen), tick(2, seen))
            return seen

        assert asyncio.run(scenario()) == {1: 1, 2: 2}
