"""
Shared fixtures for the scope profiler test suite.

Provides test fixtures for:
- A controllable nanosecond clock
- Fresh measurement arenas
- Isolation of the process-wide arena and settings
"""

import logging

import pytest

from scope_profiler import config, measurement
from scope_profiler.measurement import MeasurementArena
from scope_profiler.profiler_logging import LOGGER_NAME

NS_PER_MS = 1_000_000


class FakeClock:
    """Nanosecond clock that only moves when told to.

    Args:
        tick_ns: Amount added after every read, to simulate the cost of
            the profiler's own bookkeeping.
    """

    def __init__(self, tick_ns: int = 0):
        self.now = 0
        self.tick_ns = tick_ns
        self.reads = 0

    def __call__(self) -> int:
        value = self.now
        self.now += self.tick_ns
        self.reads += 1
        return value

    def advance_ms(self, ms: float) -> None:
        self.now += int(ms * NS_PER_MS)


@pytest.fixture
def clock() -> FakeClock:
    """A clock that advances only through advance_ms()."""
    return FakeClock()


@pytest.fixture
def arena(clock: FakeClock) -> MeasurementArena:
    """A fresh arena driven by the fake clock."""
    return MeasurementArena(clock=clock)


@pytest.fixture(autouse=True)
def isolated_profiler(monkeypatch):
    """Give every test its own process-wide arena and default settings."""
    for env_var in (
        config.ENV_DISABLED,
        config.ENV_FORMAT,
        config.ENV_PRECISION,
        config.ENV_LOG_FORMAT,
    ):
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.setattr(config, "_active_settings", None)

    previous = measurement.set_arena(None)
    yield
    measurement.set_arena(previous)


@pytest.fixture
def restore_package_logger():
    """Undo handler changes made by setup_logging."""
    logger = logging.getLogger(LOGGER_NAME)
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers = handlers
    logger.setLevel(level)
    logger.propagate = propagate
