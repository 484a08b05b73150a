"""
Crisis Engine Test Configuration
================================

Shared fixtures: a virtual clock, an engine driven by it, and a
subscriber that records every published change.
"""

import pytest

from crisis_engine.config import EngineConfig
from crisis_engine.driver import VirtualClock
from crisis_engine.engine import CrisisEngine
from crisis_engine.recorder import MemorySessionStore


# =============================================================================
# Pytest Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: tests that use real threads and sleeps")


# =============================================================================
# Helpers
# =============================================================================

class Collector:
    """Subscriber that records every (level, fog_score, profile) call."""

    def __init__(self):
        self.calls = []

    def __call__(self, level, fog_score, profile):
        self.calls.append((level, fog_score, profile))

    @property
    def levels(self):
        return [c[0] for c in self.calls]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep host overrides out of the tests."""
    monkeypatch.delenv("CRISIS_ENGINE_SENSITIVITY", raising=False)
    monkeypatch.delenv("CRISIS_ENGINE_QUIET_PERIOD", raising=False)


@pytest.fixture
def clock():
    return VirtualClock(1000.0)


@pytest.fixture
def store():
    return MemorySessionStore()


@pytest.fixture
def engine(clock, store):
    eng = CrisisEngine(EngineConfig(), clock=clock, store=store)
    yield eng
    eng.stop()


@pytest.fixture
def collector(engine):
    c = Collector()
    engine.subscribe(c)
    return c


@pytest.fixture
def run_ticks(engine, clock):
    """Advance the clock one second per tick and tick the engine n times."""

    def _run(n=1):
        snap = None
        for _ in range(n):
            clock.advance(1.0)
            snap = engine.tick()
        return snap

    return _run
