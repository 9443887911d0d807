"""
Pytest Fixtures for the Market Pulse Test Suite

Shared fixtures: a validated settings object that does not depend on a
physical `settings.yaml` or the process environment, a manually advanced
clock, and engines wired to that clock.
"""
from datetime import datetime, timezone

import pytest

from market_pulse.core.config import PulseSettings, settings_from_dict
from market_pulse.engine.pulse import PulseEngine
from market_pulse.engine.signals import SignalSnapshot


class FakeClock:
    """Millisecond clock that only moves when a test moves it."""

    def __init__(self, now: int = 0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def settings_fixture() -> PulseSettings:
    # Neutral info seeding is off so sample counts in tests are exact.
    test_config = {
        "runtime": {"instruments": ["BTC", "ETH"], "tick_interval_ms": 1000},
        "series": {"window_ms": 120_000, "capacity": 2000, "seed_neutral_info": False},
        "impact": {"spike_threshold": 1.2, "debounce_ms": 15_000, "window_ms": 60_000},
    }
    return settings_from_dict(test_config, use_env=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(0)


@pytest.fixture
def engine(settings_fixture, clock) -> PulseEngine:
    return PulseEngine(settings_fixture, clock=clock)


@pytest.fixture
def make_snapshot():
    """Factory for hand-built snapshots, for feeding the impact detector directly."""

    def _make(instrument="BTC", z_sent=0.0, last_price=100.0, z_price=0.0, now=0):
        return SignalSnapshot(
            instrument=instrument,
            last_price=last_price,
            price_delta_1m_pct=0.0,
            sent_delta_1m=0.0,
            z_price=z_price,
            z_sent=z_sent,
            divergence=z_sent - z_price,
            strong=False,
            predicted_return=0.0,
            last_price_ts=now if last_price is not None else None,
            last_info_ts=now,
            info_count_1m=0,
            updated_at=datetime.fromtimestamp(now / 1000.0, tz=timezone.utc),
        )

    return _make
