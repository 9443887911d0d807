import numpy as np
import pytest

from market_pulse.core.config import PulseSettings
from market_pulse.core.events import InfoScoreEvent, PriceTickEvent
from market_pulse.core.exceptions import UnknownInstrumentError
from market_pulse.core.series_store import Sample, SeriesKind
from market_pulse.engine.impact import SpikeState
from market_pulse.engine.lead_lag import NEUTRAL
from market_pulse.engine.pulse import PulseEngine


def _feed_spike(engine, inst="BTC"):
    for i, score in enumerate([0, 0, 0, 0, 1]):
        engine.ingest_price(inst, i * 1000, 100.0)
        engine.ingest_info(inst, i * 1000, score)


def test_neutral_info_seed_at_startup():
    engine = PulseEngine(PulseSettings(), clock=lambda: 5000)
    for inst in engine.instruments:
        assert engine.store.snapshot(inst, SeriesKind.INFO) == (Sample(5000, 0.0),)
        assert engine.store.snapshot(inst, SeriesKind.PRICE) == ()


def test_ingest_validation(engine):
    engine.ingest_info("BTC", 1, 5.0)
    engine.ingest_info("BTC", 2, -3.0)
    assert [s.v for s in engine.store.snapshot("BTC", SeriesKind.INFO)] == [1.0, -1.0]
    with pytest.raises(ValueError):
        engine.ingest_price("BTC", 1, float("inf"))
    with pytest.raises(UnknownInstrumentError):
        engine.ingest_price("DOGE", 1, 1.0)
    with pytest.raises(TypeError):
        engine.ingest_event(object())


def test_ingest_event_routes_by_type(engine):
    engine.ingest_event(PriceTickEvent(instrument="ETH", timestamp=10, price=2500.0))
    engine.ingest_event(InfoScoreEvent(instrument="ETH", timestamp=11, score=0.25))
    assert engine.store.last("ETH", SeriesKind.PRICE) == Sample(10, 2500.0)
    assert engine.store.last("ETH", SeriesKind.INFO) == Sample(11, 0.25)


def test_read_before_first_tick(engine):
    view = engine.read()
    assert view.tick_seq == 0
    assert view.as_dict()["data"] == []
    assert view.impacts == ()
    assert view.summary.count == 0
    assert view.window_seconds == 120.0
    assert engine.snapshot("BTC") is None


def test_tick_publishes_snapshots(engine, clock):
    _feed_spike(engine)
    clock.now = 4000
    published = engine.tick()
    assert set(published) == {"BTC", "ETH"}
    with pytest.raises(TypeError):
        published["BTC"] = None  # read-only view
    view = engine.read()
    assert view.tick_seq == 1
    assert view.snapshots["BTC"].z_sent == pytest.approx(1.5)
    assert view.snapshots["BTC"].strong is True
    assert view.lead_lag["BTC"] == NEUTRAL
    assert [d["instrument"] for d in view.as_dict()["data"]] == ["BTC", "ETH"]


def test_read_is_idempotent(engine):
    _feed_spike(engine)
    engine.tick(4000)
    assert engine.read().as_dict() == engine.read().as_dict()
    assert engine.read().tick_seq == 1


def test_spike_to_impact_end_to_end(engine):
    _feed_spike(engine)
    engine.tick(4000)
    assert engine.detector.state("BTC") is SpikeState.SPIKE_PENDING
    assert engine.detector.state("ETH") is SpikeState.IDLE

    engine.ingest_price("BTC", 30_000, 103.0)
    assert engine.resolve_due(60_000) == []
    (rec,) = engine.resolve_due(64_000)
    assert rec.realized_return_pct == pytest.approx(3.0)

    view = engine.read()
    assert [r.as_dict()["realized_return_pct"] for r in view.impacts] == [3.0]
    assert view.summary.count == 1
    assert view.summary.bulls == 1
    assert view.as_dict()["summary"]["by_instrument"] == {"BTC": 1}


def test_read_limit(engine, make_snapshot):
    for i in range(12):
        engine.detector.observe(make_snapshot("BTC", z_sent=2.0), now=i * 100_000)
        engine.resolve_due(i * 100_000 + 60_000)
    assert len(engine.log) == 12
    assert len(engine.read().impacts) == 10
    assert [r.t for r in engine.read(3).impacts] == [900_000, 1_000_000, 1_100_000]


def test_subscribers(engine):
    seen = []

    def bad(view):
        raise RuntimeError("boom")

    engine.subscribe(bad)
    sid = engine.subscribe(lambda view: seen.append(view.tick_seq))
    engine.tick(1000)
    engine.tick(2000)
    engine.unsubscribe(sid)
    engine.tick(3000)
    assert seen == [1, 2]


def test_engines_share_no_state(settings_fixture):
    a = PulseEngine(settings_fixture, clock=lambda: 0)
    b = PulseEngine(settings_fixture, clock=lambda: 0)
    a.ingest_price("BTC", 0, 100.0)
    a.tick(0)
    assert b.store.last("BTC", SeriesKind.PRICE) is None
    assert b.read().tick_seq == 0


def test_lead_lag_with_default_settings(clock):
    # price repeats the sentiment steps 15 s later; retention (120 s) is shorter than the lead-lag lookback
    engine = PulseEngine(PulseSettings(), clock=clock)
    rng = np.random.default_rng(21)
    info_diffs = rng.uniform(-0.004, 0.004, size=199)
    price_diffs = np.concatenate([rng.uniform(-0.004, 0.004, size=15), info_diffs[:-15]])
    info_levels = np.concatenate([[0.0], np.cumsum(info_diffs)])
    price_levels = 100.0 + np.concatenate([[0.0], np.cumsum(price_diffs)])
    for i in range(200):
        engine.ingest_price("BTC", i * 1000, float(price_levels[i]))
        engine.ingest_info("BTC", i * 1000, float(info_levels[i]))
    clock.now = 199_000
    engine.tick()
    assert len(engine.store.snapshot("BTC", SeriesKind.PRICE)) == 121
    ll = engine.read().lead_lag["BTC"]
    assert ll.lag_sec == 15
    assert ll.corr == pytest.approx(1.0)
    assert engine.read().lead_lag["ETH"] == NEUTRAL


def test_read_zero_limit_returns_no_impacts(engine, make_snapshot):
    for i in range(3):
        engine.detector.observe(make_snapshot("BTC", z_sent=2.0), now=i * 100_000)
        engine.resolve_due(i * 100_000 + 60_000)
    assert len(engine.read().impacts) == 3
    assert engine.read(0).impacts == ()
    assert engine.read(0).summary.count == 0
