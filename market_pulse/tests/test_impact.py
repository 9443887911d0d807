import pytest

from market_pulse.core.config import ImpactSettings
from market_pulse.core.series_store import Sample, SeriesKind, SeriesStore
from market_pulse.engine.impact import (
    ImpactDetector,
    ImpactLog,
    ImpactRecord,
    SpikeState,
    realized_return_pct,
)


def _detector(**overrides):
    store = SeriesStore(["BTC", "ETH"], window_ms=120_000, capacity=2000)
    log = ImpactLog(overrides.pop("log_capacity", 100))
    return store, log, ImpactDetector(store, log, ImpactSettings(**overrides))


def _record(i, ret=0.0, inst="BTC"):
    return ImpactRecord(inst, i, 1.5, ret, 100.0, 100.0 + ret, i + 60_000)


def test_realized_return_pct():
    assert realized_return_pct(100.0, 103.0) == pytest.approx(3.0)
    assert realized_return_pct(100.0, 99.0) == pytest.approx(-1.0)
    assert realized_return_pct(0.0, 5.0) == 0.0


def test_spike_measured_after_window(make_snapshot):
    store, log, det = _detector()
    spike = det.observe(make_snapshot("BTC", z_sent=2.0, last_price=100.0), now=0)
    assert spike is not None
    assert spike.due_at == 60_000
    assert det.state("BTC") is SpikeState.SPIKE_PENDING
    assert det.state("ETH") is SpikeState.IDLE
    assert det.next_due_at() == 60_000

    store.append("BTC", SeriesKind.PRICE, Sample(59_000, 103.0))
    assert det.resolve_due(59_999) == []
    records = det.resolve_due(60_000)
    assert len(records) == 1
    rec = records[0]
    assert rec.realized_return_pct == pytest.approx(3.0)
    assert rec.as_dict()["realized_return_pct"] == 3.0
    assert rec.resolved_price == 103.0
    assert rec.resolved_at - rec.t >= 60_000
    assert det.state("BTC") is SpikeState.IDLE
    assert log.recent() == (rec,)


def test_below_threshold_is_ignored(make_snapshot):
    _, _, det = _detector()
    assert det.observe(make_snapshot(z_sent=1.19), now=0) is None
    assert det.spikes_confirmed == 0
    assert det.observe(make_snapshot(z_sent=-1.3), now=0) is not None


def test_only_one_pending_spike_per_instrument(make_snapshot):
    _, _, det = _detector()
    assert det.observe(make_snapshot("BTC", z_sent=2.0), now=0) is not None
    # debounce has elapsed but the first measurement is still open
    assert det.observe(make_snapshot("BTC", z_sent=3.0), now=20_000) is None
    assert det.observe(make_snapshot("ETH", z_sent=3.0), now=20_000) is not None
    assert [p.instrument for p in det.pending()] == ["BTC", "ETH"]


def test_debounce_after_resolution(make_snapshot):
    _, _, det = _detector(window_ms=1000, debounce_ms=15_000)
    det.observe(make_snapshot(z_sent=2.0), now=0)
    det.resolve_due(1000)
    assert det.observe(make_snapshot(z_sent=2.0), now=10_000) is None
    assert det.last_spike_at("BTC") == 0
    assert det.observe(make_snapshot(z_sent=2.0), now=15_000) is not None
    assert det.last_spike_at("BTC") == 15_000


def test_spike_without_price_is_not_measured(make_snapshot):
    _, log, det = _detector()
    assert det.observe(make_snapshot(z_sent=2.0, last_price=None), now=0) is None
    assert det.spikes_confirmed == 1
    assert det.spikes_unmeasured == 1
    assert det.last_spike_at("BTC") == 0
    assert det.pending() == []
    assert len(log) == 0


def test_missing_current_price_falls_back_to_reference(make_snapshot):
    _, _, det = _detector()
    det.observe(make_snapshot(z_sent=2.0, last_price=250.0), now=0)
    (rec,) = det.resolve_due(60_000)
    assert rec.resolved_price == 250.0
    assert rec.realized_return_pct == 0.0


def test_late_resolution_keeps_detection_time(make_snapshot):
    store, _, det = _detector()
    det.observe(make_snapshot(z_sent=2.0, last_price=100.0), now=5_000)
    store.append("BTC", SeriesKind.PRICE, Sample(300_000, 90.0))
    (rec,) = det.resolve_due(300_000)
    assert rec.t == 5_000
    assert rec.resolved_at == 300_000
    assert rec.realized_return_pct == pytest.approx(-10.0)


def test_resolution_follows_due_order(make_snapshot):
    _, _, det = _detector()
    det.observe(make_snapshot("ETH", z_sent=2.0), now=10_000)
    det.observe(make_snapshot("BTC", z_sent=2.0), now=0)
    records = det.resolve_due(100_000)
    assert [r.instrument for r in records] == ["BTC", "ETH"]


def test_discard_pending(make_snapshot):
    _, log, det = _detector()
    det.observe(make_snapshot("BTC", z_sent=2.0), now=0)
    det.observe(make_snapshot("ETH", z_sent=2.0), now=0)
    assert det.discard_pending() == 2
    assert det.next_due_at() is None
    assert det.resolve_due(10**9) == []
    assert len(log) == 0


def test_log_keeps_most_recent_in_order():
    log = ImpactLog(capacity=10)
    for i in range(15):
        log.append(_record(i))
    assert len(log) == 10
    assert [r.t for r in log.all()] == list(range(5, 15))
    assert [r.t for r in log.recent(3)] == [12, 13, 14]
    assert log.recent(0) == ()
    assert log.evicted == 5
    assert log.capacity() == 10


def test_log_rejects_non_positive_capacity():
    with pytest.raises(ValueError):
        ImpactLog(0)
