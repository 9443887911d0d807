import pytest

from market_pulse.engine.impact import ImpactRecord
from market_pulse.engine.summary import ImpactSummary, summarize_impacts


def _rec(inst, ret, z=1.5):
    return ImpactRecord(inst, 0, z, ret, 100.0, 100.0 * (1 + ret / 100), 60_000)


def test_empty_summary_is_all_zero():
    s = summarize_impacts([])
    assert s == ImpactSummary()
    assert s.as_dict()["count"] == 0
    assert s.as_dict()["by_instrument"] == {}


def test_summary_kpis():
    s = summarize_impacts([_rec("BTC", 3.0, z=2.0), _rec("ETH", -1.0, z=-1.5), _rec("BTC", 2.0, z=1.3)])
    assert s.count == 3
    assert s.by_instrument == {"BTC": 2, "ETH": 1}
    assert s.avg_return_pct == pytest.approx(4.0 / 3)
    assert s.avg_abs_return_pct == pytest.approx(2.0)
    assert s.avg_abs_z_sent == pytest.approx(1.6)
    assert s.bulls == 2
    assert s.bears == 1
    assert s.as_dict()["win_rate_pct"] == 66.7


def test_flat_outcome_is_neither_bull_nor_bear():
    s = summarize_impacts([_rec("BTC", 0.0)])
    assert (s.bulls, s.bears, s.win_rate_pct) == (0, 0, 0.0)
