"""Coarse lead-lag estimate between price and sentiment changes.

Over a short recent lookback both series are reduced to first differences,
trimmed to a common (most recent) length, and correlated at a small fixed set
of candidate lags. Lags are mapped to index shifts proportionally to the
time actually spanned by the aligned differences
(``round(lag / span * n)``). The span can be shorter than the lookback when
the series retention window is. There is no interpolation in time, so
irregular sampling is ignored. The output is advisory only.

Sign convention: a positive lag means sentiment moves first and price
follows ``lag`` seconds later.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

from market_pulse.core.series_store import Sample
from market_pulse.core.stats import first_differences, pearson, window_view

DEFAULT_LAGS_SEC: Tuple[int, ...] = (-60, -30, -15, 0, 15, 30, 60)


@dataclass(frozen=True)
class LeadLag:
    lag_sec: int = 0
    corr: float = 0.0

    def as_dict(self) -> Dict[str, float]:
        return {"lag_sec": self.lag_sec, "corr": round(self.corr, 3)}


NEUTRAL = LeadLag(0, 0.0)


def lag_to_shift(lag_sec: int, span_ms: int, n: int) -> int:
    """Index shift for ``lag_sec`` when ``n`` steps cover ``span_ms``."""
    return int(round(lag_sec * 1000.0 / max(1, span_ms) * n))


def correlation_at_shift(price_diffs: Sequence[float], info_diffs: Sequence[float], shift: int) -> float:
    """Correlate info[i] with price[i + shift] over the overlapping part."""
    n = min(len(price_diffs), len(info_diffs))
    if abs(shift) >= n - 1:
        return 0.0
    if shift >= 0:
        return pearson(info_diffs[: n - shift], price_diffs[shift:n])
    return pearson(info_diffs[-shift:n], price_diffs[: n + shift])


def estimate_lead_lag(
    price: Sequence[Sample],
    info: Sequence[Sample],
    now: int,
    lookback_ms: int = 300_000,
    lags_sec: Sequence[int] = DEFAULT_LAGS_SEC,
    min_points: int = 8,
) -> LeadLag:
    ps = window_view(price, now, lookback_ms)
    infos = window_view(info, now, lookback_ms)
    if len(ps) < min_points or len(infos) < min_points:
        return NEUTRAL

    price_diffs = first_differences(ps)
    info_diffs = first_differences(infos)
    n = min(price_diffs.size, info_diffs.size)
    price_diffs = price_diffs[-n:]
    info_diffs = info_diffs[-n:]
    span_ms = ps[-1].t - ps[-n - 1].t

    best = NEUTRAL
    for lag in sorted(lags_sec, key=abs):
        corr = correlation_at_shift(price_diffs, info_diffs, lag_to_shift(lag, span_ms, n))
        if abs(corr) > abs(best.corr):
            best = LeadLag(int(lag), corr)
    return best


__all__ = ["DEFAULT_LAGS_SEC", "LeadLag", "correlation_at_shift", "estimate_lead_lag", "lag_to_shift"]
