"""
Rolling Statistics over Sample Sequences

Pure, stateless functions used by the signal computer and the lead-lag
estimator. They take a sequence of samples (anything with ``t`` and ``v``
attributes, in append order) and return plain floats / ints.

Design Principles:
- Pure Functions: no side effects; the same input always gives the same output.
- Neutral on Insufficient Data: an empty window, too few samples or a
  degenerate variance never raises. Each function documents the neutral
  value it returns instead (0 in every case here), so a cold start produces
  quiet, well-defined signals.
- Finite Results: standard deviations are floored so no result is NaN/Inf.
"""

import math
from typing import Sequence

import numpy as np

from .series_store import Sample

# below this a standard deviation is treated as zero
SD_EPSILON = 1e-12


def window_view(series: Sequence[Sample], now: int, lookback_ms: int) -> list:
    """Samples with ``t >= now - lookback_ms``, in the order given."""
    cutoff = now - lookback_ms
    return [s for s in series if s.t >= cutoff]


def windowed_delta(series: Sequence[Sample], now: int, lookback_ms: int) -> float:
    """
    Last value minus first value of the samples inside the lookback window.

    Returns:
        0.0 for an empty window; a single-sample window yields 0.0 as well
        (first and last are the same sample).
    """
    recent = window_view(series, now, lookback_ms)
    if not recent:
        return 0.0
    return float(recent[-1].v - recent[0].v)


def windowed_count(series: Sequence[Sample], now: int, lookback_ms: int) -> int:
    """Number of samples with ``t >= now - lookback_ms``."""
    cutoff = now - lookback_ms
    return sum(1 for s in series if s.t >= cutoff)


def first_differences(series: Sequence[Sample]) -> np.ndarray:
    """Consecutive differences ``d[i] = v[i] - v[i-1]`` (empty for < 2 samples)."""
    if len(series) < 2:
        return np.empty(0, dtype=float)
    values = np.fromiter((s.v for s in series), dtype=float, count=len(series))
    return np.diff(values)


def first_difference_zscore(series: Sequence[Sample], min_samples: int = 5) -> float:
    """
    How unusual the most recent step is relative to recent step variability.

    The z-score is taken over first differences rather than levels: level
    z-scores are dominated by trend, difference z-scores capture surprise in
    the rate of change.

    Args:
        series: Samples in append order.
        min_samples: Minimum number of source samples (not differences);
            below it the result is 0.0.

    Returns:
        ``(latest_diff - mean) / sd`` with a Bessel-corrected variance
        (denominator ``max(1, n - 1)``). A zero standard deviation is
        replaced by 1, so a constant series scores exactly 0.0.
    """
    if len(series) < max(2, min_samples):
        return 0.0
    diffs = first_differences(series)
    n = diffs.size
    mean = float(diffs.mean())
    var = float(((diffs - mean) ** 2).sum()) / max(1, n - 1)
    sd = math.sqrt(var)
    if not math.isfinite(sd) or sd < SD_EPSILON:
        sd = 1.0
    z = (float(diffs[-1]) - mean) / sd
    return z if math.isfinite(z) else 0.0


def pearson(x: Sequence[float], y: Sequence[float]) -> float:
    """
    Pearson correlation of two equal-length sequences.

    Returns:
        0.0 when fewer than two points are given or either side has no
        variance.
    """
    if len(x) != len(y):
        raise ValueError(f"pearson() needs equal lengths, got {len(x)} and {len(y)}")
    if len(x) < 2:
        return 0.0
    xa = np.asarray(x, dtype=float)
    ya = np.asarray(y, dtype=float)
    xd = xa - xa.mean()
    yd = ya - ya.mean()
    denom = math.sqrt(float((xd * xd).sum()) * float((yd * yd).sum()))
    if denom < SD_EPSILON:
        return 0.0
    r = float((xd * yd).sum()) / denom
    return max(-1.0, min(1.0, r))


__all__ = [
    "first_difference_zscore",
    "first_differences",
    "pearson",
    "window_view",
    "windowed_count",
    "windowed_delta",
]
