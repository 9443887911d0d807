"""Aggregate KPIs over recent impact records.

These are the numbers a dashboard shows next to the impact feed: how many
impacts, per instrument, the average and average absolute realized move, the
average spike magnitude, the share of positive outcomes and a bulls-vs-bears
tally. Descriptive only; nothing here is a performance claim.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Sequence

import pandas as pd

from market_pulse.engine.impact import ImpactRecord


@dataclass(frozen=True)
class ImpactSummary:
    count: int = 0
    by_instrument: Dict[str, int] = field(default_factory=dict)
    avg_return_pct: float = 0.0
    avg_abs_return_pct: float = 0.0
    avg_abs_z_sent: float = 0.0
    win_rate_pct: float = 0.0
    bulls: int = 0
    bears: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "by_instrument": dict(self.by_instrument),
            "avg_return_pct": round(self.avg_return_pct, 3),
            "avg_abs_return_pct": round(self.avg_abs_return_pct, 3),
            "avg_abs_z_sent": round(self.avg_abs_z_sent, 2),
            "win_rate_pct": round(self.win_rate_pct, 1),
            "bulls": self.bulls,
            "bears": self.bears,
        }


def summarize_impacts(records: Sequence[ImpactRecord]) -> ImpactSummary:
    if not records:
        return ImpactSummary()
    df = pd.DataFrame(
        {
            "instrument": [r.instrument for r in records],
            "ret": [r.realized_return_pct for r in records],
            "z": [r.z_sent_at_spike for r in records],
        }
    )
    n = len(df)
    bulls = int((df["ret"] > 0).sum())
    bears = int((df["ret"] < 0).sum())
    counts = df["instrument"].value_counts(sort=False)
    return ImpactSummary(
        count=n,
        by_instrument={str(k): int(v) for k, v in counts.items()},
        avg_return_pct=float(df["ret"].mean()),
        avg_abs_return_pct=float(df["ret"].abs().mean()),
        avg_abs_z_sent=float(df["z"].abs().mean()),
        win_rate_pct=bulls / n * 100.0,
        bulls=bulls,
        bears=bears,
    )


__all__ = ["ImpactSummary", "summarize_impacts"]
