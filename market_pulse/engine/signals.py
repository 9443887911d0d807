"""Per-tick divergence signal between price and sentiment.

For each instrument, independently and in any order, one compute step:

  1. prunes both series to the retention window
  2. price delta over the last minute, as % of the first retained price
  3. sentiment delta over the last minute (raw difference)
  4. first-difference z-scores of price and sentiment over the full
     retained window (not just the last minute)
  5. divergence = z_sent - z_price
  6. strong flag = |divergence| >= strong_threshold and enough info volume
  7. predicted return = fixed linear blend of z_sent and z_price

The predicted return is a non-validated heuristic carried through for
display. It is not a forecast.

The result is a frozen ``SignalSnapshot``; callers replace the previous one
for the instrument wholesale, never merge into it.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from loguru import logger

from market_pulse.core.config import SignalSettings
from market_pulse.core.series_store import SeriesKind, SeriesStore
from market_pulse.core.stats import first_difference_zscore, windowed_count, windowed_delta


@dataclass(frozen=True)
class SignalSnapshot:
    instrument: str
    last_price: Optional[float]
    price_delta_1m_pct: float
    sent_delta_1m: float
    z_price: float
    z_sent: float
    divergence: float
    strong: bool
    predicted_return: float
    last_price_ts: Optional[int]
    last_info_ts: Optional[int]
    info_count_1m: int
    updated_at: datetime
    price_count: int = 0
    info_count: int = 0

    def as_dict(self) -> Dict[str, Any]:
        """Presentation form: rounded scalars, ISO timestamp."""
        return {
            "instrument": self.instrument,
            "last_price": self.last_price,
            "price_delta_1m_pct": round(self.price_delta_1m_pct, 3),
            "sent_delta_1m": round(self.sent_delta_1m, 3),
            "z_sent": round(self.z_sent, 2),
            "z_price": round(self.z_price, 2),
            "divergence": round(self.divergence, 2),
            "predicted_return": round(self.predicted_return, 2),
            "strong": self.strong,
            "last_price_ts": self.last_price_ts,
            "last_info_ts": self.last_info_ts,
            "info_count_1m": self.info_count_1m,
            "updated_at": self.updated_at.isoformat(),
            "counts": {"price": self.price_count, "info": self.info_count},
        }


def is_strong(divergence: float, info_count_1m: int, strong_threshold: float, min_info_count: int) -> bool:
    return abs(divergence) >= strong_threshold and info_count_1m >= min_info_count


def predicted_return(z_sent: float, z_price: float, sentiment_weight: float = 0.6, price_weight: float = -0.2) -> float:
    """Linear heuristic; the weights are configuration, not fitted."""
    return sentiment_weight * z_sent + price_weight * z_price


class SignalComputer:
    def __init__(self, store: SeriesStore, settings: Optional[SignalSettings] = None):
        self.store = store
        self.settings = settings or SignalSettings()

    def compute(self, instrument: str, now: int) -> SignalSnapshot:
        cfg = self.settings
        self.store.prune(instrument, SeriesKind.PRICE, now)
        self.store.prune(instrument, SeriesKind.INFO, now)
        ps = self.store.snapshot(instrument, SeriesKind.PRICE)
        infos = self.store.snapshot(instrument, SeriesKind.INFO)

        last_price = ps[-1].v if ps else None
        price_delta_pct = 0.0
        if len(ps) >= 2:
            first_price = ps[0].v
            if first_price and last_price:
                price_delta_pct = windowed_delta(ps, now, cfg.delta_lookback_ms) / first_price * 100.0

        sent_delta = windowed_delta(infos, now, cfg.delta_lookback_ms)
        z_price = first_difference_zscore(ps, cfg.min_zscore_samples)
        z_sent = first_difference_zscore(infos, cfg.min_zscore_samples)
        divergence = z_sent - z_price
        info_count_1m = windowed_count(infos, now, cfg.delta_lookback_ms)
        strong = is_strong(divergence, info_count_1m, cfg.strong_threshold, cfg.min_info_count)
        predicted = predicted_return(z_sent, z_price, cfg.predictor.sentiment_weight, cfg.predictor.price_weight)

        return SignalSnapshot(
            instrument=instrument,
            last_price=last_price,
            price_delta_1m_pct=price_delta_pct,
            sent_delta_1m=sent_delta,
            z_price=z_price,
            z_sent=z_sent,
            divergence=divergence,
            strong=strong,
            predicted_return=predicted,
            last_price_ts=ps[-1].t if ps else None,
            last_info_ts=infos[-1].t if infos else None,
            info_count_1m=info_count_1m,
            updated_at=datetime.fromtimestamp(now / 1000.0, tz=timezone.utc),
            price_count=len(ps),
            info_count=len(infos),
        )

    def compute_all(self, now: int) -> Dict[str, SignalSnapshot]:
        out: Dict[str, SignalSnapshot] = {}
        for inst in self.store.instruments:
            out[inst] = self.compute(inst, now)
        logger.debug(f"[Signals] computed {len(out)} snapshots at {now}")
        return out


__all__ = ["SignalComputer", "SignalSnapshot", "is_strong", "predicted_return"]
