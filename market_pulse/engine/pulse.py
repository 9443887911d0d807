"""PulseEngine: the single handle producers and consumers talk to.

It owns the series store, the signal computer, the impact detector and its
log, and the published per-instrument snapshots. Nothing is module-level;
two engines in one process share no state.

Inbound:
    ingest_price(instrument, timestamp_ms, value)
    ingest_info(instrument, timestamp_ms, score)      score clamped to [-1, 1]
    ingest_event(PriceTickEvent | InfoScoreEvent)

Driven by the runner (or a test) on independent schedules:
    tick(now)          recompute every snapshot, then run spike detection
    resolve_due(now)   complete impact measurements that came due

Outbound (read-only):
    read()             PulseView with every snapshot, recent impacts,
                       lead-lag estimates and impact KPIs
    subscribe(cb)      cb(PulseView) after every tick
"""
from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from loguru import logger

from market_pulse.core.config import PulseSettings
from market_pulse.core.events import InfoScoreEvent, PriceTickEvent, PulseEvent
from market_pulse.core.series_store import Sample, SeriesKind, SeriesStore
from market_pulse.engine.impact import ImpactDetector, ImpactLog, ImpactRecord
from market_pulse.engine.lead_lag import LeadLag, estimate_lead_lag
from market_pulse.engine.signals import SignalComputer, SignalSnapshot
from market_pulse.engine.summary import ImpactSummary, summarize_impacts

Clock = Callable[[], int]


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class PulseView:
    window_seconds: float
    instruments: Tuple[str, ...]
    snapshots: Mapping[str, SignalSnapshot]
    impacts: Tuple[ImpactRecord, ...]
    lead_lag: Mapping[str, LeadLag]
    summary: ImpactSummary
    tick_seq: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "window_seconds": self.window_seconds,
            "instruments": list(self.instruments),
            "data": [self.snapshots[i].as_dict() for i in self.instruments if i in self.snapshots],
            "impacts": [r.as_dict() for r in self.impacts],
            "lead_lag": {i: ll.as_dict() for i, ll in self.lead_lag.items()},
            "summary": self.summary.as_dict(),
            "tick_seq": self.tick_seq,
        }


class PulseEngine:
    def __init__(self, settings: Optional[PulseSettings] = None, clock: Optional[Clock] = None):
        self.settings = settings or PulseSettings()
        self.clock: Clock = clock or wall_clock_ms
        self.store = SeriesStore.from_settings(self.settings)
        self.computer = SignalComputer(self.store, self.settings.signals)
        self.log = ImpactLog(self.settings.impact.log_capacity)
        self.detector = ImpactDetector(self.store, self.log, self.settings.impact)

        self._view_lock = threading.Lock()
        self._snapshots: Mapping[str, SignalSnapshot] = MappingProxyType({})
        self._lead_lag: Mapping[str, LeadLag] = MappingProxyType({})
        self._tick_seq = 0

        self._subs_lock = threading.RLock()
        self._subs: Dict[int, Callable[[PulseView], None]] = {}
        self._next_sub_id = 1

        if self.settings.series.seed_neutral_info:
            self.store.seed(SeriesKind.INFO, 0.0, self.clock())
        logger.info(
            f"PulseEngine ready (instruments={list(self.instruments)} window_ms={self.settings.series.window_ms})"
        )

    @property
    def instruments(self) -> Tuple[str, ...]:
        return self.store.instruments

    # ---------------- Ingestion ----------------------
    def ingest_price(self, instrument: str, timestamp_ms: int, value: float) -> None:
        value = float(value)
        if not math.isfinite(value):
            raise ValueError(f"non-finite price for {instrument}: {value}")
        self.store.append(instrument, SeriesKind.PRICE, Sample(int(timestamp_ms), value))

    def ingest_info(self, instrument: str, timestamp_ms: int, score: float) -> None:
        score = float(score)
        if not math.isfinite(score):
            raise ValueError(f"non-finite sentiment score for {instrument}: {score}")
        score = max(-1.0, min(1.0, score))
        self.store.append(instrument, SeriesKind.INFO, Sample(int(timestamp_ms), score))

    def ingest_event(self, event: PulseEvent) -> None:
        if isinstance(event, PriceTickEvent):
            self.ingest_price(event.instrument, event.timestamp, event.price)
        elif isinstance(event, InfoScoreEvent):
            self.ingest_info(event.instrument, event.timestamp, event.score)
        else:
            raise TypeError(f"unsupported event type {type(event).__name__}")

    # ---------------- Compute ------------------------
    def tick(self, now: Optional[int] = None) -> Mapping[str, SignalSnapshot]:
        """Recompute every instrument, publish the new snapshots, then detect spikes."""
        now = self.clock() if now is None else int(now)
        snapshots = self.computer.compute_all(now)
        lead_lag: Dict[str, LeadLag] = {}
        ll_cfg = self.settings.lead_lag
        if ll_cfg.enabled:
            for inst in self.instruments:
                lead_lag[inst] = estimate_lead_lag(
                    self.store.snapshot(inst, SeriesKind.PRICE),
                    self.store.snapshot(inst, SeriesKind.INFO),
                    now,
                    lookback_ms=ll_cfg.lookback_ms,
                    lags_sec=ll_cfg.lags_sec,
                    min_points=ll_cfg.min_points,
                )
        published = MappingProxyType(snapshots)
        with self._view_lock:
            self._snapshots = published
            self._lead_lag = MappingProxyType(lead_lag)
            self._tick_seq += 1
        self.detector.observe_all(published.values(), now)
        self._publish()
        return published

    def resolve_due(self, now: Optional[int] = None) -> List[ImpactRecord]:
        now = self.clock() if now is None else int(now)
        return self.detector.resolve_due(now)

    # ---------------- Read side ----------------------
    def snapshot(self, instrument: str) -> Optional[SignalSnapshot]:
        with self._view_lock:
            return self._snapshots.get(instrument)

    def read(self, impact_limit: Optional[int] = None) -> PulseView:
        with self._view_lock:
            snapshots = self._snapshots
            lead_lag = self._lead_lag
            tick_seq = self._tick_seq
        limit = self.settings.impact.read_limit if impact_limit is None else impact_limit
        impacts = self.log.recent(limit)
        return PulseView(
            window_seconds=self.settings.series.window_ms / 1000.0,
            instruments=self.instruments,
            snapshots=snapshots,
            impacts=impacts,
            lead_lag=lead_lag,
            summary=summarize_impacts(impacts),
            tick_seq=tick_seq,
        )

    def subscribe(self, cb: Callable[[PulseView], None]) -> int:
        with self._subs_lock:
            sid = self._next_sub_id
            self._next_sub_id += 1
            self._subs[sid] = cb
        return sid

    def unsubscribe(self, sid: int) -> None:
        with self._subs_lock:
            self._subs.pop(sid, None)

    def _publish(self) -> None:
        with self._subs_lock:
            subs = list(self._subs.values())
        if not subs:
            return
        view = self.read()
        for cb in subs:
            try:
                cb(view)
            except Exception as e:
                logger.warning(f"[PulseEngine] subscriber error {e}")


__all__ = ["Clock", "PulseEngine", "PulseView", "wall_clock_ms"]
