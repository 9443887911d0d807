"""Sentiment spike detection and delayed realized-return measurement.

Per instrument the detector is a two-state machine:

    IDLE --(|z_sent| >= spike_threshold and debounce elapsed)--> SPIKE_PENDING
    SPIKE_PENDING --(impact window elapsed, resolve_due)--> IDLE

On confirmation the debounce clock is stamped (at detection time, not at
resolution time) and a ``PendingSpike`` carrying the reference price is
pushed on a priority queue keyed by its due time. ``resolve_due(now)`` pops
every spike whose due time has passed, reads the instrument's current last
price, appends an ``ImpactRecord`` to the bounded ``ImpactLog`` and returns
the instrument to IDLE. Only one spike per instrument is outstanding at any
time; the debounce and measurement windows run independently.

Resolution is driven by the caller's clock, so a resolver that wakes late
only delays the record: ``resolved_at - t >= window_ms`` always holds.
"""
from __future__ import annotations

import heapq
import itertools
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Deque, Dict, Iterable, List, Optional, Tuple

from loguru import logger

from market_pulse.core.config import ImpactSettings
from market_pulse.core.series_store import SeriesKind, SeriesStore
from market_pulse.engine.signals import SignalSnapshot


class SpikeState(str, Enum):
    IDLE = "idle"
    SPIKE_PENDING = "spike_pending"


@dataclass(frozen=True)
class PendingSpike:
    instrument: str
    detected_at: int            # ms
    z_sent_at_spike: float
    reference_price: float
    due_at: int                 # ms, detected_at + impact window


@dataclass(frozen=True)
class ImpactRecord:
    instrument: str
    t: int                      # detection time (ms)
    z_sent_at_spike: float
    realized_return_pct: float
    reference_price: float
    resolved_price: float
    resolved_at: int            # ms

    def as_dict(self) -> Dict[str, Any]:
        return {
            "instrument": self.instrument,
            "t": self.t,
            "z_sent_at_spike": round(self.z_sent_at_spike, 2),
            "realized_return_pct": round(self.realized_return_pct, 3),
            "reference_price": self.reference_price,
            "resolved_price": self.resolved_price,
            "resolved_at": self.resolved_at,
        }


def realized_return_pct(reference_price: float, current_price: float) -> float:
    if not reference_price:
        return 0.0
    return (current_price - reference_price) / reference_price * 100.0


class ImpactLog:
    """Bounded, thread-safe log of impact records (oldest evicted first)."""

    def __init__(self, capacity: int = 100):
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self._cap = capacity
        self._buf: Deque[ImpactRecord] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self.evicted = 0

    def append(self, record: ImpactRecord) -> None:
        with self._lock:
            if len(self._buf) == self._cap:
                self.evicted += 1
            self._buf.append(record)

    def recent(self, n: Optional[int] = None) -> Tuple[ImpactRecord, ...]:
        """Most recent ``n`` records (all when ``n`` is None), oldest first."""
        with self._lock:
            items = tuple(self._buf)
        if n is None:
            return items
        if n <= 0:
            return ()
        return items[-n:]

    def all(self) -> Tuple[ImpactRecord, ...]:
        return self.recent()

    def __len__(self) -> int:
        return len(self._buf)

    def capacity(self) -> int:
        return self._cap


class ImpactDetector:
    def __init__(self, store: SeriesStore, log: ImpactLog, settings: Optional[ImpactSettings] = None):
        self.store = store
        self.log = log
        self.settings = settings or ImpactSettings()
        self._lock = threading.Lock()
        self._heap: List[Tuple[int, int, PendingSpike]] = []
        self._seq = itertools.count()
        self._pending: Dict[str, PendingSpike] = {}
        self._last_spike_at: Dict[str, int] = {}
        self.spikes_confirmed = 0
        self.spikes_unmeasured = 0

    # ------------------------------------------------------------------
    def state(self, instrument: str) -> SpikeState:
        with self._lock:
            return SpikeState.SPIKE_PENDING if instrument in self._pending else SpikeState.IDLE

    def last_spike_at(self, instrument: str) -> Optional[int]:
        return self._last_spike_at.get(instrument)

    def pending(self) -> List[PendingSpike]:
        with self._lock:
            return [item[2] for item in sorted(self._heap)]

    def next_due_at(self) -> Optional[int]:
        with self._lock:
            return self._heap[0][0] if self._heap else None

    # ------------------------------------------------------------------
    def observe(self, snapshot: SignalSnapshot, now: int) -> Optional[PendingSpike]:
        """Confirm a spike for ``snapshot.instrument`` if the transition fires."""
        cfg = self.settings
        z = snapshot.z_sent
        if abs(z) < cfg.spike_threshold:
            return None
        inst = snapshot.instrument
        with self._lock:
            if inst in self._pending:
                return None
            last = self._last_spike_at.get(inst)
            if last is not None and now - last < cfg.debounce_ms:
                return None
            self._last_spike_at[inst] = now
            self.spikes_confirmed += 1
            ref = snapshot.last_price
            if not ref:
                self.spikes_unmeasured += 1
                spike = None
            else:
                spike = PendingSpike(
                    instrument=inst,
                    detected_at=now,
                    z_sent_at_spike=z,
                    reference_price=float(ref),
                    due_at=now + cfg.window_ms,
                )
                heapq.heappush(self._heap, (spike.due_at, next(self._seq), spike))
                self._pending[inst] = spike
        if spike is None:
            logger.info(f"[Impact] {inst} spike z={z:.2f} without a reference price; not measured")
            return None
        logger.info(f"[Impact] {inst} spike z={z:.2f} ref={spike.reference_price} due_at={spike.due_at}")
        return spike

    def observe_all(self, snapshots: Iterable[SignalSnapshot], now: int) -> List[PendingSpike]:
        out = []
        for snap in snapshots:
            spike = self.observe(snap, now)
            if spike is not None:
                out.append(spike)
        return out

    # ------------------------------------------------------------------
    def resolve_due(self, now: int) -> List[ImpactRecord]:
        """Resolve every pending spike whose due time is ``<= now``."""
        due: List[PendingSpike] = []
        with self._lock:
            while self._heap and self._heap[0][0] <= now:
                due.append(heapq.heappop(self._heap)[2])
        records: List[ImpactRecord] = []
        for spike in due:
            last = self.store.last(spike.instrument, SeriesKind.PRICE)
            current = last.v if last is not None and last.v else spike.reference_price
            record = ImpactRecord(
                instrument=spike.instrument,
                t=spike.detected_at,
                z_sent_at_spike=spike.z_sent_at_spike,
                realized_return_pct=realized_return_pct(spike.reference_price, current),
                reference_price=spike.reference_price,
                resolved_price=current,
                resolved_at=now,
            )
            self.log.append(record)
            with self._lock:
                if self._pending.get(spike.instrument) is spike:
                    del self._pending[spike.instrument]
            records.append(record)
            logger.info(
                f"[Impact] {spike.instrument} z={spike.z_sent_at_spike:.2f} "
                f"ret={record.realized_return_pct:.3f}% after {now - spike.detected_at}ms"
            )
        return records

    def discard_pending(self) -> int:
        """Drop outstanding spikes without recording them (shutdown path)."""
        with self._lock:
            n = len(self._heap)
            self._heap.clear()
            self._pending.clear()
        if n:
            logger.warning(f"[Impact] discarded {n} pending spike(s)")
        return n


__all__ = [
    "ImpactDetector",
    "ImpactLog",
    "ImpactRecord",
    "PendingSpike",
    "SpikeState",
    "realized_return_pct",
]
