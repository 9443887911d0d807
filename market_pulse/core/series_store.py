"""Rolling per-instrument series buffers.

Each tracked instrument owns two append-only series (price, info) of
timestamped scalars. Buffers are bounded two ways:

  * window:   samples older than ``now - window_ms`` are evicted from the
              front, once per compute tick via ``prune`` (never per append)
  * capacity: when a series grows past ``capacity`` the oldest block
              (``compaction_ratio`` of the buffer, half by default) is dropped
              at once, regardless of age

Eviction works on append order, not time order. Out-of-order arrivals are
tolerated; the buffer remembers that it saw one and the next ``prune`` sweeps
stragglers that are already older than the window.

Every series carries its own lock. There is no lock shared across
instruments, so producers for different instruments never contend.
"""
from __future__ import annotations

import math
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, Dict, Iterable, Optional, Tuple, Union

from loguru import logger

from .exceptions import UnknownInstrumentError


class SeriesKind(str, Enum):
    PRICE = "price"
    INFO = "info"


@dataclass(frozen=True, slots=True)
class Sample:
    t: int      # timestamp (ms)
    v: float


class RollingSeries:
    def __init__(self, window_ms: int, capacity: int, compaction_ratio: float = 0.5, name: str = ""):
        if window_ms <= 0:
            raise ValueError("window_ms must be > 0")
        if capacity <= 1:
            raise ValueError("capacity must be > 1")
        if not 0.0 < compaction_ratio <= 1.0:
            raise ValueError("compaction_ratio must be in (0, 1]")
        self.window_ms = int(window_ms)
        self.capacity = int(capacity)
        self.compaction_ratio = float(compaction_ratio)
        self.name = name
        self._buf: Deque[Sample] = deque()
        self._lock = threading.Lock()
        self._disordered = False
        self.compactions = 0
        self.dropped = 0

    def append(self, sample: Sample) -> None:
        """O(1) amortized; a capacity overflow drops the oldest block in bulk."""
        dropped = 0
        with self._lock:
            if self._buf and sample.t < self._buf[-1].t:
                self._disordered = True
            self._buf.append(sample)
            if len(self._buf) > self.capacity:
                dropped = self._compact_locked()
        if dropped:
            logger.debug(f"[Series] {self.name} over capacity ({self.capacity}); dropped {dropped} oldest samples")

    def _compact_locked(self) -> int:
        n = max(1, math.ceil(len(self._buf) * self.compaction_ratio))
        for _ in range(n):
            self._buf.popleft()
        self.compactions += 1
        self.dropped += n
        return n

    def prune(self, now: int) -> int:
        """Drop leading samples with ``t < now - window_ms``. Returns the count removed."""
        cutoff = now - self.window_ms
        removed = 0
        with self._lock:
            buf = self._buf
            while buf and buf[0].t < cutoff:
                buf.popleft()
                removed += 1
            if self._disordered and buf:
                kept = [s for s in buf if s.t >= cutoff]
                removed += len(buf) - len(kept)
                self._buf = deque(kept)
                self._disordered = any(b.t < a.t for a, b in zip(kept, kept[1:]))
            elif not buf:
                self._disordered = False
        return removed

    def snapshot_since(self, now: int, lookback_ms: int) -> Tuple[Sample, ...]:
        """Read-only view of samples with ``t >= now - lookback_ms`` (append order)."""
        cutoff = now - lookback_ms
        with self._lock:
            return tuple(s for s in self._buf if s.t >= cutoff)

    def snapshot(self) -> Tuple[Sample, ...]:
        with self._lock:
            return tuple(self._buf)

    def last(self) -> Optional[Sample]:
        with self._lock:
            return self._buf[-1] if self._buf else None

    def __len__(self) -> int:
        return len(self._buf)

    def __repr__(self) -> str:
        return f"RollingSeries({self.name!r}, len={len(self._buf)}, window_ms={self.window_ms}, capacity={self.capacity})"


KindLike = Union[SeriesKind, str]


class SeriesStore:
    """Owns one price and one info series per instrument of a static set."""

    def __init__(self, instruments: Iterable[str], window_ms: int, capacity: int, compaction_ratio: float = 0.5):
        self._instruments = tuple(instruments)
        if not self._instruments:
            raise ValueError("at least one instrument is required")
        self.window_ms = int(window_ms)
        self._series: Dict[str, Dict[SeriesKind, RollingSeries]] = {
            inst: {
                kind: RollingSeries(window_ms, capacity, compaction_ratio, name=f"{inst}:{kind.value}")
                for kind in SeriesKind
            }
            for inst in self._instruments
        }

    @classmethod
    def from_settings(cls, settings) -> "SeriesStore":
        return cls(
            settings.runtime.instruments,
            window_ms=settings.series.window_ms,
            capacity=settings.series.capacity,
            compaction_ratio=settings.series.compaction_ratio,
        )

    @property
    def instruments(self) -> Tuple[str, ...]:
        return self._instruments

    def series(self, instrument: str, kind: KindLike) -> RollingSeries:
        try:
            per_kind = self._series[instrument]
        except KeyError:
            raise UnknownInstrumentError(instrument) from None
        return per_kind[SeriesKind(kind)]

    def append(self, instrument: str, kind: KindLike, sample: Sample) -> None:
        self.series(instrument, kind).append(sample)

    def prune(self, instrument: str, kind: KindLike, now: int) -> int:
        return self.series(instrument, kind).prune(now)

    def snapshot_since(self, instrument: str, kind: KindLike, now: int, lookback_ms: int) -> Tuple[Sample, ...]:
        return self.series(instrument, kind).snapshot_since(now, lookback_ms)

    def snapshot(self, instrument: str, kind: KindLike) -> Tuple[Sample, ...]:
        return self.series(instrument, kind).snapshot()

    def last(self, instrument: str, kind: KindLike) -> Optional[Sample]:
        return self.series(instrument, kind).last()

    def seed(self, kind: KindLike, value: float, now: int) -> None:
        """Append one baseline sample to the given series of every instrument."""
        for inst in self._instruments:
            self.append(inst, kind, Sample(now, float(value)))

    def counts(self) -> Dict[str, Dict[str, int]]:
        return {
            inst: {kind.value: len(series) for kind, series in per_kind.items()}
            for inst, per_kind in self._series.items()
        }


__all__ = ["Sample", "SeriesKind", "RollingSeries", "SeriesStore"]
