"""Synthetic replay producer for offline demos.

Every ``replay.interval_ms`` it pushes one price and one sentiment score per
instrument through the same event boundary real producers use:

  price:     random walk, ``last * (1 + (u - 0.5) / 1000)``, starting from
             ``replay.base_prices`` (or ``default_base_price``)
  sentiment: ``(u - 0.5) / 4``, i.e. uniform in [-0.125, 0.125]

``u`` comes from a private ``random.Random`` so a seed makes runs repeatable.
"""
from __future__ import annotations

import asyncio
import random
from typing import Optional

from loguru import logger

from market_pulse.core.config import ReplaySettings
from market_pulse.core.events import InfoScoreEvent, PriceTickEvent
from market_pulse.core.series_store import SeriesKind
from market_pulse.engine.pulse import PulseEngine


class ReplayFeed:
    def __init__(self, engine: PulseEngine, settings: Optional[ReplaySettings] = None, rng: Optional[random.Random] = None):
        self.engine = engine
        self.settings = settings or engine.settings.replay
        self.rng = rng or random.Random(self.settings.seed)
        self._running = False
        self.emitted = 0

    def _base_price(self, instrument: str) -> float:
        last = self.engine.store.last(instrument, SeriesKind.PRICE)
        if last is not None and last.v:
            return last.v
        return float(self.settings.base_prices.get(instrument, self.settings.default_base_price))

    def emit_once(self, now: Optional[int] = None) -> None:
        t = self.engine.clock() if now is None else int(now)
        for inst in self.engine.instruments:
            price = self._base_price(inst) * (1 + (self.rng.random() - 0.5) / 1000)
            score = (self.rng.random() - 0.5) / 4
            self.engine.ingest_event(PriceTickEvent(instrument=inst, timestamp=t, price=price))
            self.engine.ingest_event(InfoScoreEvent(instrument=inst, timestamp=t, score=score))
        self.emitted += 1

    async def run(self) -> None:
        self._running = True
        logger.info(f"[Replay] synthetic ticks every {self.settings.interval_ms}ms for {list(self.engine.instruments)}")
        while self._running:
            self.emit_once()
            await asyncio.sleep(self.settings.interval_ms / 1000.0)

    def stop(self) -> None:
        self._running = False


__all__ = ["ReplayFeed"]
