"""Async runner coordinating producers -> compute tick -> impact resolution.

Two independent loops share one ``PulseEngine``:

  * compute loop:  ``engine.tick()`` every ``runtime.tick_interval_ms``
  * resolver loop: sleeps until the earliest pending spike is due (capped by
    an idle poll) and calls ``engine.resolve_due()``

Neither loop waits for the other. A resolver that wakes late only delays
records; due times are absolute, so the measurement floor always holds.

Producers (e.g. ``ReplayFeed``) are started as extra tasks and only need
``async run()`` and ``stop()``. On ``stop()`` outstanding spikes are either
drained (waited out and resolved) or discarded, per
``impact.drain_on_shutdown``.
"""
from __future__ import annotations

import asyncio
from typing import List, Optional, Protocol

from loguru import logger

from market_pulse.engine.pulse import PulseEngine


class Feed(Protocol):
    async def run(self) -> None: ...

    def stop(self) -> None: ...


class PulseRunner:
    def __init__(self, engine: PulseEngine, feeds: Optional[List[Feed]] = None, idle_poll_ms: int = 250, api=None):
        self.engine = engine
        self.settings = engine.settings
        self.feeds: List[Feed] = list(feeds or [])
        self.idle_poll_ms = idle_poll_ms
        self.api = api
        self._stop = asyncio.Event()
        self._loop_tasks: List[asyncio.Task] = []
        self._feed_tasks: List[asyncio.Task] = []
        self.ticks = 0
        self.tick_errors = 0
        self.resolved = 0
        self.resolve_errors = 0

    @property
    def running(self) -> bool:
        return bool(self._loop_tasks) and not self._stop.is_set()

    async def start(self) -> None:
        if self._loop_tasks:
            return
        self._stop.clear()
        logger.info(
            f"[PulseRunner] starting (tick_interval_ms={self.settings.runtime.tick_interval_ms}, feeds={len(self.feeds)})"
        )
        for feed in self.feeds:
            self._feed_tasks.append(asyncio.create_task(feed.run(), name=f"feed:{type(feed).__name__}"))
        self._loop_tasks.append(asyncio.create_task(self._compute_loop(), name="compute"))
        self._loop_tasks.append(asyncio.create_task(self._resolver_loop(), name="resolver"))
        if self.api is not None:
            try:
                await self.api.start()
            except Exception as e:
                logger.error(f"[PulseRunner] http api failed to start {e}")

    async def _sleep(self, seconds: float) -> bool:
        """Sleep unless stopped first. Returns True when the stop flag is set."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=max(0.0, seconds))
        except asyncio.TimeoutError:
            return False
        return True

    async def _compute_loop(self) -> None:
        loop = asyncio.get_running_loop()
        interval = self.settings.runtime.tick_interval_ms / 1000.0
        while not self._stop.is_set():
            started = loop.time()
            try:
                self.engine.tick()
                self.ticks += 1
            except Exception:
                self.tick_errors += 1
                logger.exception("[PulseRunner] compute tick failed")
            if await self._sleep(interval - (loop.time() - started)):
                break

    def _resolve_once(self) -> None:
        try:
            records = self.engine.resolve_due()
            self.resolved += len(records)
        except Exception:
            self.resolve_errors += 1
            logger.exception("[PulseRunner] impact resolution failed")

    def _next_wait(self) -> float:
        idle = self.idle_poll_ms / 1000.0
        due = self.engine.detector.next_due_at()
        if due is None:
            return idle
        return min(idle, max(0.0, (due - self.engine.clock()) / 1000.0))

    async def _resolver_loop(self) -> None:
        while not self._stop.is_set():
            self._resolve_once()
            if await self._sleep(self._next_wait()):
                break

    async def _drain(self) -> None:
        pending = len(self.engine.detector.pending())
        if pending:
            logger.info(f"[PulseRunner] draining {pending} pending spike(s) before shutdown")
        while self.engine.detector.next_due_at() is not None:
            self._resolve_once()
            if self.engine.detector.next_due_at() is None:
                break
            await asyncio.sleep(self._next_wait())

    def request_stop(self) -> None:
        """Ask ``run_forever`` / ``run_for`` to wind down (safe from signal handlers)."""
        self._stop.set()

    async def stop(self) -> None:
        self._stop.set()
        for feed in self.feeds:
            try:
                feed.stop()
            except Exception as e:
                logger.warning(f"[PulseRunner] feed stop error {e}")
        for t in self._feed_tasks:
            t.cancel()
        await asyncio.gather(*self._loop_tasks, *self._feed_tasks, return_exceptions=True)
        self._loop_tasks.clear()
        self._feed_tasks.clear()
        if self.settings.impact.drain_on_shutdown:
            await self._drain()
        else:
            self.engine.detector.discard_pending()
        if self.api is not None:
            await self.api.stop()
        logger.info(f"[PulseRunner] stopped (ticks={self.ticks} impacts_resolved={self.resolved})")

    async def run_for(self, seconds: float) -> None:
        await self.start()
        try:
            await self._sleep(seconds)
        finally:
            await self.stop()

    async def run_forever(self) -> None:
        await self.start()
        try:
            await self._stop.wait()
        finally:
            await self.stop()


__all__ = ["Feed", "PulseRunner"]
