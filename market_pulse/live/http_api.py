"""Read-only HTTP surface (aiohttp).

  GET /health    {"ok": true, "tick_seq": N}
  GET /signals   PulseView.as_dict(); optional ?limit=N for impacts

Nothing here mutates the engine. A failure while building the view answers
200 with empty data and ``"error": "temporary"`` so polling dashboards keep
their last good state.
"""
from __future__ import annotations

from typing import Optional

from aiohttp import web
from loguru import logger

from market_pulse.engine.pulse import PulseEngine

NO_STORE = {"Cache-Control": "no-store"}


def build_app(engine: PulseEngine) -> web.Application:
    app = web.Application()

    async def health(_request: web.Request) -> web.Response:
        return web.json_response({"ok": True, "tick_seq": engine.read().tick_seq}, headers=NO_STORE)

    async def signals(request: web.Request) -> web.Response:
        limit_raw = request.query.get("limit")
        limit: Optional[int] = None
        if limit_raw:
            try:
                limit = int(limit_raw)
            except ValueError:
                return web.json_response({"error": f"invalid limit {limit_raw!r}"}, status=400)
            if limit <= 0:
                return web.json_response({"error": "limit must be > 0"}, status=400)
        try:
            payload = engine.read(limit).as_dict()
        except Exception as e:
            logger.error(f"[HttpApi] signals route error: {e}")
            payload = {
                "window_seconds": engine.settings.series.window_ms / 1000.0,
                "instruments": list(engine.instruments),
                "data": [],
                "impacts": [],
                "error": "temporary",
            }
        return web.json_response(payload, headers=NO_STORE)

    app.router.add_get("/health", health)
    app.router.add_get("/signals", signals)
    return app


class HttpApi:
    def __init__(self, engine: PulseEngine, host: str = "0.0.0.0", port: int = 4000):
        self.engine = engine
        self.host = host
        self.port = port
        self._runner: Optional[web.AppRunner] = None

    async def start(self) -> None:
        app = build_app(self.engine)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"[HttpApi] listening on {self.host}:{self.port}")

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None


__all__ = ["HttpApi", "build_app"]
