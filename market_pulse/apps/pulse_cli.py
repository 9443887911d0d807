"""CLI entrypoint for the Market Pulse engine.

Loads settings, builds the engine and runner, optionally starts the synthetic
replay producer and the read-only HTTP API, and logs a compact status line
per instrument every few ticks.

Examples:
    market-pulse --replay --duration 180
    market-pulse --config settings.yaml --serve --port 4000
"""
from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from typing import List, Optional

from loguru import logger

from market_pulse.core.config import load_settings
from market_pulse.core.exceptions import ConfigError
from market_pulse.engine.pulse import PulseEngine, PulseView
from market_pulse.live.http_api import HttpApi
from market_pulse.live.replay import ReplayFeed
from market_pulse.live.runner import PulseRunner


def parse_args(argv: Optional[List[str]] = None):
    p = argparse.ArgumentParser(description="Market Pulse: price / sentiment divergence engine")
    p.add_argument("--config", default="settings.yaml")
    p.add_argument("--replay", action="store_true", help="Feed synthetic price/sentiment ticks (offline demo)")
    p.add_argument("--serve", action="store_true", help="Expose /health and /signals over HTTP")
    p.add_argument("--port", type=int, default=None, help="HTTP port (overrides api.port)")
    p.add_argument("--duration", type=float, default=0.0, help="Stop after N seconds (0 = run until Ctrl+C)")
    p.add_argument("--status-every", type=int, default=10, help="Log a status line every N ticks (0 = never)")
    p.add_argument("--log-level", default="INFO")
    p.add_argument("--json-log", action="store_true", help="Emit structured JSON log lines")
    return p.parse_args(argv)


def format_status(view: PulseView) -> str:
    parts = []
    for inst in view.instruments:
        snap = view.snapshots.get(inst)
        if snap is None:
            continue
        flag = " STRONG" if snap.strong else ""
        parts.append(
            f"{inst} px={snap.last_price} d1m={snap.price_delta_1m_pct:+.3f}% "
            f"zS={snap.z_sent:+.2f} zP={snap.z_price:+.2f} div={snap.divergence:+.2f} "
            f"info1m={snap.info_count_1m}{flag}"
        )
    s = view.summary
    parts.append(f"impacts={s.count} avg={s.avg_return_pct:+.3f}% bulls={s.bulls} bears={s.bears}")
    return " | ".join(parts)


def setup_logging(level: str, json_log: bool) -> None:
    logger.remove()
    if json_log:
        logger.add(sys.stdout, level=level.upper(), serialize=True, enqueue=True)
    else:
        logger.add(
            lambda msg: print(msg, end=""),
            level=level.upper(),
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
            colorize=True,
        )


async def _amain(args) -> int:
    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    engine = PulseEngine(settings)
    feeds = []
    if args.replay or settings.replay.enabled:
        feeds.append(ReplayFeed(engine))
    api = None
    if args.serve or settings.api.enabled:
        api = HttpApi(engine, host=settings.api.host, port=args.port or settings.api.port)
    runner = PulseRunner(engine, feeds=feeds, api=api)

    if args.status_every > 0:
        def _status(view: PulseView) -> None:
            if view.tick_seq % args.status_every == 0:
                logger.info(format_status(view))
        engine.subscribe(_status)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, runner.request_stop)
        except (NotImplementedError, RuntimeError):  # pragma: no cover - Windows
            pass

    if args.duration > 0:
        await runner.run_for(args.duration)
    else:
        await runner.run_forever()
    return 0


def run(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level, args.json_log)
    try:
        return asyncio.run(_amain(args))
    except KeyboardInterrupt:
        logger.warning("Ctrl+C received; shutting down")
        return 130


if __name__ == "__main__":  # pragma: no cover
    sys.exit(run())
