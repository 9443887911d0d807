"""Market Pulse: price / sentiment divergence and spike-impact engine.

Two independent streams arrive per instrument (price ticks and sentiment
scores). Every tick the engine derives first-difference z-scores for both,
their divergence and a heuristic predictor, watches the sentiment z-score for
spikes, and measures the realized price move a fixed delay after each spike.

Public Entry Points:
  - PulseEngine (ingest / tick / read facade)
  - PulseSettings and load_settings() for configuration
  - PulseRunner for the asyncio compute + resolution loops
"""

from .core.config import PulseSettings, load_settings  # noqa: F401
from .engine.pulse import PulseEngine, PulseView  # noqa: F401

__version__ = "0.3.0"
