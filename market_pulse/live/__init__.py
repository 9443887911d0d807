"""Async runtime: compute / resolver loops, demo producer and HTTP read surface.

Importing this package has no side effects; nothing starts until
``PulseRunner.start()`` (or the ``market-pulse`` CLI) is invoked.
"""

from .runner import PulseRunner  # noqa: F401
from .replay import ReplayFeed  # noqa: F401

__all__ = [
    "PulseRunner",
    "ReplayFeed",
]
