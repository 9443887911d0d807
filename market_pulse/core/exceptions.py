"""Error types raised by the engine.

Insufficient data is never an error here; statistics resolve it to neutral
values. What remains are configuration problems and identifiers outside the
static instrument set.
"""


class MarketPulseError(Exception):
    """Base class for all engine errors."""
    pass


class ConfigError(MarketPulseError):
    """Custom exception for configuration-related errors."""
    pass


class UnknownInstrumentError(MarketPulseError, KeyError):
    """Raised when an instrument is not part of the configured set."""

    def __init__(self, instrument: str):
        super().__init__(instrument)
        self.instrument = instrument

    def __str__(self) -> str:
        return f"unknown instrument {self.instrument!r}"
