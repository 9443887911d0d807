"""
Inbound Event Models

Producers (price tickers, sentiment scorers, the replay feed) hand the engine
timestamped scalars. These models give that boundary a validated, explicit
shape; `PulseEngine.ingest_event` accepts either of them.

Pydantic models are used for data validation and to provide a clear,
self-documenting structure.
"""

from typing import Literal, Union

from pydantic import BaseModel, Field


class PriceTickEvent(BaseModel):
    """
    Represents a single traded / quoted price for an instrument.
    """
    event_type: Literal["priceTick"] = "priceTick"
    instrument: str                                 # e.g. "BTC"
    timestamp: int                                  # Event time (ms)
    price: float = Field(allow_inf_nan=False)


class InfoScoreEvent(BaseModel):
    """
    Represents a scored piece of information (headline, post, edit) in [-1, 1].
    """
    event_type: Literal["infoScore"] = "infoScore"
    instrument: str
    timestamp: int                                  # Event time (ms)
    score: float = Field(ge=-1.0, le=1.0, allow_inf_nan=False)


# A union of all events the engine ingests.
PulseEvent = Union[PriceTickEvent, InfoScoreEvent]
