"""Signal computation, spike impact detection and lead-lag analytics."""

from .signals import SignalComputer, SignalSnapshot  # noqa: F401
from .impact import ImpactDetector, ImpactLog, ImpactRecord, PendingSpike  # noqa: F401
from .lead_lag import LeadLag, estimate_lead_lag  # noqa: F401
from .pulse import PulseEngine, PulseView  # noqa: F401
