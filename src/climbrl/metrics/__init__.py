"""Episode outcome and metrics tracking."""

from .outcomes import EpisodeOutcome
from .tracker import EpisodeMetrics, MetricsTracker

__all__ = ["EpisodeOutcome", "EpisodeMetrics", "MetricsTracker"]
