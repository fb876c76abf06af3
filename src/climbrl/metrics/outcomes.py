"""Episode outcome classification for the climbing task."""

from enum import Enum
from typing import Optional


class EpisodeOutcome(Enum):
    """Mutually exclusive ways a climbing episode can end.

    Priority when several conditions hold on the same step:
    GOAL_REACHED, FALLEN, OUT_OF_BOUNDS, MAX_STEPS.
    ABORTED marks an episode stopped between steps by the orchestrator.
    """
    GOAL_REACHED = "goal_reached"
    FALLEN = "fallen"
    OUT_OF_BOUNDS = "out_of_bounds"
    MAX_STEPS = "max_steps"
    ABORTED = "aborted"

    def is_success(self) -> bool:
        return self == EpisodeOutcome.GOAL_REACHED

    @classmethod
    def from_reason(cls, reason: Optional[str]) -> "EpisodeOutcome":
        if reason is None:
            return cls.ABORTED
        try:
            return cls(reason)
        except ValueError as exc:
            raise ValueError(f"Unknown termination reason '{reason}'") from exc


__all__ = ["EpisodeOutcome"]
