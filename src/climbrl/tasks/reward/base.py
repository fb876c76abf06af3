"""Base primitives shared by reward tasks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np


RewardComponents = Dict[str, float]
RewardComputation = Tuple[float, RewardComponents]


@dataclass
class RewardStep:
    """Observation bundle passed to reward strategies after one physics tick."""

    zone: int
    previous_zone: int
    highest_zone: int
    success: bool
    fallen: bool
    out_of_bounds: bool
    velocity: np.ndarray
    direction_to_next_zone: np.ndarray
    steps_without_progress: int
    step_index: int
    prev_state: Optional[np.ndarray] = None
    new_state: Optional[np.ndarray] = None
    action: Optional[int] = None


@dataclass
class RewardAccumulator:
    """Tracks the summed reward and its per-term breakdown."""

    total: float = 0.0
    components: Dict[str, float] = field(default_factory=dict)

    def add(self, key: str, value: float) -> None:
        if value:
            self.total += value
            self.components[key] = self.components.get(key, 0.0) + float(value)


class RewardStrategy:
    """Base interface for concrete reward strategies."""

    name: str = "base"

    def reset(self, episode_index: int) -> None:  # pragma: no cover - default noop
        return None

    def compute(self, step: RewardStep, commit: bool = True) -> RewardComputation:
        """Reward for ``step``. With ``commit=False`` no strategy state may change."""
        raise NotImplementedError


__all__ = [
    "RewardAccumulator",
    "RewardComponents",
    "RewardComputation",
    "RewardStep",
    "RewardStrategy",
]
