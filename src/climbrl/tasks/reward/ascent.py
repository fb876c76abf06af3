"""Priority-ordered reward for climbing the zone staircase."""

from __future__ import annotations

import math
from typing import Any, Mapping, Set

import numpy as np

from climbrl.utils.config_schema import RewardSchema

from .base import RewardAccumulator, RewardComputation, RewardStep, RewardStrategy


class AscentReward(RewardStrategy):
    """Reward decomposition where the first matching rule wins.

    1. success zone reached -> ``success_reward``
    2. fallen or out of bounds -> ``failure_reward``
    3. new highest zone -> ``zone_reward * zone_reward_decay**zone`` plus a
       one-off ``first_arrival_bonus`` per zone over the strategy's lifetime
    4. dropped below the previously occupied zone -> ``regression_penalty`` per zone lost
    5. shaping: time cost, off-track alignment, stagnation penalty

    The result is clamped to ``reward_range``.
    """

    name = "ascent"

    def __init__(self, cfg: Mapping[str, Any] | RewardSchema | None = None) -> None:
        if cfg is None:
            schema = RewardSchema()
        elif isinstance(cfg, RewardSchema):
            schema = cfg
        else:
            schema = RewardSchema.from_dict(cfg)
        self.cfg = schema
        self.reward_min, self.reward_max = (float(v) for v in schema.reward_range)
        self.discovered_zones: Set[int] = set()

    def reset(self, episode_index: int) -> None:
        # Zone discovery is tracked for the lifetime of the environment, not per episode.
        return None

    def compute(self, step: RewardStep, commit: bool = True) -> RewardComputation:
        cfg = self.cfg
        acc = RewardAccumulator()

        if step.success:
            acc.add("success", cfg.success_reward)
            if commit and step.zone >= 0:
                self.discovered_zones.add(step.zone)
            return self._clamp(acc.total), acc.components

        if step.fallen or step.out_of_bounds:
            acc.add("failure", cfg.failure_reward)
            return self._clamp(acc.total), acc.components

        if step.zone > step.highest_zone:
            acc.add("zone_progress", cfg.zone_reward * cfg.zone_reward_decay ** step.zone)
            if step.zone not in self.discovered_zones:
                if commit:
                    self.discovered_zones.add(step.zone)
                acc.add("first_arrival", cfg.first_arrival_bonus)
            return self._clamp(acc.total), acc.components

        if 0 <= step.zone < step.previous_zone:
            acc.add("regression", cfg.regression_penalty * (step.previous_zone - step.zone))
            return self._clamp(acc.total), acc.components

        acc.add("time", cfg.time_penalty)
        if step.zone < 0:
            acc.add("alignment", cfg.alignment_weight * _cosine(step.velocity, step.direction_to_next_zone))
        overdue = step.steps_without_progress - cfg.stagnation_grace
        if overdue > 0:
            acc.add("stagnation", max(cfg.stagnation_penalty * overdue, cfg.stagnation_cap))
        return self._clamp(acc.total), acc.components

    def _clamp(self, value: float) -> float:
        if not math.isfinite(value):
            value = 0.0
        return float(min(max(value, self.reward_min), self.reward_max))


def _cosine(a: np.ndarray, b: np.ndarray) -> float:
    norm = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm < 1e-8:
        return 0.0
    return float(np.clip(np.dot(a, b) / norm, -1.0, 1.0))


__all__ = ["AscentReward"]
