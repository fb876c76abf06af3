"""Reward strategies for the climbing task."""

from .ascent import AscentReward
from .base import RewardAccumulator, RewardStep, RewardStrategy

__all__ = ["AscentReward", "RewardAccumulator", "RewardStep", "RewardStrategy"]
