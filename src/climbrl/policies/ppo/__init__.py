from .base import ActionSelection, Trajectory, compute_gae
from .ppo import PPOAgent

__all__ = ["ActionSelection", "PPOAgent", "Trajectory", "compute_gae"]
