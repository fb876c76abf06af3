"""Replay storage shared across agents."""

from .replay import ReplayBatch, ReplayBuffer, Transition

__all__ = ["ReplayBatch", "ReplayBuffer", "Transition"]
