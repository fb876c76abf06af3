"""Episode strategies and their registry."""

from .base import EpisodeResult, EpisodeStrategy, StepHook
from .off_policy import ValueEpisodeStrategy
from .on_policy import PolicyEpisodeStrategy
from .registry import create_strategy, register_strategy, resolve_strategy

__all__ = [
    "EpisodeResult",
    "EpisodeStrategy",
    "StepHook",
    "ValueEpisodeStrategy",
    "PolicyEpisodeStrategy",
    "create_strategy",
    "register_strategy",
    "resolve_strategy",
]
