"""Runtime assembly of a training run from configuration."""

from .builder import build_agent, build_env, build_orchestrator, build_strategy, seed_everything  # noqa: F401

__all__ = [
    "build_agent",
    "build_env",
    "build_orchestrator",
    "build_strategy",
    "seed_everything",
]
