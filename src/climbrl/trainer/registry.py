"""Lookup utilities for constructing episode strategies by algorithm key."""
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from climbrl.trainer.base import EpisodeStrategy
from climbrl.trainer.off_policy import ValueEpisodeStrategy
from climbrl.trainer.on_policy import PolicyEpisodeStrategy

StrategyFactory = Callable[[Any, Optional[Mapping[str, Any]]], EpisodeStrategy]


def _normalize(key: str) -> str:
    return key.lower().strip()


_REGISTRY: Dict[str, StrategyFactory] = {}


def register_strategy(name: str, factory: StrategyFactory, *, aliases: Iterable[str] = ()) -> None:
    """Register a strategy factory under the provided name and optional aliases."""

    keys = {_normalize(name), *(_normalize(alias) for alias in aliases)}
    for key in keys:
        _REGISTRY[key] = factory


def resolve_strategy(name: str) -> StrategyFactory:
    key = _normalize(name)
    if key not in _REGISTRY:
        raise KeyError(f"Episode strategy '{name}' has not been registered")
    return _REGISTRY[key]


def create_strategy(
    name: str,
    agent: Any,
    config: Optional[Mapping[str, Any]] = None,
) -> EpisodeStrategy:
    """Instantiate the episode strategy for the requested algorithm key."""

    return resolve_strategy(name)(agent, config)


def registered_strategies() -> Dict[str, StrategyFactory]:
    return dict(_REGISTRY)


register_strategy("dqn", ValueEpisodeStrategy, aliases=("value",))
register_strategy("ppo", PolicyEpisodeStrategy, aliases=("policy",))


__all__ = [
    "StrategyFactory",
    "create_strategy",
    "register_strategy",
    "registered_strategies",
    "resolve_strategy",
]
