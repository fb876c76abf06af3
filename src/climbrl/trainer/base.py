"""Episode strategy interface shared by the value and policy learners."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from climbrl.envs.climbing_env import ClimbingEnvironment, StepResult

# Called after every environment step; returning False aborts the episode.
StepHook = Callable[[StepResult], bool]


@dataclass
class EpisodeResult:
    episode: int
    total_reward: float
    steps: int
    success: bool
    highest_zone: int
    termination_reason: Optional[str]
    aborted: bool = False
    train_stats: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(
        cls,
        env: ClimbingEnvironment,
        episode_index: int,
        *,
        aborted: bool = False,
        train_stats: Optional[Mapping[str, Any]] = None,
    ) -> "EpisodeResult":
        stats = env.episode_stats()
        return cls(
            episode=episode_index,
            total_reward=float(stats["total_reward"]),
            steps=int(stats["steps"]),
            success=bool(stats["success"]),
            highest_zone=int(stats["highest_zone"]),
            termination_reason=stats["termination_reason"],
            aborted=aborted,
            train_stats=dict(train_stats or {}),
        )


class EpisodeStrategy(ABC):
    """Runs one training episode for a specific family of agents.

    The orchestrator picks a strategy once at construction and never inspects
    the agent type afterwards.
    """

    name: str = "base"

    def __init__(self, agent: Any, config: Optional[Mapping[str, Any]] = None) -> None:
        self.agent = agent
        self.config: Dict[str, Any] = dict(config or {})

    @abstractmethod
    def run_episode(
        self,
        env: ClimbingEnvironment,
        episode_index: int,
        step_hook: Optional[StepHook] = None,
    ) -> EpisodeResult:
        """Reset ``env``, act until terminal and learn from the experience."""

    def on_episode_end(self, episode_index: int) -> None:  # pragma: no cover - default noop
        return None

    def exploration_rate(self) -> Optional[float]:
        return None

    def state_dict(self) -> Dict[str, Any]:
        return self.agent.state_dict()

    def load_state_dict(self, snapshot: Mapping[str, Any]) -> None:
        self.agent.load_state_dict(snapshot)

    def hyperparameters(self) -> Dict[str, Any]:
        return dict(self.agent.hyperparameters())


__all__ = ["EpisodeResult", "EpisodeStrategy", "StepHook"]
