"""Episode strategy for on-policy actor-critic agents."""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from climbrl.envs.climbing_env import ClimbingEnvironment
from climbrl.policies.ppo.base import Trajectory
from climbrl.policies.ppo.ppo import PPOAgent
from climbrl.trainer.base import EpisodeResult, EpisodeStrategy, StepHook


class PolicyEpisodeStrategy(EpisodeStrategy):
    """Collect a full-episode trajectory and train once when it ends."""

    name = "policy"

    def __init__(self, agent: PPOAgent, config: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(agent, config)
        self.stochastic = bool(self.config.get("stochastic", True))
        self.last_trajectory: Optional[Trajectory] = None

    def run_episode(
        self,
        env: ClimbingEnvironment,
        episode_index: int,
        step_hook: Optional[StepHook] = None,
    ) -> EpisodeResult:
        trajectory = Trajectory()
        state = env.reset()

        while True:
            selection = self.agent.select_action(state, stochastic=self.stochastic)
            result = env.step(selection.action)
            trajectory.append(
                state,
                selection.action,
                result.reward,
                selection.log_prob,
                selection.value,
                result.done,
            )
            state = result.state
            keep_going = step_hook(result) if step_hook is not None else True
            if result.done:
                break
            if not keep_going:
                return EpisodeResult.from_env(env, episode_index, aborted=True)

        self.last_trajectory = trajectory
        stats: Dict[str, Any] = dict(self.agent.train([trajectory]))
        stats["trajectory_length"] = len(trajectory)
        return EpisodeResult.from_env(env, episode_index, train_stats=stats)


__all__ = ["PolicyEpisodeStrategy"]
