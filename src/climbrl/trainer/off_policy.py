"""Episode strategy for replay-based value agents."""
from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Optional

import numpy as np

from climbrl.envs.climbing_env import ClimbingEnvironment
from climbrl.policies.dqn.dqn import DQNAgent
from climbrl.trainer.base import EpisodeResult, EpisodeStrategy, StepHook


class ValueEpisodeStrategy(EpisodeStrategy):
    """Remember every transition and train opportunistically while acting."""

    name = "value"

    def __init__(self, agent: DQNAgent, config: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(agent, config)
        cfg = self.config
        self.batch_size = int(cfg.get("batch_size", agent.batch_size))
        self.train_every = max(int(cfg.get("train_every", 1)), 1)
        self.target_update_interval = max(int(cfg.get("target_update_interval", 10)), 1)
        self._env_steps = 0

    def run_episode(
        self,
        env: ClimbingEnvironment,
        episode_index: int,
        step_hook: Optional[StepHook] = None,
    ) -> EpisodeResult:
        agent = self.agent
        state = env.reset()
        losses: List[float] = []
        recoveries = 0
        aborted = False

        while True:
            action = agent.select_action(state)
            result = env.step(action)
            agent.remember(state, action, float(result.reward), result.state, bool(result.done))
            self._env_steps += 1

            if self._env_steps % self.train_every == 0 and agent.can_train(self.batch_size):
                stats = agent.train(self.batch_size)
                if stats["recovered"]:
                    recoveries += 1
                elif math.isfinite(stats["loss"]):
                    losses.append(stats["loss"])

            state = result.state
            keep_going = step_hook(result) if step_hook is not None else True
            if result.done:
                break
            if not keep_going:
                aborted = True
                break

        train_stats: Dict[str, Any] = {
            "updates": len(losses),
            "recoveries": recoveries,
            "exploration_rate": agent.exploration_rate,
            "buffer_size": len(agent.buffer),
        }
        if losses:
            train_stats["loss"] = float(np.mean(losses))
        return EpisodeResult.from_env(env, episode_index, aborted=aborted, train_stats=train_stats)

    def on_episode_end(self, episode_index: int) -> None:
        self.agent.decay_exploration()
        self.agent.episode_count += 1
        if (episode_index + 1) % self.target_update_interval == 0:
            self.agent.update_target_estimator()

    def exploration_rate(self) -> Optional[float]:
        return float(self.agent.exploration_rate)

    def hyperparameters(self) -> Dict[str, Any]:
        params = super().hyperparameters()
        params.update(
            {
                "train_every": self.train_every,
                "target_update_interval": self.target_update_interval,
            }
        )
        return params


__all__ = ["ValueEpisodeStrategy"]
