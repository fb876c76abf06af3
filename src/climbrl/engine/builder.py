"""Helper routines for assembling a training run from configuration."""
from __future__ import annotations

import random
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import numpy as np
import torch

from climbrl.envs.actions import N_ACTIONS
from climbrl.envs.climbing_env import STATE_DIM, ClimbingEnvironment
from climbrl.physics.backend import PhysicsBackend
from climbrl.policies.dqn.dqn import DQNAgent
from climbrl.policies.ppo.ppo import PPOAgent
from climbrl.render.backend import RenderingBackend
from climbrl.runner.orchestrator import TrainingOrchestrator
from climbrl.tasks.reward.ascent import AscentReward
from climbrl.trainer.base import EpisodeStrategy
from climbrl.trainer.registry import create_strategy
from climbrl.utils.checkpoint import CheckpointManager
from climbrl.utils.config_models import ExperimentConfig
from climbrl.utils.logger import Logger

AgentFactory = Callable[[Dict[str, Any]], Any]

_AGENT_FACTORIES: Dict[str, AgentFactory] = {
    "dqn": DQNAgent,
    "value": DQNAgent,
    "ppo": PPOAgent,
    "policy": PPOAgent,
}


def seed_everything(seed: Optional[int]) -> None:
    if seed is None:
        return
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)


def build_env(cfg: ExperimentConfig, *, physics: Optional[PhysicsBackend] = None) -> ClimbingEnvironment:
    return ClimbingEnvironment(cfg.env, physics=physics, reward=AscentReward(cfg.reward))


def build_agent(cfg: ExperimentConfig, algorithm: Optional[str] = None) -> Any:
    key = (algorithm or cfg.training.algorithm).lower().strip()
    if key not in _AGENT_FACTORIES:
        raise KeyError(f"Unknown algorithm '{key}'")
    agent_cfg = cfg.algorithm_config(key)
    agent_cfg.update({"state_dim": STATE_DIM, "n_actions": N_ACTIONS})
    if cfg.training.seed is not None:
        agent_cfg.setdefault("seed", cfg.training.seed)
    return _AGENT_FACTORIES[key](agent_cfg)


def build_strategy(cfg: ExperimentConfig, agent: Any, algorithm: Optional[str] = None) -> EpisodeStrategy:
    key = (algorithm or cfg.training.algorithm).lower().strip()
    return create_strategy(key, agent, cfg.algorithm_config(key))


def build_orchestrator(
    cfg: ExperimentConfig,
    *,
    algorithm: Optional[str] = None,
    physics: Optional[PhysicsBackend] = None,
    renderer: Optional[RenderingBackend] = None,
    metrics_logger: Optional[Logger] = None,
    checkpoint_dir: Optional[str | Path] = None,
) -> TrainingOrchestrator:
    """Compose environment, agent, strategy and orchestrator for ``cfg``."""

    seed_everything(cfg.training.seed)
    env = build_env(cfg, physics=physics)
    agent = build_agent(cfg, algorithm)
    strategy = build_strategy(cfg, agent, algorithm)
    checkpoints = CheckpointManager(
        checkpoint_dir or cfg.training.checkpoint_dir,
        max_history=cfg.training.max_history,
    )
    return TrainingOrchestrator(
        env,
        strategy,
        config=cfg.training,
        checkpoints=checkpoints,
        renderer=renderer,
        metrics_logger=metrics_logger,
    )


__all__ = [
    "build_agent",
    "build_env",
    "build_orchestrator",
    "build_strategy",
    "seed_everything",
]
