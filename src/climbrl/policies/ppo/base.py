"""Trajectory containers and advantage utilities shared by PPO agents."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Mapping, NamedTuple, Optional, Sequence

import numpy as np

from climbrl.errors import InvalidInput

ADVANTAGE_STD_EPS = 1e-8


class ActionSelection(NamedTuple):
    action: int
    log_prob: float
    value: float


@dataclass
class Trajectory:
    """Per-step rollout data for one episode."""

    states: List[np.ndarray] = field(default_factory=list)
    actions: List[int] = field(default_factory=list)
    rewards: List[float] = field(default_factory=list)
    log_probs: List[float] = field(default_factory=list)
    values: List[float] = field(default_factory=list)
    dones: List[bool] = field(default_factory=list)

    def append(
        self,
        state: np.ndarray,
        action: int,
        reward: float,
        log_prob: float,
        value: float,
        done: bool,
    ) -> None:
        self.states.append(np.asarray(state, dtype=np.float32))
        self.actions.append(int(action))
        self.rewards.append(float(reward))
        self.log_probs.append(float(log_prob))
        self.values.append(float(value))
        self.dones.append(bool(done))

    def __len__(self) -> int:
        return len(self.rewards)


def sample_categorical(probs: Sequence[float], rng: Optional[np.random.Generator] = None) -> int:
    """Inverse-CDF draw from ``probs``; rounding past the last bucket picks the last category."""

    p = np.asarray(probs, dtype=np.float64).reshape(-1)
    if p.size == 0:
        raise InvalidInput("cannot sample from an empty distribution")
    u = (rng if rng is not None else np.random.default_rng()).random()
    index = int(np.searchsorted(np.cumsum(p), u, side="right"))
    return min(index, p.size - 1)


def compute_gae(
    rewards: Sequence[float],
    values: Sequence[float],
    dones: Sequence[bool],
    *,
    gamma: float,
    lam: float,
) -> np.ndarray:
    """Backward GAE recursion with a zero bootstrap value past the end.

    ``delta_t = r_t + gamma * V_{t+1} * (1 - done_t) - V_t``
    ``A_t = delta_t + gamma * lam * A_{t+1} * (1 - done_t)``
    """

    if not len(rewards) == len(values) == len(dones):
        raise InvalidInput(
            f"rollout length mismatch: rewards {len(rewards)}, values {len(values)}, dones {len(dones)}"
        )
    rewards_arr = np.asarray(rewards, dtype=np.float64)
    values_arr = np.asarray(values, dtype=np.float64)
    dones_arr = np.asarray(dones, dtype=np.float64)
    T = rewards_arr.shape[0]

    advantages = np.zeros(T, dtype=np.float64)
    last_adv = 0.0
    for t in reversed(range(T)):
        next_value = values_arr[t + 1] if t + 1 < T else 0.0
        non_terminal = 1.0 - dones_arr[t]
        delta = rewards_arr[t] + gamma * next_value * non_terminal - values_arr[t]
        last_adv = delta + gamma * lam * non_terminal * last_adv
        advantages[t] = last_adv
    return advantages


def normalize_advantages(advantages: np.ndarray) -> np.ndarray:
    adv = np.asarray(advantages, dtype=np.float64)
    if adv.size == 0:
        return adv
    std = float(adv.std())
    if std <= ADVANTAGE_STD_EPS:
        return np.zeros_like(adv)
    return (adv - adv.mean()) / std


class BasePPOAgent:
    """Hyperparameters and advantage estimation shared across PPO variants."""

    def __init__(self, cfg: Mapping[str, Any]) -> None:
        self.state_dim = int(cfg["state_dim"])
        self.n_actions = int(cfg["n_actions"])

        self.gamma = float(cfg.get("gamma", 0.99))
        self.lam = float(cfg.get("lam", 0.95))
        self.clip_eps = float(cfg.get("clip_eps", 0.2))
        self.ent_coef = float(cfg.get("ent_coef", 0.01))
        self.update_epochs = int(cfg.get("update_epochs", 10))
        self.max_grad_norm = float(cfg.get("max_grad_norm", 0.5))
        self.prob_floor = float(cfg.get("prob_floor", 1e-8))

    def compute_advantages(
        self,
        rewards: Sequence[float],
        values: Sequence[float],
        dones: Sequence[bool],
        normalize: bool = True,
    ) -> np.ndarray:
        advantages = compute_gae(rewards, values, dones, gamma=self.gamma, lam=self.lam)
        if normalize:
            advantages = normalize_advantages(advantages)
        return advantages.astype(np.float32)


__all__ = [
    "ADVANTAGE_STD_EPS",
    "ActionSelection",
    "BasePPOAgent",
    "Trajectory",
    "compute_gae",
    "normalize_advantages",
    "sample_categorical",
]
