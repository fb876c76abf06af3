"""Vanilla DQN agent operating on the discrete climbing actions."""
from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, Mapping, Optional

import numpy as np
import torch
import torch.nn.functional as F
from torch.nn.utils import clip_grad_norm_

from climbrl.errors import NumericalInstability
from climbrl.policies.buffers.replay import ReplayBatch, ReplayBuffer
from climbrl.policies.common import DiscreteAgentBase
from climbrl.policies.dqn.net import QNetwork
from climbrl.utils.torch_io import all_finite, resolve_device, safe_load

logger = logging.getLogger(__name__)


class DQNAgent(DiscreteAgentBase):
    def __init__(self, cfg: Mapping[str, Any]):
        cfg = dict(cfg)
        super().__init__(cfg, state_dim=int(cfg["state_dim"]), n_actions=int(cfg["n_actions"]))
        self.device = resolve_device(cfg.get("device"))

        self.gamma = float(cfg.get("gamma", 0.99))
        self.lr = float(cfg.get("lr", 3e-4))
        self.batch_size = int(cfg.get("batch_size", 32))
        self.learning_starts = int(cfg.get("learning_starts", 0))
        self.max_grad_norm = float(cfg.get("max_grad_norm", 1.0))
        target_clip = cfg.get("target_clip")
        self.target_clip = float(target_clip) if target_clip is not None else None
        self.hidden_dims: Iterable[int] = tuple(int(h) for h in cfg.get("hidden_dims", (64, 64)))

        seed = cfg.get("seed")
        self.rng = np.random.default_rng(seed)
        if seed is not None:
            torch.manual_seed(int(seed))

        self.buffer = ReplayBuffer(int(cfg.get("buffer_size", 10_000)), self.state_dim)
        self._lock = threading.RLock()
        self._build_networks()

    def _build_networks(self) -> None:
        self.q_net = QNetwork(self.state_dim, self.n_actions, self.hidden_dims).to(self.device)
        self.target_q_net = QNetwork(self.state_dim, self.n_actions, self.hidden_dims).to(self.device)
        self.target_q_net.load_state_dict(self.q_net.state_dict())
        self.target_q_net.eval()
        self.optimizer = torch.optim.Adam(self.q_net.parameters(), lr=self.lr)

    # -------------------- Interaction --------------------

    def select_action(self, state: Any, exploration_rate: Optional[float] = None) -> int:
        rate = self.exploration_rate if exploration_rate is None else float(exploration_rate)
        if rate > 0.0 and self.rng.random() < rate:
            return int(self.rng.integers(self.n_actions))
        q_values = self.q_values(state)
        return int(np.argmax(q_values))

    def q_values(self, state: Any) -> np.ndarray:
        state_arr = self.validate_state(state)
        with self._lock, torch.no_grad():
            obs_t = torch.as_tensor(state_arr, dtype=torch.float32, device=self.device).unsqueeze(0)
            return self.q_net(obs_t).squeeze(0).cpu().numpy()

    def remember(
        self,
        state: Any,
        action: Any,
        reward: Any,
        next_state: Any,
        done: Any,
    ) -> None:
        self.buffer.add(*self.validate_transition(state, action, reward, next_state, done))
        self.step_count += 1

    # -------------------- Learning --------------------

    def sample_batch(self, n: Optional[int] = None) -> ReplayBatch:
        return self.buffer.sample(int(n or self.batch_size), rng=self.rng)

    def can_train(self, n: Optional[int] = None) -> bool:
        required = max(int(n or self.batch_size), self.learning_starts)
        return len(self.buffer) >= required

    def train(self, n: Optional[int] = None) -> Dict[str, Any]:
        batch = self.sample_batch(n)
        with self._lock:
            try:
                stats = self._train_on_batch(batch)
            except NumericalInstability as exc:
                logger.warning("DQN update diverged (%s); reinitialising estimators", exc)
                self._build_networks()
                return {
                    "loss": float("nan"),
                    "q_mean": float("nan"),
                    "target_mean": float("nan"),
                    "grad_norm": float("nan"),
                    "batch_size": len(batch),
                    "exploration_rate": self.exploration_rate,
                    "recovered": True,
                }
        self._updates += 1
        return stats

    def _train_on_batch(self, batch: ReplayBatch) -> Dict[str, Any]:
        obs = torch.as_tensor(batch.states, dtype=torch.float32, device=self.device)
        actions = torch.as_tensor(batch.actions, dtype=torch.int64, device=self.device)
        rewards = torch.as_tensor(batch.rewards, dtype=torch.float32, device=self.device)
        next_obs = torch.as_tensor(batch.next_states, dtype=torch.float32, device=self.device)
        dones = torch.as_tensor(batch.dones, dtype=torch.float32, device=self.device)

        q_values = self.q_net(obs)
        chosen_q = q_values.gather(1, actions.unsqueeze(-1)).squeeze(-1)

        with torch.no_grad():
            next_q = self.target_q_net(next_obs).max(dim=-1).values
            target = rewards + (1.0 - dones) * self.gamma * next_q
            if self.target_clip is not None:
                target = target.clamp(-self.target_clip, self.target_clip)

        loss = F.mse_loss(chosen_q, target)
        if not torch.isfinite(loss):
            raise NumericalInstability(f"non-finite loss {float(loss.item())}")

        self.optimizer.zero_grad(set_to_none=True)
        loss.backward()
        grad_norm = clip_grad_norm_(self.q_net.parameters(), max_norm=self.max_grad_norm)
        self.optimizer.step()

        if not all_finite(self.q_net):
            raise NumericalInstability("non-finite parameters after optimizer step")

        return {
            "loss": float(loss.item()),
            "q_mean": float(chosen_q.detach().mean().cpu().item()),
            "target_mean": float(target.mean().cpu().item()),
            "grad_norm": float(grad_norm.detach().cpu().item()),
            "batch_size": int(chosen_q.shape[0]),
            "exploration_rate": self.exploration_rate,
            "recovered": False,
        }

    def update_target_estimator(self) -> None:
        with self._lock:
            self.target_q_net.load_state_dict(self.q_net.state_dict())

    def reinitialize(self) -> None:
        with self._lock:
            self._build_networks()

    def hyperparameters(self) -> Dict[str, Any]:
        return {
            "algorithm": "dqn",
            "state_dim": self.state_dim,
            "n_actions": self.n_actions,
            "gamma": self.gamma,
            "lr": self.lr,
            "batch_size": self.batch_size,
            "buffer_size": self.buffer.capacity,
            "learning_starts": self.learning_starts,
            "epsilon_start": self.epsilon_start,
            "epsilon_end": self.epsilon_end,
            "epsilon_decay_rate": self.epsilon_decay_rate,
            "max_grad_norm": self.max_grad_norm,
            "target_clip": self.target_clip,
            "hidden_dims": list(self.hidden_dims),
        }

    # -------------------- Persistence --------------------

    def save(self, path: str) -> None:
        torch.save(self.state_dict(), path)

    def load(self, path: str) -> None:
        self.load_state_dict(safe_load(path, map_location=self.device))

    def state_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "q_net": self.q_net.state_dict(),
                "target_q_net": self.target_q_net.state_dict(),
                "optimizer": self.optimizer.state_dict(),
                "exploration_rate": self._epsilon_value,
                "step_count": self.step_count,
                "episode_count": self.episode_count,
                "updates": self._updates,
                "state_dim": self.state_dim,
                "n_actions": self.n_actions,
            }

    def load_state_dict(self, snapshot: Mapping[str, Any]) -> None:
        stored = (int(snapshot.get("state_dim", self.state_dim)), int(snapshot.get("n_actions", self.n_actions)))
        if stored != (self.state_dim, self.n_actions):
            raise ValueError(
                "Checkpoint shape mismatch: "
                f"checkpoint (state_dim, n_actions)={stored}, expected {(self.state_dim, self.n_actions)}."
            )
        with self._lock:
            self.q_net.load_state_dict(snapshot["q_net"])
            self.target_q_net.load_state_dict(snapshot.get("target_q_net", snapshot["q_net"]))
            opt_state = snapshot.get("optimizer")
            if opt_state is not None:
                self.optimizer.load_state_dict(opt_state)
            self._epsilon_value = float(snapshot.get("exploration_rate", self._epsilon_value))
            self.step_count = int(snapshot.get("step_count", self.step_count))
            self.episode_count = int(snapshot.get("episode_count", self.episode_count))
            self._updates = int(snapshot.get("updates", self._updates))
            self.q_net.to(self.device)
            self.target_q_net.to(self.device)


__all__ = ["DQNAgent"]
