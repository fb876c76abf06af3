import logging
import os
import threading

import numpy as np
import torch
import torch.nn.functional as F
import torch.optim as optim

from climbrl.errors import InsufficientData, InvalidInput, NumericalInstability
from climbrl.policies.ppo.base import ActionSelection, BasePPOAgent, normalize_advantages, sample_categorical
from climbrl.policies.ppo.net import Actor, Critic
from climbrl.utils.torch_io import all_finite, resolve_device, safe_load

logger = logging.getLogger(__name__)

class PPOAgent(BasePPOAgent):
    def __init__(self, cfg):
        cfg = dict(cfg)
        super().__init__(cfg)
        self.device = resolve_device(cfg.get("device"))
        self.hidden_dims = tuple(int(h) for h in cfg.get("hidden_dims", (64, 64)))
        self.actor_lr = float(cfg.get("actor_lr", 3e-4))
        self.critic_lr = float(cfg.get("critic_lr", 3e-4))

        seed = cfg.get("seed")
        self.rng = np.random.default_rng(seed)
        if seed is not None:
            torch.manual_seed(int(seed))

        self._lock = threading.RLock()
        self._build_networks()
        self._updates = 0

    def _build_networks(self):
        self.actor = Actor(self.state_dim, self.n_actions, self.hidden_dims).to(self.device)
        self.critic = Critic(self.state_dim, self.hidden_dims).to(self.device)
        self.actor_opt = optim.Adam(self.actor.parameters(), lr=self.actor_lr)
        self.critic_opt = optim.Adam(self.critic.parameters(), lr=self.critic_lr)

    # ------------------- Acting -------------------

    def _validate_state(self, state):
        try:
            obs_np = np.asarray(state, dtype=np.float32)
        except (TypeError, ValueError) as exc:
            raise InvalidInput(f"state is not numeric: {exc}") from exc
        if obs_np.shape != (self.state_dim,):
            raise InvalidInput(f"state must have shape ({self.state_dim},), received {obs_np.shape}")
        if not np.isfinite(obs_np).all():
            raise InvalidInput("state contains non-finite values")
        return obs_np

    def action_probabilities(self, state):
        obs_np = self._validate_state(state)
        with self._lock, torch.no_grad():
            obs_t = torch.as_tensor(obs_np, dtype=torch.float32, device=self.device)
            return self.actor(obs_t).cpu().numpy()

    def select_action(self, state, stochastic=True):
        obs_np = self._validate_state(state)
        with self._lock, torch.no_grad():
            obs_t = torch.as_tensor(obs_np, dtype=torch.float32, device=self.device)
            probs = self.actor(obs_t).cpu().numpy()
            value = float(self.critic(obs_t).squeeze(-1).item())
        if stochastic:
            action = sample_categorical(probs, self.rng)
        else:
            action = int(np.argmax(probs))
        log_prob = float(np.log(max(float(probs[action]), self.prob_floor)))
        return ActionSelection(action=action, log_prob=log_prob, value=value)

    # ------------------- Update -------------------

    def _flatten(self, trajectories):
        states, actions, log_probs, values, raw_adv = [], [], [], [], []
        for traj in trajectories:
            if len(traj) == 0:
                continue
            raw = self.compute_advantages(traj.rewards, traj.values, traj.dones, normalize=False)
            states.extend(traj.states)
            actions.extend(traj.actions)
            log_probs.extend(traj.log_probs)
            values.extend(traj.values)
            raw_adv.append(raw)
        return states, actions, log_probs, values, raw_adv

    def train(self, trajectories):
        """Clipped PPO update over the full batch for ``update_epochs`` epochs.

        Returns averaged ``policy_loss``, ``value_loss`` and ``entropy``, the
        number of ``epochs`` actually applied and ``recovered``. A non-finite
        loss with finite weights skips the epoch; non-finite weights rebuild
        actor, critic and optimizers.
        """
        trajectories = list(trajectories)
        states, actions, log_probs, values, raw_adv = self._flatten(trajectories)
        if not states:
            raise InsufficientData(1, 0, what="trajectory steps")

        raw_adv = np.concatenate(raw_adv)
        adv_np = normalize_advantages(raw_adv)
        # Value targets use the unnormalised advantage plus the stored baseline.
        returns_np = raw_adv + np.asarray(values, dtype=np.float64)

        obs = torch.as_tensor(np.asarray(states), dtype=torch.float32, device=self.device)
        acts = torch.as_tensor(np.asarray(actions), dtype=torch.int64, device=self.device)
        logp_old = torch.as_tensor(np.asarray(log_probs), dtype=torch.float32, device=self.device)
        adv = torch.as_tensor(adv_np, dtype=torch.float32, device=self.device)
        rets = torch.as_tensor(returns_np, dtype=torch.float32, device=self.device)

        policy_losses = []
        value_losses = []
        entropies = []
        recovered = False
        with self._lock:
            try:
                self._run_epochs(obs, acts, logp_old, adv, rets, policy_losses, value_losses, entropies)
            except NumericalInstability as exc:
                logger.warning("PPO update diverged (%s); reinitialising actor and critic", exc)
                self._build_networks()
                recovered = True

        self._updates += 1

        def _mean_safe(values):
            return float(np.mean(values)) if values else float("nan")

        return {
            "policy_loss": _mean_safe(policy_losses),
            "value_loss": _mean_safe(value_losses),
            "entropy": _mean_safe(entropies),
            "epochs": len(policy_losses),
            "recovered": recovered,
        }

    def _run_epochs(self, obs, acts, logp_old, adv, rets, policy_losses, value_losses, entropies):
        for epoch in range(self.update_epochs):
            probs = self.actor(obs).clamp_min(self.prob_floor)
            log_all = torch.log(probs)
            logp = log_all.gather(1, acts.unsqueeze(-1)).squeeze(-1)
            entropy = -(probs * log_all).sum(dim=-1).mean()

            ratio = torch.exp(logp - logp_old)
            surr1 = ratio * adv
            surr2 = torch.clamp(ratio, 1.0 - self.clip_eps, 1.0 + self.clip_eps) * adv
            policy_loss = -torch.min(surr1, surr2).mean() - self.ent_coef * entropy

            values_pred = self.critic(obs).squeeze(-1)
            value_loss = F.mse_loss(values_pred, rets)

            if not torch.isfinite(policy_loss) or not torch.isfinite(value_loss):
                if not all_finite(self.actor, self.critic):
                    raise NumericalInstability(f"non-finite parameters before epoch {epoch}")
                logger.warning("Non-finite PPO loss in epoch %d; skipping update", epoch)
                continue

            self.actor_opt.zero_grad(set_to_none=True)
            policy_loss.backward()
            if self.max_grad_norm > 0:
                torch.nn.utils.clip_grad_norm_(self.actor.parameters(), self.max_grad_norm)
            self.actor_opt.step()

            self.critic_opt.zero_grad(set_to_none=True)
            value_loss.backward()
            if self.max_grad_norm > 0:
                torch.nn.utils.clip_grad_norm_(self.critic.parameters(), self.max_grad_norm)
            self.critic_opt.step()

            if not all_finite(self.actor, self.critic):
                raise NumericalInstability(f"non-finite parameters after epoch {epoch}")

            policy_losses.append(float(policy_loss.detach().cpu().item()))
            value_losses.append(float(value_loss.detach().cpu().item()))
            entropies.append(float(entropy.detach().cpu().item()))

    def hyperparameters(self):
        return {
            "algorithm": "ppo",
            "state_dim": self.state_dim,
            "n_actions": self.n_actions,
            "actor_lr": self.actor_lr,
            "critic_lr": self.critic_lr,
            "gamma": self.gamma,
            "lam": self.lam,
            "clip_eps": self.clip_eps,
            "ent_coef": self.ent_coef,
            "update_epochs": self.update_epochs,
            "max_grad_norm": self.max_grad_norm,
            "prob_floor": self.prob_floor,
            "hidden_dims": list(self.hidden_dims),
        }

    # ------------------- I/O -------------------

    def state_dict(self):
        with self._lock:
            return {
                "actor": self.actor.state_dict(),
                "critic": self.critic.state_dict(),
                "actor_opt": self.actor_opt.state_dict(),
                "critic_opt": self.critic_opt.state_dict(),
                "updates": self._updates,
                "state_dim": self.state_dim,
                "n_actions": self.n_actions,
            }

    def load_state_dict(self, snapshot):
        stored = (int(snapshot.get("state_dim", self.state_dim)), int(snapshot.get("n_actions", self.n_actions)))
        if stored != (self.state_dim, self.n_actions):
            raise ValueError(
                f"Checkpoint shape mismatch: (state_dim, n_actions)={stored}, expected {(self.state_dim, self.n_actions)}."
            )
        with self._lock:
            self.actor.load_state_dict(snapshot["actor"])
            self.critic.load_state_dict(snapshot["critic"])
            if "actor_opt" in snapshot:
                self.actor_opt.load_state_dict(snapshot["actor_opt"])
            if "critic_opt" in snapshot:
                self.critic_opt.load_state_dict(snapshot["critic_opt"])
            self._updates = int(snapshot.get("updates", self._updates))
            self.actor.to(self.device)
            self.critic.to(self.device)

    def save(self, path):
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        torch.save(self.state_dict(), path)

    def load(self, path):
        self.load_state_dict(safe_load(path, map_location=self.device))
