"""Shared discrete-action utilities for value-based agents."""
from __future__ import annotations

import math
from numbers import Real
from typing import Any, Dict, Tuple

import numpy as np

from climbrl.errors import InvalidInput


class DiscreteAgentBase:
    """Common scaffold: action count, counters and geometric epsilon schedule."""

    def __init__(self, cfg: Dict[str, Any], *, state_dim: int, n_actions: int) -> None:
        if state_dim <= 0 or n_actions <= 0:
            raise ValueError("state_dim and n_actions must be positive")
        self.state_dim = int(state_dim)
        self.n_actions = int(n_actions)
        self.step_count = 0
        self.episode_count = 0
        self._updates = 0
        self.configure_epsilon(
            start=float(cfg.get("epsilon_start", 1.0)),
            end=float(cfg.get("epsilon_end", 0.01)),
            decay_rate=float(cfg.get("epsilon_decay_rate", 0.995)),
        )

    # ------------------------------------------------------------------ #
    # Epsilon management
    # ------------------------------------------------------------------ #
    def configure_epsilon(self, *, start: float, end: float, decay_rate: float) -> None:
        if not 0.0 <= end <= start <= 1.0:
            raise ValueError("epsilon values must satisfy 0 <= end <= start <= 1")
        if not 0.0 < decay_rate <= 1.0:
            raise ValueError("epsilon_decay_rate must be in (0, 1]")
        self.epsilon_start = float(start)
        self.epsilon_end = float(end)
        self.epsilon_decay_rate = float(decay_rate)
        self._epsilon_value = self.epsilon_start

    @property
    def exploration_rate(self) -> float:
        return self._epsilon_value

    @exploration_rate.setter
    def exploration_rate(self, value: float) -> None:
        self._epsilon_value = min(max(float(value), 0.0), 1.0)

    def decay_exploration(self) -> float:
        """``rate = max(floor, rate * decay)``; returns the new rate."""

        self._epsilon_value = max(self.epsilon_end, self._epsilon_value * self.epsilon_decay_rate)
        return self._epsilon_value

    # ------------------------------------------------------------------ #
    # Validation
    # ------------------------------------------------------------------ #
    def validate_state(self, state: Any, *, name: str = "state") -> np.ndarray:
        try:
            arr = np.asarray(state, dtype=np.float32)
        except (TypeError, ValueError) as exc:
            raise InvalidInput(f"{name} is not numeric: {exc}") from exc
        if arr.shape != (self.state_dim,):
            raise InvalidInput(f"{name} must have shape ({self.state_dim},), received {arr.shape}")
        if not np.isfinite(arr).all():
            raise InvalidInput(f"{name} contains non-finite values")
        return arr

    def validate_action(self, action: Any) -> int:
        if isinstance(action, (bool, np.bool_)) or not isinstance(action, (int, np.integer)):
            raise InvalidInput(f"action must be an integer, received {action!r}")
        index = int(action)
        if not 0 <= index < self.n_actions:
            raise InvalidInput(f"action {index} outside [0, {self.n_actions})")
        return index

    def validate_transition(
        self,
        state: Any,
        action: Any,
        reward: Any,
        next_state: Any,
        done: Any,
    ) -> Tuple[np.ndarray, int, float, np.ndarray, bool]:
        state_arr = self.validate_state(state)
        next_arr = self.validate_state(next_state, name="next_state")
        index = self.validate_action(action)
        if isinstance(reward, (bool, np.bool_)) or not isinstance(reward, Real) or not math.isfinite(float(reward)):
            raise InvalidInput(f"reward must be a finite real number, received {reward!r}")
        if not isinstance(done, (bool, np.bool_)):
            raise InvalidInput(f"done must be a bool, received {done!r}")
        return state_arr, index, float(reward), next_arr, bool(done)


__all__ = ["DiscreteAgentBase"]
