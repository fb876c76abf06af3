"""Fixed-capacity replay buffer used by the value-based agent."""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

import numpy as np

from climbrl.errors import InsufficientData


@dataclass
class Transition:
    state: np.ndarray
    action: int
    reward: float
    next_state: np.ndarray
    done: bool


@dataclass
class ReplayBatch:
    """Column-oriented batch of transitions."""

    states: np.ndarray
    actions: np.ndarray
    rewards: np.ndarray
    next_states: np.ndarray
    dones: np.ndarray

    def __len__(self) -> int:
        return int(self.actions.shape[0])


class ReplayBuffer:
    """Circular numpy-backed store; the oldest transition is overwritten first.

    ``add`` and ``sample`` are guarded by a lock so a collector thread and a
    learner thread may share one buffer.
    """

    def __init__(self, capacity: int, state_dim: int, dtype: np.dtype = np.float32) -> None:
        if capacity <= 0:
            raise ValueError("ReplayBuffer capacity must be positive")
        if state_dim <= 0:
            raise ValueError("ReplayBuffer state_dim must be positive")

        self.capacity = int(capacity)
        self.state_dim = int(state_dim)
        self.dtype = np.dtype(dtype)

        self._states = np.zeros((self.capacity, self.state_dim), dtype=self.dtype)
        self._next_states = np.zeros((self.capacity, self.state_dim), dtype=self.dtype)
        self._actions = np.zeros((self.capacity,), dtype=np.int64)
        self._rewards = np.zeros((self.capacity,), dtype=np.float32)
        self._dones = np.zeros((self.capacity,), dtype=np.bool_)

        self._idx = 0
        self._size = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return self._size

    @property
    def is_full(self) -> bool:
        return self._size == self.capacity

    def add(
        self,
        state: np.ndarray,
        action: int,
        reward: float,
        next_state: np.ndarray,
        done: bool,
    ) -> None:
        with self._lock:
            idx = self._idx
            self._states[idx] = np.asarray(state, dtype=self.dtype)
            self._actions[idx] = int(action)
            self._rewards[idx] = float(reward)
            self._next_states[idx] = np.asarray(next_state, dtype=self.dtype)
            self._dones[idx] = bool(done)

            self._idx = (self._idx + 1) % self.capacity
            self._size = min(self._size + 1, self.capacity)

    def sample(self, batch_size: int, rng: Optional[np.random.Generator] = None) -> ReplayBatch:
        """Draw ``batch_size`` distinct transitions uniformly at random."""

        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        with self._lock:
            if self._size < batch_size:
                raise InsufficientData(batch_size, self._size, what="transitions")
            generator = rng if rng is not None else np.random.default_rng()
            indices = generator.choice(self._size, size=batch_size, replace=False)
            return ReplayBatch(
                states=self._states[indices].copy(),
                actions=self._actions[indices].copy(),
                rewards=self._rewards[indices].copy(),
                next_states=self._next_states[indices].copy(),
                dones=self._dones[indices].copy(),
            )

    def _ordered_indices(self) -> np.ndarray:
        if self._size < self.capacity:
            return np.arange(self._size)
        return (np.arange(self.capacity) + self._idx) % self.capacity

    def transitions(self) -> List[Transition]:
        """Stored transitions from oldest to newest."""

        with self._lock:
            return [
                Transition(
                    state=self._states[i].copy(),
                    action=int(self._actions[i]),
                    reward=float(self._rewards[i]),
                    next_state=self._next_states[i].copy(),
                    done=bool(self._dones[i]),
                )
                for i in self._ordered_indices()
            ]

    def __iter__(self) -> Iterator[Transition]:
        return iter(self.transitions())

    def clear(self) -> None:
        with self._lock:
            self._idx = 0
            self._size = 0

    def snapshot(self) -> Tuple[np.ndarray, ...]:
        """Column arrays in insertion order, used when checkpointing the buffer."""

        with self._lock:
            order = self._ordered_indices()
            return (
                self._states[order].copy(),
                self._actions[order].copy(),
                self._rewards[order].copy(),
                self._next_states[order].copy(),
                self._dones[order].copy(),
            )


__all__ = ["ReplayBatch", "ReplayBuffer", "Transition"]
