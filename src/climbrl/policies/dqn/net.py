"""Feed-forward Q-network for the value-based agent."""
from __future__ import annotations

from typing import Iterable

from torch import nn


class QNetwork(nn.Module):
    def __init__(self, input_dim: int, output_dim: int, hidden_dims: Iterable[int] = (64, 64)) -> None:
        super().__init__()
        layers = []
        prev = input_dim
        for dim in hidden_dims:
            layers.append(nn.Linear(prev, int(dim)))
            layers.append(nn.ReLU())
            prev = int(dim)
        layers.append(nn.Linear(prev, output_dim))
        self.model = nn.Sequential(*layers)

    def forward(self, obs):  # pragma: no cover - simple forward
        return self.model(obs)
