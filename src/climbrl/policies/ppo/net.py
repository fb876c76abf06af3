import torch
import torch.nn as nn


class Actor(nn.Module):
    """Categorical policy head: returns action probabilities."""

    def __init__(self, obs_dim, n_actions, hidden_sizes=(64, 64)):
        super().__init__()
        layers = []
        last_dim = obs_dim
        for h in hidden_sizes:
            layers += [nn.Linear(last_dim, h), nn.Tanh()]
            last_dim = h
        self.body = nn.Sequential(*layers)
        self.logits_head = nn.Linear(last_dim, n_actions)

    def forward(self, x):
        x = self.body(x)
        return torch.softmax(self.logits_head(x), dim=-1)


class Critic(nn.Module):
    def __init__(self, obs_dim, hidden_sizes=(64, 64)):
        super().__init__()
        layers = []
        last_dim = obs_dim
        for h in hidden_sizes:
            layers += [nn.Linear(last_dim, h), nn.Tanh()]
            last_dim = h
        self.body = nn.Sequential(*layers)
        self.v_head = nn.Linear(last_dim, 1)

    def forward(self, x):
        x = self.body(x)
        v = self.v_head(x)
        return v
