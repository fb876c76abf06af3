from .dqn import DQNAgent
from .net import QNetwork

__all__ = ["DQNAgent", "QNetwork"]
