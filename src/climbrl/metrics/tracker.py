"""Episode metrics tracking for training sessions.

Tracks per-episode metrics and provides rolling aggregation.
"""

from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional

from .outcomes import EpisodeOutcome


@dataclass
class EpisodeMetrics:
    """Metrics for a single completed episode."""
    episode: int
    outcome: EpisodeOutcome
    total_reward: float
    steps: int
    highest_zone: int

    @property
    def success(self) -> bool:
        return self.outcome.is_success()

    def to_dict(self) -> Dict:
        return {
            'episode': self.episode,
            'outcome': self.outcome.value,
            'reward': self.total_reward,
            'steps': self.steps,
            'highest_zone': self.highest_zone,
            'success': self.success,
        }


class MetricsTracker:
    """Keeps the full reward/success history plus a bounded rolling window.

    Example:
        >>> tracker = MetricsTracker(window=2)
        >>> _ = tracker.add_episode(0, EpisodeOutcome.MAX_STEPS, -1.0, 500, 0)
        >>> _ = tracker.add_episode(1, EpisodeOutcome.GOAL_REACHED, 100.0, 120, 4)
        >>> tracker.get_rolling_stats()['success_rate']
        0.5
    """

    def __init__(self, window: int = 100):
        if window <= 0:
            raise ValueError("window must be positive")
        self.window = int(window)
        self.reward_history: List[float] = []
        self.success_history: List[bool] = []
        self.total_steps = 0
        self.best_reward: Optional[float] = None
        self._recent: Deque[EpisodeMetrics] = deque(maxlen=self.window)

    def __len__(self) -> int:
        return len(self.reward_history)

    def add_episode(
        self,
        episode: int,
        outcome: EpisodeOutcome,
        total_reward: float,
        steps: int,
        highest_zone: int,
    ) -> EpisodeMetrics:
        metrics = EpisodeMetrics(
            episode=episode,
            outcome=outcome,
            total_reward=float(total_reward),
            steps=int(steps),
            highest_zone=int(highest_zone),
        )
        self._recent.append(metrics)
        self.reward_history.append(metrics.total_reward)
        self.success_history.append(metrics.success)
        self.total_steps += metrics.steps
        if self.best_reward is None or metrics.total_reward > self.best_reward:
            self.best_reward = metrics.total_reward
        return metrics

    def get_latest(self, n: int = 1) -> List[EpisodeMetrics]:
        """Most recent episodes first, limited to the rolling window."""
        return list(self._recent)[-n:][::-1]

    def get_rolling_stats(self) -> Dict[str, float]:
        episodes = list(self._recent)
        if not episodes:
            return {
                'average_reward': 0.0,
                'success_rate': 0.0,
                'avg_steps': 0.0,
                'avg_highest_zone': 0.0,
                'window_episodes': 0,
            }
        total = len(episodes)
        return {
            'average_reward': sum(ep.total_reward for ep in episodes) / total,
            'success_rate': sum(1 for ep in episodes if ep.success) / total,
            'avg_steps': sum(ep.steps for ep in episodes) / total,
            'avg_highest_zone': sum(ep.highest_zone for ep in episodes) / total,
            'window_episodes': total,
        }

    def clear(self):
        self.reward_history.clear()
        self.success_history.clear()
        self._recent.clear()
        self.total_steps = 0
        self.best_reward = None


__all__ = ['EpisodeMetrics', 'MetricsTracker']
