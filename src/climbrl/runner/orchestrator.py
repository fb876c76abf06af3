"""Training orchestrator: episode loop, pause/resume/stop, stats and checkpoints."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from climbrl.envs.climbing_env import ClimbingEnvironment, StepResult
from climbrl.errors import PersistenceFailure
from climbrl.metrics.outcomes import EpisodeOutcome
from climbrl.metrics.tracker import MetricsTracker
from climbrl.render.backend import RenderingBackend
from climbrl.trainer.base import EpisodeResult, EpisodeStrategy
from climbrl.utils.checkpoint import CheckpointManager, CheckpointMetadata
from climbrl.utils.config_schema import TrainingSchema
from climbrl.utils.logger import Logger, LoggingSink

logger = logging.getLogger(__name__)


class TrainingState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"


@dataclass
class TrainingStats:
    current_episode: int
    total_episodes: int
    average_reward: float
    success_rate: float
    exploration_rate: Optional[float]
    reward_history: List[float] = field(default_factory=list)
    success_history: List[bool] = field(default_factory=list)
    state: TrainingState = TrainingState.IDLE
    total_steps: int = 0
    best_reward: Optional[float] = None


EpisodeCallback = Callable[[EpisodeResult, TrainingStats], None]
CompletionCallback = Callable[[TrainingStats], None]


class TrainingOrchestrator:
    """Drives episodes through an installed :class:`EpisodeStrategy`.

    Pause, resume and stop are cooperative and may be called from another
    thread. They are honoured at episode boundaries and, in visual mode
    (a renderer is attached or ``step_delay > 0``), between environment steps.
    A ``stop_training`` issued before a run starts stops that run before its
    first episode.

    An episode cut short by ``stop_training`` is left out of the statistics,
    callbacks and checkpoints, and ``on_episode_end`` is not called for it.
    The policy strategy drops its partial trajectory untrained. The value
    strategy keeps the transitions it already stored and the updates it
    already made, since each one came from a completed ``env.step()``.
    """

    def __init__(
        self,
        env: ClimbingEnvironment,
        strategy: EpisodeStrategy,
        *,
        config: Mapping[str, Any] | TrainingSchema | None = None,
        checkpoints: Optional[CheckpointManager] = None,
        renderer: Optional[RenderingBackend] = None,
        metrics_logger: Optional[Logger] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if config is None:
            self.config = TrainingSchema()
        elif isinstance(config, TrainingSchema):
            self.config = config
        else:
            self.config = TrainingSchema.from_dict(config)

        self.env = env
        self.strategy = strategy
        self.checkpoints = checkpoints
        self.renderer = renderer
        self.metrics_logger = metrics_logger or Logger([LoggingSink()])
        self._sleep = sleep

        self.tracker = MetricsTracker(window=self.config.stats_window)
        self._state = TrainingState.IDLE
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._resume_event = threading.Event()
        self._resume_event.set()

        self._episode_callbacks: List[EpisodeCallback] = []
        self._completion_callbacks: List[CompletionCallback] = []
        self._checkpoint_history: List[Dict[str, Any]] = []
        self._last_checkpoint_episode: Optional[int] = None

        # Counters carried across resumed checkpoints.
        self.completed_episodes = 0
        self._steps_offset = 0
        self._best_offset: Optional[float] = None
        self.total_episodes = 0

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------
    @property
    def state(self) -> TrainingState:
        return self._state

    @property
    def visual_mode(self) -> bool:
        return self.renderer is not None or self.config.step_delay > 0.0

    def start_training(self, episode_count: Optional[int] = None) -> TrainingStats:
        with self._state_lock:
            if self._state in (TrainingState.RUNNING, TrainingState.PAUSED):
                raise RuntimeError("Training is already in progress")
            self._state = TrainingState.RUNNING
        episodes = int(episode_count if episode_count is not None else self.config.episodes)
        self.total_episodes = self.completed_episodes + max(episodes, 0)
        self._resume_event.set()

        self.metrics_logger.start({"algorithm": self.strategy.name, "episodes": episodes})
        logger.info("Starting training: %d episodes with %s strategy", episodes, self.strategy.name)
        step_hook = self._step_hook if self.visual_mode else None

        try:
            for _ in range(episodes):
                if not self._wait_while_paused():
                    break
                episode_index = self.completed_episodes
                result = self.strategy.run_episode(self.env, episode_index, step_hook)
                if result.aborted:
                    logger.info("Episode %d aborted before termination; discarding it", episode_index)
                    break
                self.strategy.on_episode_end(episode_index)
                self._record(result)
                self._emit_episode(result)
                interval = self.config.checkpoint_interval
                if interval > 0 and self.completed_episodes % interval == 0:
                    self._save_checkpoint()
        finally:
            with self._state_lock:
                self._state = TrainingState.STOPPED if self._stop_event.is_set() else TrainingState.COMPLETED
            # A stop requested before or during this run is consumed here.
            self._stop_event.clear()
            self.metrics_logger.stop()

        if self.completed_episodes > 0 and self._last_checkpoint_episode != self.completed_episodes:
            self._save_checkpoint()
        stats = self.get_training_stats()
        logger.info(
            "Training %s after %d episodes (avg reward %.3f, success rate %.2f)",
            stats.state.value,
            stats.current_episode,
            stats.average_reward,
            stats.success_rate,
        )
        for callback in list(self._completion_callbacks):
            try:
                callback(stats)
            except Exception:  # noqa: BLE001
                logger.exception("Training-complete callback %r failed", callback)
        return stats

    def pause_training(self) -> bool:
        with self._state_lock:
            if self._state is not TrainingState.RUNNING:
                return False
            self._state = TrainingState.PAUSED
            self._resume_event.clear()
        logger.info("Training paused")
        return True

    def resume_training(self) -> bool:
        with self._state_lock:
            if self._state is not TrainingState.PAUSED:
                return False
            self._state = TrainingState.RUNNING
            self._resume_event.set()
        logger.info("Training resumed")
        return True

    def stop_training(self) -> None:
        self._stop_event.set()
        # Wake a paused loop so it can observe the stop flag.
        self._resume_event.set()
        logger.info("Stop requested")

    def _wait_while_paused(self) -> bool:
        """Block while paused; return False once a stop has been requested."""

        while not self._resume_event.wait(timeout=self.config.pause_poll):
            if self._stop_event.is_set():
                break
        return not self._stop_event.is_set()

    def _step_hook(self, result: StepResult) -> bool:
        if self.renderer is not None:
            position = result.info.get("position")
            if position is not None:
                self.renderer.update_agent_pose(position)
                self.renderer.update_camera(position)
            if self.config.render_interval <= 1 or result.info.get("step", 0) % self.config.render_interval == 0:
                self.renderer.render()
        if self.config.step_delay > 0.0:
            self._sleep(self.config.step_delay)
        return self._wait_while_paused()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------
    def on_episode_complete(self, callback: EpisodeCallback) -> None:
        self._episode_callbacks.append(callback)

    def on_training_complete(self, callback: CompletionCallback) -> None:
        self._completion_callbacks.append(callback)

    def _emit_episode(self, result: EpisodeResult) -> None:
        stats = self.get_training_stats()
        if self.config.log_interval > 0 and self.completed_episodes % self.config.log_interval == 0:
            metrics: Dict[str, Any] = {
                "train/episode": result.episode,
                "train/reward": result.total_reward,
                "train/steps": result.steps,
                "train/highest_zone": result.highest_zone,
                "train/termination_reason": result.termination_reason,
                "train/average_reward": stats.average_reward,
                "train/success_rate": stats.success_rate,
            }
            if stats.exploration_rate is not None:
                metrics["train/exploration_rate"] = stats.exploration_rate
            for key, value in result.train_stats.items():
                metrics[f"train/{key}"] = value
            self.metrics_logger.log_metrics("train", metrics, step=result.episode)
        for callback in list(self._episode_callbacks):
            try:
                callback(result, stats)
            except Exception:  # noqa: BLE001
                logger.exception("Episode callback %r failed for episode %d", callback, result.episode)

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------
    def _record(self, result: EpisodeResult) -> None:
        self.tracker.add_episode(
            result.episode,
            EpisodeOutcome.from_reason(result.termination_reason),
            result.total_reward,
            result.steps,
            result.highest_zone,
        )
        self.completed_episodes += 1

    def get_training_stats(self) -> TrainingStats:
        rolling = self.tracker.get_rolling_stats()
        best = self.tracker.best_reward
        if self._best_offset is not None and (best is None or self._best_offset > best):
            best = self._best_offset
        return TrainingStats(
            current_episode=self.completed_episodes,
            total_episodes=self.total_episodes,
            average_reward=float(rolling["average_reward"]),
            success_rate=float(rolling["success_rate"]),
            exploration_rate=self.strategy.exploration_rate(),
            reward_history=list(self.tracker.reward_history),
            success_history=list(self.tracker.success_history),
            state=self._state,
            total_steps=self._steps_offset + self.tracker.total_steps,
            best_reward=best,
        )

    def reset_stats(self) -> None:
        if self._state in (TrainingState.RUNNING, TrainingState.PAUSED):
            raise RuntimeError("Cannot reset statistics while training is in progress")
        self.tracker.clear()
        self.completed_episodes = 0
        self.total_episodes = 0
        self._steps_offset = 0
        self._best_offset = None
        self._checkpoint_history.clear()
        self._state = TrainingState.IDLE

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------
    def _build_metadata(self) -> CheckpointMetadata:
        stats = self.get_training_stats()
        entry = {
            "episode": stats.current_episode,
            "total_steps": stats.total_steps,
            "average_reward": stats.average_reward,
            "success_rate": stats.success_rate,
            "saved_at": time.strftime("%Y-%m-%dT%H:%M:%S"),
        }
        metadata = CheckpointMetadata(
            hyperparameters=self.strategy.hyperparameters(),
            total_episodes=stats.current_episode,
            total_steps=stats.total_steps,
            best_reward=stats.best_reward,
            average_reward=stats.average_reward,
            success_rate=stats.success_rate,
            history=list(self._checkpoint_history),
        )
        metadata.record(entry, max_history=self.config.max_history)
        return metadata

    def _save_checkpoint(self) -> bool:
        if self.checkpoints is None:
            return False
        metadata = self._build_metadata()
        try:
            self.checkpoints.save_checkpoint(self.config.checkpoint_key, self.strategy.state_dict(), metadata)
        except PersistenceFailure as exc:
            logger.error("Checkpoint save failed: %s", exc)
            self.metrics_logger.warning("checkpoint save failed", extra={"error": str(exc)})
            return False
        self._checkpoint_history = list(metadata.history)
        self._last_checkpoint_episode = self.completed_episodes
        return True

    def load_checkpoint(self, key: Optional[str] = None) -> bool:
        """Restore parameters and counters; on failure keep fresh parameters."""

        if self.checkpoints is None:
            return False
        key = key or self.config.checkpoint_key
        try:
            parameters, metadata = self.checkpoints.load_checkpoint(key)
            try:
                self.strategy.load_state_dict(parameters)
            except (KeyError, ValueError, RuntimeError) as exc:
                raise PersistenceFailure(f"Checkpoint '{key}' is incompatible: {exc}") from exc
        except PersistenceFailure as exc:
            logger.warning("Could not load checkpoint '%s' (%s); continuing with fresh parameters", key, exc)
            return False

        self.tracker.clear()
        self.completed_episodes = int(metadata.total_episodes)
        self.total_episodes = self.completed_episodes
        self._steps_offset = int(metadata.total_steps)
        self._best_offset = metadata.best_reward
        self._checkpoint_history = list(metadata.history)
        logger.info("Resumed from checkpoint '%s' at episode %d", key, self.completed_episodes)
        return True


__all__ = ["TrainingOrchestrator", "TrainingState", "TrainingStats"]
