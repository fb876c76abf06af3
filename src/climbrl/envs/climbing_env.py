"""Single-agent episodic environment for climbing the zone staircase."""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, List, Mapping, Optional

import numpy as np
from gymnasium import spaces

from climbrl.envs.actions import MOVE_DIRECTIONS, N_ACTIONS, Action, coerce_action
from climbrl.envs.course import GROUND_TAG, OFF_TRACK, CourseLayout, layout_from_config
from climbrl.physics.backend import BodyKind, BodyShape, PhysicsBackend
from climbrl.physics.world import PointMassWorld
from climbrl.tasks.reward.ascent import AscentReward
from climbrl.tasks.reward.base import RewardComponents, RewardStep, RewardStrategy
from climbrl.utils.config_schema import EnvSchema

logger = logging.getLogger(__name__)

STATE_DIM = 15
AGENT_TAG = "agent"

_STATE_LOW = np.array([-1.0] * 6 + [0.0] + [-1.0] * 3 + [0.0] * 5, dtype=np.float32)
_STATE_HIGH = np.ones(STATE_DIM, dtype=np.float32)


class EpisodePhase(str, Enum):
    ACTIVE = "active"
    TERMINAL = "terminal"


@dataclass
class StepResult:
    state: np.ndarray
    reward: float
    done: bool
    info: Dict[str, Any] = field(default_factory=dict)


@dataclass
class _Observation:
    position: np.ndarray
    velocity: np.ndarray
    zone: int
    success: bool
    fallen: bool
    out_of_bounds: bool


class ClimbingEnvironment:
    """Wraps a physics backend and a course into reset/step episodes.

    State vector layout (``STATE_DIM`` entries)::

        0-2   position / world extents           [-1, 1]
        3-5   velocity / max_velocity            [-1, 1]
        6     goal distance / scale              [0, 1]
        7-9   sign of (goal - position)          {-1, 0, 1}
        10    (zone + 1) / n_zones, 0 off-track  [0, 1]
        11    next-zone distance / scale         [0, 1]
        12    in-zone flag                       {0, 1}
        13    (highest zone + 1) / n_zones       [0, 1]
        14    step / max_steps                   [0, 1]
    """

    def __init__(
        self,
        cfg: Mapping[str, Any] | EnvSchema | None = None,
        *,
        physics: Optional[PhysicsBackend] = None,
        reward: Optional[RewardStrategy] = None,
        course: Optional[CourseLayout] = None,
    ) -> None:
        if cfg is None:
            self.cfg = EnvSchema()
        elif isinstance(cfg, EnvSchema):
            self.cfg = cfg
        else:
            self.cfg = EnvSchema.from_dict(cfg)
        cfg = self.cfg

        self.max_steps = int(cfg.max_steps)
        self.timestep = float(cfg.timestep)
        self.start_position = np.asarray(cfg.start_position, dtype=np.float64)
        self.agent_half = 0.5 * float(cfg.agent_size)
        self.fall_threshold = float(cfg.fall_threshold)
        self.ledge_prefixes = tuple(str(p) for p in cfg.ledge_prefixes)

        self.course = course or layout_from_config(cfg)
        self.physics: PhysicsBackend = physics or PointMassWorld(
            gravity=cfg.gravity,
            linear_damping=cfg.linear_damping,
            friction=cfg.friction,
        )
        self.reward_fn: RewardStrategy = reward or AscentReward()

        self.observation_space = spaces.Box(low=_STATE_LOW, high=_STATE_HIGH, dtype=np.float32)
        self.action_space = spaces.Discrete(N_ACTIONS)

        self._build_course()

        self.record_trajectories = bool(cfg.record_trajectories)
        self.trajectory_history: Deque[Dict[str, Any]] = deque(maxlen=max(int(cfg.max_trajectories), 1))
        self._current_trajectory: Optional[List[Dict[str, Any]]] = None

        self.episode_index = -1
        self.phase = EpisodePhase.TERMINAL
        self._reset_counters()

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------
    def _build_course(self) -> None:
        ground_center, ground_size = self.course.ground_box()
        self.physics.create_body(BodyKind.STATIC, ground_center, 0.0, BodyShape.BOX, ground_size, GROUND_TAG)
        for zone in self.course.zones:
            self.physics.create_body(BodyKind.STATIC, zone.center, 0.0, BodyShape.BOX, zone.size, zone.tag)
        size = [2.0 * self.agent_half] * 3
        self.agent = self.physics.create_body(
            BodyKind.DYNAMIC,
            self.start_position,
            float(self.cfg.agent_mass),
            BodyShape.BOX,
            size,
            AGENT_TAG,
        )
        self._support_tags = {GROUND_TAG} | {zone.tag for zone in self.course.zones}
        self.goal_position = self.course.goal_position(self.agent_half)

    def _reset_counters(self) -> None:
        self.step_count = 0
        self.total_reward = 0.0
        self.highest_zone = OFF_TRACK
        self.previous_zone = OFF_TRACK
        self.current_zone = OFF_TRACK
        self.jump_cooldown = 0
        self.steps_without_progress = 0
        self.termination_reason: Optional[str] = None
        self.success = False

    # ------------------------------------------------------------------
    # Episode API
    # ------------------------------------------------------------------
    def reset(self) -> np.ndarray:
        self.physics.set_position(self.agent, self.start_position)
        self.physics.set_velocity(self.agent, np.zeros(3))
        self._reset_counters()
        self.episode_index += 1
        self.reward_fn.reset(self.episode_index)
        self.phase = EpisodePhase.ACTIVE
        self._current_trajectory = [] if self.record_trajectories else None
        return self.get_state()

    def step(self, action: Any) -> StepResult:
        if self.phase is EpisodePhase.TERMINAL:
            raise RuntimeError("Episode is terminal; call reset() before step()")

        prev_state = self.get_state()
        if self.jump_cooldown > 0:
            self.jump_cooldown -= 1
        chosen = coerce_action(action)
        applied = self._apply_action(chosen)

        self.physics.step(self.timestep)
        self.step_count += 1

        obs = self._observe()
        self.current_zone = obs.zone
        reward, components = self._compute_reward(prev_state, chosen, obs)

        if obs.zone > self.highest_zone:
            self.highest_zone = obs.zone
            self.steps_without_progress = 0
        else:
            self.steps_without_progress += 1
        if obs.zone != OFF_TRACK:
            self.previous_zone = obs.zone

        self.total_reward += reward
        state = self.get_state()
        done = self._check_terminal(obs)

        info: Dict[str, Any] = {
            "step": self.step_count,
            "total_reward": self.total_reward,
            "position": obs.position.tolist(),
            "action": int(chosen) if chosen is not None else action,
            "action_name": chosen.name if chosen is not None else "INVALID",
            "action_applied": applied,
            "zone": obs.zone,
            "highest_zone": self.highest_zone,
            "reward_components": components,
        }
        if done:
            self.phase = EpisodePhase.TERMINAL
            info["termination_reason"] = self.termination_reason
            info["success"] = self.success
            logger.debug(
                "Episode %d ended (%s) after %d steps, reward=%.3f highest_zone=%d",
                self.episode_index,
                self.termination_reason,
                self.step_count,
                self.total_reward,
                self.highest_zone,
            )

        self._record_step(obs, chosen, reward, done)
        return StepResult(state=state, reward=reward, done=done, info=info)

    def get_state(self) -> np.ndarray:
        position = np.asarray(self.physics.get_position(self.agent), dtype=np.float64)
        velocity = np.asarray(self.physics.get_velocity(self.agent), dtype=np.float64)
        zone = self.classify_zone(position)
        cfg = self.cfg
        n_zones = self.course.n_zones

        state = np.zeros(STATE_DIM, dtype=np.float32)
        state[0] = position[0] / cfg.world_extent
        state[1] = position[1] / cfg.height_scale
        state[2] = position[2] / cfg.world_extent
        state[3:6] = velocity / cfg.max_velocity
        to_goal = self.goal_position - position
        state[6] = np.linalg.norm(to_goal) / cfg.goal_distance_scale
        state[7:10] = np.sign(to_goal)
        state[10] = (zone + 1) / n_zones if zone != OFF_TRACK else 0.0
        next_target = self.course.next_zone_target(self.highest_zone, self.agent_half)
        state[11] = np.linalg.norm(next_target - position) / cfg.goal_distance_scale
        state[12] = 1.0 if zone != OFF_TRACK else 0.0
        state[13] = (self.highest_zone + 1) / n_zones
        state[14] = self.step_count / self.max_steps

        np.nan_to_num(state, copy=False, nan=0.0, posinf=1.0, neginf=-1.0)
        return np.clip(state, _STATE_LOW, _STATE_HIGH)

    def calculate_reward(
        self,
        prev_state: Optional[np.ndarray],
        action: Any,
        new_state: Optional[np.ndarray] = None,
    ) -> float:
        """Score a transition without changing the episode or reward bookkeeping.

        ``new_state`` is decoded back to a position and velocity; when omitted
        the current physics state is scored. A zone that would earn the
        first-arrival bonus still earns it on the next real step.
        """

        obs = self._observe() if new_state is None else self._observation_from_state(new_state)
        reward, _ = self._compute_reward(prev_state, coerce_action(action), obs, new_state, commit=False)
        return reward

    def is_terminal(self) -> bool:
        obs = self._observe()
        return obs.success or obs.fallen or obs.out_of_bounds or self.step_count >= self.max_steps

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------
    def classify_zone(self, position: Any) -> int:
        return self.course.classify_zone(position, self.agent_half)

    def is_out_of_bounds(self, position: Any = None) -> bool:
        if position is None:
            position = self.physics.get_position(self.agent)
        return self.course.is_out_of_bounds(position)

    def is_grounded(self) -> bool:
        velocity = self.physics.get_velocity(self.agent)
        if abs(float(velocity[1])) >= self.cfg.grounded_velocity:
            return False
        for handle in self.physics.get_colliding_bodies(self.agent):
            if self.physics.body_tag(handle) in self._support_tags:
                return True
        # Contact reporting can miss resting contacts; fall back to the body's height.
        bottom = float(self.physics.get_position(self.agent)[1]) - self.agent_half
        tolerance = self.cfg.grounded_tolerance
        return any(abs(bottom - height) <= tolerance for height in self.course.support_heights())

    def is_touching_ledge(self) -> bool:
        for handle in self.physics.get_colliding_bodies(self.agent):
            tag = self.physics.body_tag(handle)
            if tag and tag.startswith(self.ledge_prefixes):
                return True
        return False

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------
    def episode_stats(self) -> Dict[str, Any]:
        return {
            "episode": self.episode_index,
            "steps": self.step_count,
            "total_reward": self.total_reward,
            "success": self.success,
            "highest_zone": self.highest_zone,
            "termination_reason": self.termination_reason,
        }

    def trajectory_stats(self) -> Dict[str, Any]:
        history = list(self.trajectory_history)
        if not history:
            return {"episodes": 0, "successes": 0, "success_rate": 0.0, "avg_steps": 0.0, "avg_reward": 0.0}
        successes = sum(1 for entry in history if entry["success"])
        return {
            "episodes": len(history),
            "successes": successes,
            "success_rate": successes / len(history),
            "avg_steps": float(np.mean([entry["steps"] for entry in history])),
            "avg_reward": float(np.mean([entry["total_reward"] for entry in history])),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _apply_action(self, action: Optional[Action]) -> bool:
        cfg = self.cfg
        if action is None:
            return False
        if action in MOVE_DIRECTIONS:
            self.physics.apply_force(self.agent, MOVE_DIRECTIONS[action] * cfg.move_force)
            return True
        if action is Action.JUMP:
            if self.jump_cooldown == 0 and self.is_grounded():
                self.physics.apply_impulse(self.agent, np.array([0.0, cfg.jump_impulse, 0.0]))
                self.jump_cooldown = int(cfg.jump_cooldown)
                return True
            return False
        if action is Action.GRAB:
            if self.is_touching_ledge():
                self.physics.apply_force(self.agent, np.array([0.0, cfg.grab_force, 0.0]))
                return True
            return False
        return False

    def _observe(self) -> _Observation:
        position = np.asarray(self.physics.get_position(self.agent), dtype=np.float64)
        velocity = np.asarray(self.physics.get_velocity(self.agent), dtype=np.float64)
        return self._observe_at(position, velocity)

    def _observation_from_state(self, state: Any) -> _Observation:
        vector = np.asarray(state, dtype=np.float64)
        if vector.shape != (STATE_DIM,):
            raise ValueError(f"state must have shape ({STATE_DIM},), received {vector.shape}")
        cfg = self.cfg
        position = vector[0:3] * np.array([cfg.world_extent, cfg.height_scale, cfg.world_extent])
        return self._observe_at(position, vector[3:6] * cfg.max_velocity)

    def _observe_at(self, position: np.ndarray, velocity: np.ndarray) -> _Observation:
        zone = self.classify_zone(position)
        return _Observation(
            position=position,
            velocity=velocity,
            zone=zone,
            success=zone == self.course.success_zone,
            fallen=float(position[1]) < self.fall_threshold,
            out_of_bounds=self.course.is_out_of_bounds(position),
        )

    def _compute_reward(
        self,
        prev_state: Optional[np.ndarray],
        action: Optional[Action],
        obs: _Observation,
        new_state: Optional[np.ndarray] = None,
        commit: bool = True,
    ) -> tuple[float, RewardComponents]:
        target = self.course.next_zone_target(self.highest_zone, self.agent_half)
        step = RewardStep(
            zone=obs.zone,
            previous_zone=self.previous_zone,
            highest_zone=self.highest_zone,
            success=obs.success,
            fallen=obs.fallen,
            out_of_bounds=obs.out_of_bounds,
            velocity=obs.velocity,
            direction_to_next_zone=target - obs.position,
            steps_without_progress=self.steps_without_progress,
            step_index=self.step_count,
            prev_state=prev_state,
            new_state=new_state,
            action=int(action) if action is not None else None,
        )
        return self.reward_fn.compute(step, commit=commit)

    def _check_terminal(self, obs: _Observation) -> bool:
        if obs.success:
            self.termination_reason = "goal_reached"
            self.success = True
        elif obs.fallen:
            self.termination_reason = "fallen"
        elif obs.out_of_bounds:
            self.termination_reason = "out_of_bounds"
        elif self.step_count >= self.max_steps:
            self.termination_reason = "max_steps"
        else:
            return False
        return True

    def _record_step(self, obs: _Observation, action: Optional[Action], reward: float, done: bool) -> None:
        if self._current_trajectory is None:
            return
        self._current_trajectory.append(
            {
                "step": self.step_count,
                "position": obs.position.tolist(),
                "action": int(action) if action is not None else None,
                "reward": reward,
                "zone": obs.zone,
            }
        )
        if done:
            self.trajectory_history.append(
                {
                    "episode": self.episode_index,
                    "steps": self.step_count,
                    "total_reward": self.total_reward,
                    "success": self.success,
                    "highest_zone": self.highest_zone,
                    "termination_reason": self.termination_reason,
                    "records": self._current_trajectory,
                }
            )
            self._current_trajectory = None


__all__ = ["AGENT_TAG", "STATE_DIM", "ClimbingEnvironment", "EpisodePhase", "StepResult"]
