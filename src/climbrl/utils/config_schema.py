"""Dataclass schemas for every config section, with typed coercion from YAML."""
from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Type,
    TypeVar,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

T = TypeVar("T", bound="BaseSchema")

_TRUE_WORDS = frozenset({"true", "yes", "y", "on", "1"})
_FALSE_WORDS = frozenset({"false", "no", "n", "off", "0"})


class SchemaError(ValueError):
    """A config value could not be coerced or failed validation."""


@dataclass
class BaseSchema:
    """Section schema: known keys are coerced to their annotated type, unknown
    keys are kept in ``extras`` and round-trip through :meth:`to_dict`."""

    extras: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls: Type[T], data: Optional[Mapping[str, Any]]) -> T:
        instance = cls()  # type: ignore[call-arg]
        instance.update_from_dict(data or {})
        instance.validate()
        return instance

    def update_from_dict(self, data: Mapping[str, Any]) -> None:
        hints = get_type_hints(type(self))
        known = {f.name for f in fields(self)} - {"extras"}
        for key, value in data.items():
            if key in known:
                setattr(self, key, _coerce(hints[key], value, key))
            elif key != "extras":
                self.extras[key] = value

    def validate(self) -> None:
        """Hook for cross-field checks; raise :class:`SchemaError` on failure."""

    def to_dict(self) -> Dict[str, Any]:
        payload = {f.name: copy.deepcopy(getattr(self, f.name)) for f in fields(self) if f.name != "extras"}
        payload.update(self.extras)
        return payload

    def get(self, key: str, default: Any = None) -> Any:
        if key != "extras" and hasattr(self, key):
            return getattr(self, key)
        return self.extras.get(key, default)


def _to_number(kind: type) -> Callable[[Any, str], Any]:
    def convert(value: Any, name: str) -> Any:
        if isinstance(value, bool):
            raise SchemaError(f"{name}: expected {kind.__name__}, received boolean {value!r}")
        try:
            return kind(value)
        except (TypeError, ValueError) as exc:
            raise SchemaError(f"{name}: cannot convert {value!r} to {kind.__name__}") from exc

    return convert


def _to_bool(value: Any, name: str) -> bool:
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        raise SchemaError(f"{name}: cannot read '{value}' as a boolean")
    return bool(value)


_SCALARS: Dict[Any, Callable[[Any, str], Any]] = {
    int: _to_number(int),
    float: _to_number(float),
    bool: _to_bool,
    str: lambda value, name: str(value),
}


def _coerce(annotation: Any, value: Any, name: str) -> Any:
    if value is None:
        return None
    origin = get_origin(annotation)
    args = get_args(annotation)

    if origin is Union:
        members = [arg for arg in args if arg is not type(None)]
        if len(members) == 1:
            return _coerce(members[0], value, name)
        return value

    if origin in (list, tuple, Sequence):
        if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)):
            raise SchemaError(f"{name}: expected a sequence, received {value!r}")
        item_type = args[0] if args else Any
        return [_coerce(item_type, item, name) for item in value]

    if origin in (dict, Mapping):
        if not isinstance(value, Mapping):
            raise SchemaError(f"{name}: expected a mapping, received {value!r}")
        value_type = args[1] if len(args) == 2 else Any
        return {key: _coerce(value_type, item, f"{name}.{key}") for key, item in value.items()}

    convert = _SCALARS.get(annotation)
    return convert(value, name) if convert is not None else value


def _require_vector(name: str, value: Sequence[float], length: int = 3) -> None:
    if len(value) != length:
        raise SchemaError(f"{name} must have {length} components, received {list(value)!r}")


@dataclass
class EnvSchema(BaseSchema):
    max_steps: int = 500
    timestep: float = 1.0 / 60.0
    gravity: float = -9.81
    linear_damping: float = 0.1
    friction: float = 2.0
    start_position: List[float] = field(default_factory=lambda: [0.0, 0.5, 3.0])
    agent_size: float = 0.5
    agent_mass: float = 1.0
    # Course geometry; empty ``zones`` selects the default staircase.
    zones: List[Dict[str, Any]] = field(default_factory=list)
    n_steps: int = 5
    step_rise: float = 0.5
    step_depth: float = 2.0
    step_width: float = 4.0
    bounds_x: float = 6.0
    bounds_z: List[float] = field(default_factory=lambda: [-14.0, 8.0])
    fall_threshold: float = -2.0
    # Normalisation scales for the state vector
    world_extent: float = 10.0
    height_scale: float = 10.0
    max_velocity: float = 20.0
    goal_distance_scale: float = 25.0
    # Actions
    move_force: float = 20.0
    jump_impulse: float = 5.5
    grab_force: float = 12.0
    jump_cooldown: int = 20
    grounded_velocity: float = 0.5
    grounded_tolerance: float = 0.1
    ledge_prefixes: List[str] = field(default_factory=lambda: ["ledge", "zone"])
    # Zone classification tolerances
    height_tolerance: float = 0.3
    depth_tolerance: float = 0.25
    lateral_tolerance: float = 0.25
    # Trajectory recording
    record_trajectories: bool = False
    max_trajectories: int = 100

    def validate(self) -> None:
        if self.max_steps <= 0:
            raise SchemaError("env.max_steps must be positive")
        if self.timestep <= 0.0:
            raise SchemaError("env.timestep must be positive")
        _require_vector("env.start_position", self.start_position)
        _require_vector("env.bounds_z", self.bounds_z, length=2)
        if self.bounds_z[0] >= self.bounds_z[1]:
            raise SchemaError("env.bounds_z must be ordered (min, max)")
        if self.n_steps <= 0 and not self.zones:
            raise SchemaError("env.n_steps must be positive when no explicit zones are configured")


@dataclass
class RewardSchema(BaseSchema):
    success_reward: float = 100.0
    failure_reward: float = -50.0
    zone_reward: float = 10.0
    zone_reward_decay: float = 0.8
    first_arrival_bonus: float = 5.0
    regression_penalty: float = -5.0
    time_penalty: float = -0.01
    alignment_weight: float = 0.05
    stagnation_grace: int = 100
    stagnation_penalty: float = -0.001
    stagnation_cap: float = -0.5
    reward_range: List[float] = field(default_factory=lambda: [-100.0, 100.0])

    def validate(self) -> None:
        _require_vector("reward.reward_range", self.reward_range, length=2)
        low, high = self.reward_range
        if low >= high:
            raise SchemaError("reward.reward_range must be ordered (min, max)")
        for name in ("success_reward", "failure_reward"):
            value = getattr(self, name)
            if not low <= value <= high:
                raise SchemaError(f"reward.{name}={value} lies outside reward_range {self.reward_range}")
        if not 0.0 < self.zone_reward_decay <= 1.0:
            raise SchemaError("reward.zone_reward_decay must be in (0, 1]")
        if self.stagnation_grace < 0:
            raise SchemaError("reward.stagnation_grace must be non-negative")


@dataclass
class DQNConfigSchema(BaseSchema):
    gamma: float = 0.99
    lr: float = 3e-4
    batch_size: int = 32
    buffer_size: int = 10_000
    learning_starts: int = 0
    target_update_interval: int = 10
    train_every: int = 1
    epsilon_start: float = 1.0
    epsilon_end: float = 0.01
    epsilon_decay_rate: float = 0.995
    max_grad_norm: float = 1.0
    target_clip: Optional[float] = None
    hidden_dims: List[int] = field(default_factory=lambda: [64, 64])
    device: str = "cpu"

    def validate(self) -> None:
        if not 0.0 < self.epsilon_decay_rate <= 1.0:
            raise SchemaError("dqn.epsilon_decay_rate must be in (0, 1]")
        if self.batch_size <= 0 or self.buffer_size <= 0:
            raise SchemaError("dqn.batch_size and dqn.buffer_size must be positive")
        if self.target_update_interval <= 0:
            raise SchemaError("dqn.target_update_interval must be positive")


@dataclass
class PPOConfigSchema(BaseSchema):
    actor_lr: float = 3e-4
    critic_lr: float = 3e-4
    gamma: float = 0.99
    lam: float = 0.95
    clip_eps: float = 0.2
    ent_coef: float = 0.01
    update_epochs: int = 10
    max_grad_norm: float = 0.5
    prob_floor: float = 1e-8
    hidden_dims: List[int] = field(default_factory=lambda: [64, 64])
    device: str = "cpu"

    def validate(self) -> None:
        if not 0.0 < self.clip_eps < 1.0:
            raise SchemaError("ppo.clip_eps must be in (0, 1)")
        if self.update_epochs <= 0:
            raise SchemaError("ppo.update_epochs must be positive")


@dataclass
class TrainingSchema(BaseSchema):
    algorithm: str = "dqn"
    episodes: int = 1000
    stats_window: int = 100
    log_interval: int = 10
    checkpoint_interval: int = 10
    checkpoint_dir: str = "training-data/models"
    checkpoint_key: str = "climbing-model"
    max_history: int = 100
    render_interval: int = 1
    step_delay: float = 0.0
    pause_poll: float = 0.1
    seed: Optional[int] = None

    def validate(self) -> None:
        if self.stats_window <= 0:
            raise SchemaError("training.stats_window must be positive")
        if self.checkpoint_interval < 0:
            raise SchemaError("training.checkpoint_interval must be non-negative")


__all__ = [
    "BaseSchema",
    "SchemaError",
    "EnvSchema",
    "RewardSchema",
    "DQNConfigSchema",
    "PPOConfigSchema",
    "TrainingSchema",
]
