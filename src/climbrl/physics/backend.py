"""Interface consumed by the environment from a rigid-body physics world."""
from __future__ import annotations

from enum import Enum
from typing import Any, Hashable, List, Optional, Protocol, Sequence, runtime_checkable

import numpy as np

BodyHandle = Hashable
Vector = Sequence[float]


class BodyKind(str, Enum):
    DYNAMIC = "dynamic"
    STATIC = "static"


class BodyShape(str, Enum):
    BOX = "box"


@runtime_checkable
class PhysicsBackend(Protocol):
    """Minimal rigid-body world used by :class:`ClimbingEnvironment`.

    Positions and velocities are ``(x, y, z)`` with ``y`` pointing up. Bodies
    may carry an application chosen tag (``"ground"``, ``"zone_0"``, ...) used
    for ground/zone/ledge classification.
    """

    def create_body(
        self,
        kind: BodyKind | str,
        position: Vector,
        mass: float,
        shape: BodyShape | str,
        size: Vector,
        tag: Optional[str] = None,
    ) -> BodyHandle:
        ...

    def get_position(self, handle: BodyHandle) -> np.ndarray:
        ...

    def get_velocity(self, handle: BodyHandle) -> np.ndarray:
        ...

    def set_position(self, handle: BodyHandle, position: Vector) -> None:
        ...

    def set_velocity(self, handle: BodyHandle, velocity: Vector) -> None:
        ...

    def apply_force(self, handle: BodyHandle, force: Vector) -> None:
        ...

    def apply_impulse(self, handle: BodyHandle, impulse: Vector) -> None:
        ...

    def step(self, dt: float) -> None:
        ...

    def get_colliding_bodies(self, handle: BodyHandle) -> List[BodyHandle]:
        ...

    def body_tag(self, handle: BodyHandle) -> Optional[str]:
        ...

    def find_body(self, tag: str) -> Optional[BodyHandle]:
        ...


def as_vector(value: Any) -> np.ndarray:
    vec = np.asarray(value, dtype=np.float64).reshape(-1)
    if vec.shape != (3,):
        raise ValueError(f"Expected a 3-vector, received shape {vec.shape}")
    return vec


__all__ = ["BodyHandle", "BodyKind", "BodyShape", "PhysicsBackend", "Vector", "as_vector"]
