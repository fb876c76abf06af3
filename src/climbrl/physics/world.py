"""Reference point-mass world with axis-aligned box bodies.

Dynamic boxes are integrated with semi-implicit Euler and pushed out of static
boxes along the axis of minimum penetration. This is not a general solver; it
only provides enough of a rigid-body world to run the climbing environment
headless.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np
from numba import njit

from climbrl.physics.backend import BodyKind, BodyShape, Vector, as_vector

logger = logging.getLogger(__name__)


@njit(cache=True)
def _box_overlaps(center, half, centers, halves, out):
    """Per-axis overlap of one box against ``centers.shape[0]`` boxes.

    Positive values on all three axes mean the boxes interpenetrate.
    """
    for j in range(centers.shape[0]):
        for k in range(3):
            out[j, k] = half[k] + halves[j, k] - abs(center[k] - centers[j, k])


@dataclass
class _Body:
    kind: BodyKind
    position: np.ndarray
    half_extents: np.ndarray
    mass: float
    tag: Optional[str] = None
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=np.float64))
    force: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=np.float64))

    @property
    def inv_mass(self) -> float:
        if self.kind is BodyKind.STATIC or self.mass <= 0.0:
            return 0.0
        return 1.0 / self.mass


class PointMassWorld:
    """Small AABB world satisfying :class:`~climbrl.physics.backend.PhysicsBackend`."""

    def __init__(
        self,
        gravity: float = -9.81,
        linear_damping: float = 0.1,
        *,
        friction: float = 0.0,
        contact_margin: float = 0.02,
        solver_passes: int = 4,
    ) -> None:
        self.gravity = np.array([0.0, float(gravity), 0.0], dtype=np.float64)
        self.linear_damping = max(float(linear_damping), 0.0)
        self.friction = max(float(friction), 0.0)
        self.contact_margin = max(float(contact_margin), 0.0)
        self.solver_passes = max(int(solver_passes), 1)

        self._bodies: Dict[int, _Body] = {}
        self._tags: Dict[str, int] = {}
        self._contacts: Dict[int, List[int]] = {}
        self._next_handle = 0
        self._static_handles = np.zeros(0, dtype=np.int64)
        self._static_centers = np.zeros((0, 3), dtype=np.float64)
        self._static_halves = np.zeros((0, 3), dtype=np.float64)

    # ------------------------------------------------------------------
    # Body management
    # ------------------------------------------------------------------
    def create_body(
        self,
        kind: BodyKind | str,
        position: Vector,
        mass: float,
        shape: BodyShape | str = BodyShape.BOX,
        size: Vector = (1.0, 1.0, 1.0),
        tag: Optional[str] = None,
    ) -> int:
        kind = BodyKind(kind)
        if BodyShape(shape) is not BodyShape.BOX:
            raise ValueError(f"Unsupported body shape: {shape}")
        extents = as_vector(size)
        if np.any(extents <= 0.0):
            raise ValueError(f"Body size must be positive, received {list(extents)}")
        if kind is BodyKind.DYNAMIC and float(mass) <= 0.0:
            raise ValueError("Dynamic bodies require a positive mass")
        if tag is not None and tag in self._tags:
            raise ValueError(f"Duplicate body tag '{tag}'")

        handle = self._next_handle
        self._next_handle += 1
        self._bodies[handle] = _Body(
            kind=kind,
            position=as_vector(position).copy(),
            half_extents=extents * 0.5,
            mass=float(mass),
            tag=tag,
        )
        if tag is not None:
            self._tags[tag] = handle
        if kind is BodyKind.STATIC:
            self._rebuild_static_cache()
        return handle

    def remove_body(self, handle: int) -> None:
        body = self._bodies.pop(handle)
        if body.tag is not None:
            self._tags.pop(body.tag, None)
        self._contacts.pop(handle, None)
        for touching in self._contacts.values():
            if handle in touching:
                touching.remove(handle)
        if body.kind is BodyKind.STATIC:
            self._rebuild_static_cache()

    def _rebuild_static_cache(self) -> None:
        statics = [(h, b) for h, b in self._bodies.items() if b.kind is BodyKind.STATIC]
        self._static_handles = np.array([h for h, _ in statics], dtype=np.int64)
        if statics:
            self._static_centers = np.stack([b.position for _, b in statics]).astype(np.float64)
            self._static_halves = np.stack([b.half_extents for _, b in statics]).astype(np.float64)
        else:
            self._static_centers = np.zeros((0, 3), dtype=np.float64)
            self._static_halves = np.zeros((0, 3), dtype=np.float64)

    def _body(self, handle: int) -> _Body:
        try:
            return self._bodies[handle]
        except KeyError as exc:
            raise KeyError(f"Unknown body handle {handle!r}") from exc

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------
    def get_position(self, handle: int) -> np.ndarray:
        return self._body(handle).position.copy()

    def get_velocity(self, handle: int) -> np.ndarray:
        return self._body(handle).velocity.copy()

    def set_position(self, handle: int, position: Vector) -> None:
        body = self._body(handle)
        body.position[:] = as_vector(position)
        if body.kind is BodyKind.STATIC:
            self._rebuild_static_cache()

    def set_velocity(self, handle: int, velocity: Vector) -> None:
        self._body(handle).velocity[:] = as_vector(velocity)

    def apply_force(self, handle: int, force: Vector) -> None:
        body = self._body(handle)
        if body.kind is BodyKind.DYNAMIC:
            body.force += as_vector(force)

    def apply_impulse(self, handle: int, impulse: Vector) -> None:
        body = self._body(handle)
        body.velocity += as_vector(impulse) * body.inv_mass

    def body_tag(self, handle: int) -> Optional[str]:
        body = self._bodies.get(handle)
        return None if body is None else body.tag

    def find_body(self, tag: str) -> Optional[int]:
        return self._tags.get(tag)

    def get_colliding_bodies(self, handle: int) -> List[int]:
        self._body(handle)
        return list(self._contacts.get(handle, ()))

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------
    def step(self, dt: float) -> None:
        dt = float(dt)
        if dt <= 0.0:
            raise ValueError("dt must be positive")

        self._contacts = {}
        damping = max(0.0, 1.0 - self.linear_damping * dt)
        for handle, body in self._bodies.items():
            if body.kind is not BodyKind.DYNAMIC:
                continue
            accel = self.gravity + body.force * body.inv_mass
            body.velocity += accel * dt
            body.velocity *= damping
            body.position += body.velocity * dt
            body.force[:] = 0.0
            if self._static_handles.size:
                supported = self._resolve(body)
                if supported and self.friction > 0.0:
                    scale = max(0.0, 1.0 - self.friction * dt)
                    body.velocity[0] *= scale
                    body.velocity[2] *= scale
                self._record_contacts(handle, body)

    def _resolve(self, body: _Body) -> bool:
        """Push ``body`` out of static boxes; return True if resting on a top face."""

        supported = False
        overlaps = np.empty_like(self._static_centers)
        for _ in range(self.solver_passes):
            _box_overlaps(body.position, body.half_extents, self._static_centers, self._static_halves, overlaps)
            penetrating = np.all(overlaps > 0.0, axis=1)
            if not penetrating.any():
                break
            # Resolve the deepest contact first; later passes clean up the rest.
            candidates = np.flatnonzero(penetrating)
            j = candidates[np.argmax(overlaps[candidates].min(axis=1))]
            axis = int(np.argmin(overlaps[j]))
            offset = body.position[axis] - self._static_centers[j, axis]
            sign = 1.0 if offset >= 0.0 else -1.0
            body.position[axis] += sign * overlaps[j, axis]
            if body.velocity[axis] * sign < 0.0:
                body.velocity[axis] = 0.0
            if axis == 1 and sign > 0.0:
                supported = True
        return supported

    def _record_contacts(self, handle: int, body: _Body) -> None:
        overlaps = np.empty_like(self._static_centers)
        _box_overlaps(body.position, body.half_extents, self._static_centers, self._static_halves, overlaps)
        touching = np.flatnonzero(np.all(overlaps > -self.contact_margin, axis=1))
        for j in touching:
            other = int(self._static_handles[j])
            self._contacts.setdefault(handle, []).append(other)
            self._contacts.setdefault(other, []).append(handle)

    def __len__(self) -> int:
        return len(self._bodies)


__all__ = ["PointMassWorld"]
