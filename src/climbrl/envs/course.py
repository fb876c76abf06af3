"""Course geometry: ground, staircase zones, bounds and zone classification."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Sequence, Tuple

import numpy as np

OFF_TRACK = -1
GROUND_TAG = "ground"


def zone_tag(index: int) -> str:
    return f"zone_{index}"


@dataclass(frozen=True)
class Zone:
    """Axis-aligned box the agent can stand on; ``center`` is the box centre."""

    index: int
    center: Tuple[float, float, float]
    size: Tuple[float, float, float]

    @property
    def top(self) -> float:
        return self.center[1] + 0.5 * self.size[1]

    @property
    def tag(self) -> str:
        return zone_tag(self.index)

    def resting_point(self, agent_half_size: float) -> np.ndarray:
        """Position of an agent standing at the centre of the zone's top face."""

        return np.array([self.center[0], self.top + agent_half_size, self.center[2]], dtype=np.float64)


@dataclass
class ZoneTolerance:
    height: float = 0.3
    depth: float = 0.25
    lateral: float = 0.25


@dataclass
class CourseLayout:
    """Static description of the climbing course.

    The last zone is the goal; reaching it ends the episode successfully.
    """

    zones: List[Zone]
    bounds_x: float
    bounds_z: Tuple[float, float]
    ground_height: float = 0.0
    ground_thickness: float = 1.0
    tolerance: ZoneTolerance = field(default_factory=ZoneTolerance)

    def __post_init__(self) -> None:
        if not self.zones:
            raise ValueError("CourseLayout requires at least one zone")
        indices = [zone.index for zone in self.zones]
        if indices != list(range(len(self.zones))):
            raise ValueError(f"Zone indices must be 0..n-1 in order, received {indices}")

    @property
    def n_zones(self) -> int:
        return len(self.zones)

    @property
    def success_zone(self) -> int:
        return self.n_zones - 1

    def goal_position(self, agent_half_size: float) -> np.ndarray:
        return self.zones[-1].resting_point(agent_half_size)

    def ground_box(self) -> Tuple[np.ndarray, np.ndarray]:
        """Centre and size of the ground slab, extended one unit past the bounds."""

        z_min, z_max = self.bounds_z
        size = np.array(
            [2.0 * self.bounds_x + 2.0, self.ground_thickness, (z_max - z_min) + 2.0],
            dtype=np.float64,
        )
        center = np.array(
            [0.0, self.ground_height - 0.5 * self.ground_thickness, 0.5 * (z_min + z_max)],
            dtype=np.float64,
        )
        return center, size

    def support_heights(self) -> List[float]:
        return [self.ground_height] + [zone.top for zone in self.zones]

    def is_out_of_bounds(self, position: Sequence[float]) -> bool:
        x, _, z = (float(v) for v in position[:3])
        z_min, z_max = self.bounds_z
        return abs(x) > self.bounds_x or z < z_min or z > z_max

    def classify_zone(self, position: Sequence[float], agent_half_size: float) -> int:
        """Return the highest zone whose height band and footprint contain ``position``.

        A zone matches when the agent centre lies within ``tolerance.height`` of
        the zone's resting height and inside its footprint enlarged by the depth
        (z) and lateral (x) tolerances. Returns ``OFF_TRACK`` when nothing matches.
        """

        x, y, z = (float(v) for v in position[:3])
        tol = self.tolerance
        best = OFF_TRACK
        for zone in self.zones:
            resting = zone.top + agent_half_size
            if abs(y - resting) > tol.height:
                continue
            if abs(x - zone.center[0]) > 0.5 * zone.size[0] + tol.lateral:
                continue
            if abs(z - zone.center[2]) > 0.5 * zone.size[2] + tol.depth:
                continue
            best = max(best, zone.index)
        return best

    def next_zone_target(self, highest_zone: int, agent_half_size: float) -> np.ndarray:
        index = min(max(highest_zone + 1, 0), self.success_zone)
        return self.zones[index].resting_point(agent_half_size)


def default_staircase(
    n_steps: int = 5,
    *,
    step_rise: float = 0.5,
    step_depth: float = 2.0,
    step_width: float = 4.0,
    bounds_x: float = 6.0,
    bounds_z: Tuple[float, float] = (-14.0, 8.0),
    tolerance: ZoneTolerance | None = None,
) -> CourseLayout:
    """Solid steps climbing towards ``-z``; step ``i`` spans ``z in [-(i+1)d, -i d]``."""

    if n_steps <= 0:
        raise ValueError("n_steps must be positive")
    zones = []
    for i in range(n_steps):
        height = (i + 1) * step_rise
        center = (0.0, 0.5 * height, -(i + 0.5) * step_depth)
        zones.append(Zone(index=i, center=center, size=(step_width, height, step_depth)))
    return CourseLayout(
        zones=zones,
        bounds_x=float(bounds_x),
        bounds_z=(float(bounds_z[0]), float(bounds_z[1])),
        tolerance=tolerance or ZoneTolerance(),
    )


def zones_from_config(entries: Iterable[Mapping[str, Any]]) -> List[Zone]:
    """Build zones from ``[{"position": [x, y, z], "size": [w, h, d]}, ...]``."""

    zones = []
    for index, entry in enumerate(entries):
        try:
            position = tuple(float(v) for v in entry["position"])
            size = tuple(float(v) for v in entry["size"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Zone {index} needs numeric 'position' and 'size' triples") from exc
        if len(position) != 3 or len(size) != 3:
            raise ValueError(f"Zone {index} needs 3-component 'position' and 'size'")
        zones.append(Zone(index=index, center=position, size=size))
    return zones


def layout_from_config(cfg: Any) -> CourseLayout:
    """Build the course described by an :class:`EnvSchema`-like mapping."""

    tolerance = ZoneTolerance(
        height=float(cfg.get("height_tolerance", 0.3)),
        depth=float(cfg.get("depth_tolerance", 0.25)),
        lateral=float(cfg.get("lateral_tolerance", 0.25)),
    )
    bounds_z = tuple(cfg.get("bounds_z", (-14.0, 8.0)))
    entries = cfg.get("zones") or []
    if entries:
        return CourseLayout(
            zones=zones_from_config(entries),
            bounds_x=float(cfg.get("bounds_x", 6.0)),
            bounds_z=(float(bounds_z[0]), float(bounds_z[1])),
            tolerance=tolerance,
        )
    return default_staircase(
        int(cfg.get("n_steps", 5)),
        step_rise=float(cfg.get("step_rise", 0.5)),
        step_depth=float(cfg.get("step_depth", 2.0)),
        step_width=float(cfg.get("step_width", 4.0)),
        bounds_x=float(cfg.get("bounds_x", 6.0)),
        bounds_z=(float(bounds_z[0]), float(bounds_z[1])),
        tolerance=tolerance,
    )


__all__ = [
    "GROUND_TAG",
    "OFF_TRACK",
    "CourseLayout",
    "Zone",
    "ZoneTolerance",
    "default_staircase",
    "layout_from_config",
    "zone_tag",
    "zones_from_config",
]
