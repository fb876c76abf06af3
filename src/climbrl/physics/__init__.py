"""Physics backends driving the climbing agent."""

from .backend import BodyKind, BodyShape, PhysicsBackend
from .world import PointMassWorld

__all__ = ["BodyKind", "BodyShape", "PhysicsBackend", "PointMassWorld"]
