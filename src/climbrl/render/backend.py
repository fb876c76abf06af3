"""Optional rendering collaborator; ``None`` everywhere means headless."""
from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable


@runtime_checkable
class RenderingBackend(Protocol):
    def update_agent_pose(self, position: Sequence[float]) -> None:
        ...

    def update_camera(self, target: Sequence[float]) -> None:
        ...

    def render(self) -> None:
        ...


__all__ = ["RenderingBackend"]
