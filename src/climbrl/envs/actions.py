"""Discrete action set of the climbing agent."""
from __future__ import annotations

from enum import IntEnum
from typing import Any, Optional

import numpy as np


class Action(IntEnum):
    FORWARD = 0
    BACKWARD = 1
    LEFT = 2
    RIGHT = 3
    JUMP = 4
    GRAB = 5


N_ACTIONS = len(Action)

# Unit directions for the sustained movement actions (y is up, the course climbs towards -z).
MOVE_DIRECTIONS = {
    Action.FORWARD: np.array([0.0, 0.0, -1.0]),
    Action.BACKWARD: np.array([0.0, 0.0, 1.0]),
    Action.LEFT: np.array([-1.0, 0.0, 0.0]),
    Action.RIGHT: np.array([1.0, 0.0, 0.0]),
}


def coerce_action(value: Any) -> Optional[Action]:
    """Return the :class:`Action` for ``value`` or ``None`` if it is not a valid action."""

    if isinstance(value, (bool, np.bool_)):
        return None
    if isinstance(value, (int, np.integer)):
        index = int(value)
    elif isinstance(value, (float, np.floating)) and float(value).is_integer():
        index = int(value)
    else:
        return None
    if 0 <= index < N_ACTIONS:
        return Action(index)
    return None


__all__ = ["Action", "MOVE_DIRECTIONS", "N_ACTIONS", "coerce_action"]
