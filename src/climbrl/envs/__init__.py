from .actions import Action, N_ACTIONS, coerce_action
from .climbing_env import STATE_DIM, ClimbingEnvironment, EpisodePhase, StepResult
from .course import OFF_TRACK, CourseLayout, Zone, default_staircase, layout_from_config

__all__ = [
    "Action",
    "N_ACTIONS",
    "coerce_action",
    "STATE_DIM",
    "ClimbingEnvironment",
    "EpisodePhase",
    "StepResult",
    "OFF_TRACK",
    "CourseLayout",
    "Zone",
    "default_staircase",
    "layout_from_config",
]
