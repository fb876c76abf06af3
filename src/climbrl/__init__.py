# src/climbrl/__init__.py
from climbrl.envs.climbing_env import ClimbingEnvironment
from climbrl.runner.orchestrator import TrainingOrchestrator

__version__ = "0.1.0"

__all__ = ["ClimbingEnvironment", "TrainingOrchestrator", "__version__"]
