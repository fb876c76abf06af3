from .orchestrator import TrainingOrchestrator, TrainingState, TrainingStats

__all__ = ["TrainingOrchestrator", "TrainingState", "TrainingStats"]
