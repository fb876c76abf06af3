"""Exception hierarchy shared by the learning core."""
from __future__ import annotations


class ClimbRLError(Exception):
    """Base class for errors raised by climbrl."""


class InvalidInput(ClimbRLError, ValueError):
    """Malformed state/action/reward/done passed into the learning core."""


class InsufficientData(ClimbRLError):
    """An operation needs more buffered samples than are currently available."""

    def __init__(self, required: int, available: int, what: str = "samples") -> None:
        self.required = int(required)
        self.available = int(available)
        super().__init__(f"Not enough {what}: need {self.required}, have {self.available}")


class NumericalInstability(ClimbRLError):
    """Non-finite parameters detected after an optimisation step."""


class PersistenceFailure(ClimbRLError):
    """Checkpoint read or write failed."""


__all__ = [
    "ClimbRLError",
    "InvalidInput",
    "InsufficientData",
    "NumericalInstability",
    "PersistenceFailure",
]
