"""Common helpers shared across policy implementations."""

from .discrete import DiscreteAgentBase

__all__ = ["DiscreteAgentBase"]
