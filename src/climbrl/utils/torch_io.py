"""Device selection and checkpoint loading helpers for the torch agents."""
from __future__ import annotations

import logging
import os
from typing import Any, Optional

import torch

logger = logging.getLogger(__name__)

DEVICE_ENV_KEY = "CLIMBRL_DEVICE"


def safe_load(path: str, *, map_location: Any | None = None) -> Any:
    """``torch.load`` for agent payloads.

    Agent payloads carry optimizer state and plain metadata dicts, so they are
    loaded with ``weights_only=False``.
    """

    return torch.load(path, map_location=map_location, weights_only=False)


def resolve_device(preferred: Optional[str] = None) -> torch.device:
    """Explicit choice first, then ``CLIMBRL_DEVICE``, then CUDA when present.

    ``"auto"`` and empty values defer to the next source. A CUDA request on a
    machine without CUDA falls back to the CPU with a warning.
    """

    for source in (preferred, os.environ.get(DEVICE_ENV_KEY)):
        choice = str(source).strip().lower() if source is not None else ""
        if choice in ("", "auto"):
            continue
        if choice == "cpu":
            return torch.device("cpu")
        if choice == "gpu" or choice.startswith("cuda"):
            if torch.cuda.is_available():
                return torch.device("cuda" if choice == "gpu" else choice)
            logger.warning("Device '%s' requested but CUDA is unavailable; using cpu", source)
            return torch.device("cpu")
        logger.warning("Ignoring unknown device '%s'", source)
    return torch.device("cuda" if torch.cuda.is_available() else "cpu")


def all_finite(*modules: torch.nn.Module) -> bool:
    """True when no parameter of any module holds NaN or inf."""

    with torch.no_grad():
        return all(bool(torch.isfinite(p).all()) for module in modules for p in module.parameters())


__all__ = ["DEVICE_ENV_KEY", "all_finite", "resolve_device", "safe_load"]
