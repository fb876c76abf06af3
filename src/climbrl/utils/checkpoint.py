"""Checkpoint management for training runs.

Checkpoints are stored as a torch payload ``{format_version, parameters,
metadata}`` next to a human-readable JSON metadata sidecar. Writes go to a
temporary file first and are moved into place with :func:`os.replace`.
"""
from __future__ import annotations

import copy
import json
import logging
import os
import pickle
import tempfile
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import torch

from climbrl.errors import PersistenceFailure
from climbrl.utils.torch_io import safe_load

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


@dataclass
class CheckpointMetadata:
    """Training summary persisted with every checkpoint."""

    format_version: int = FORMAT_VERSION
    hyperparameters: Dict[str, Any] = field(default_factory=dict)
    total_episodes: int = 0
    total_steps: int = 0
    best_reward: Optional[float] = None
    average_reward: float = 0.0
    success_rate: float = 0.0
    last_saved: Optional[str] = None
    history: List[Dict[str, Any]] = field(default_factory=list)

    def record(self, entry: Mapping[str, Any], *, max_history: int = 100) -> None:
        """Append a history entry, pruning the oldest beyond ``max_history``."""

        self.history.append(dict(entry))
        overflow = len(self.history) - max(int(max_history), 0)
        if overflow > 0:
            del self.history[:overflow]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CheckpointMetadata":
        known = {name for name in cls.__dataclass_fields__}
        return cls(**{key: copy.deepcopy(value) for key, value in data.items() if key in known})


class CheckpointManager:
    """Saves and restores agent parameters under a checkpoint directory.

    Args:
        checkpoint_dir: Directory that holds ``<key>.pt`` and ``<key>.json``
        max_history: Upper bound on ``CheckpointMetadata.history`` entries
    """

    def __init__(self, checkpoint_dir: str | Path, *, max_history: int = 100) -> None:
        self.checkpoint_dir = Path(checkpoint_dir)
        self.max_history = int(max_history)

    def checkpoint_path(self, key: str) -> Path:
        return self.checkpoint_dir / f"{key}.pt"

    def metadata_path(self, key: str) -> Path:
        return self.checkpoint_dir / f"{key}.json"

    def exists(self, key: str) -> bool:
        return self.checkpoint_path(key).exists()

    def save_checkpoint(
        self,
        key: str,
        parameters: Mapping[str, Any],
        metadata: CheckpointMetadata,
    ) -> Path:
        """Persist ``parameters`` and ``metadata`` atomically.

        Raises:
            PersistenceFailure: If the directory or files cannot be written
        """

        # Snapshot first so concurrent training cannot mutate what is written.
        snapshot = copy.deepcopy(dict(parameters))
        meta = copy.deepcopy(metadata)
        meta.format_version = FORMAT_VERSION
        meta.last_saved = datetime.now().isoformat(timespec="seconds")
        overflow = len(meta.history) - self.max_history
        if overflow > 0:
            del meta.history[:overflow]

        payload = {
            "format_version": FORMAT_VERSION,
            "parameters": snapshot,
            "metadata": meta.to_dict(),
        }

        target = self.checkpoint_path(key)
        try:
            self.checkpoint_dir.mkdir(parents=True, exist_ok=True)
            self._atomic_write(target, lambda handle: torch.save(payload, handle), binary=True)
            self._atomic_write(
                self.metadata_path(key),
                lambda handle: json.dump(meta.to_dict(), handle, indent=2, default=str),
                binary=False,
            )
        except (OSError, RuntimeError, TypeError) as exc:
            raise PersistenceFailure(f"Failed to save checkpoint '{key}' to {target}: {exc}") from exc

        metadata.last_saved = meta.last_saved
        logger.info("Saved checkpoint %s (episodes=%d)", target, meta.total_episodes)
        return target

    def load_checkpoint(
        self,
        key: str,
        *,
        map_location: Any | None = None,
    ) -> Tuple[Dict[str, Any], CheckpointMetadata]:
        """Load ``(parameters, metadata)`` for ``key``.

        Raises:
            PersistenceFailure: If the checkpoint is missing, unreadable or
                written by an incompatible format version
        """

        path = self.checkpoint_path(key)
        if not path.exists():
            raise PersistenceFailure(f"Checkpoint not found: {path}")
        try:
            payload = safe_load(str(path), map_location=map_location)
        except (OSError, RuntimeError, EOFError, ValueError, pickle.UnpicklingError) as exc:
            raise PersistenceFailure(f"Failed to read checkpoint {path}: {exc}") from exc

        if not isinstance(payload, Mapping) or "parameters" not in payload:
            raise PersistenceFailure(f"Checkpoint {path} has an unexpected layout")
        version = int(payload.get("format_version", 0))
        if version != FORMAT_VERSION:
            raise PersistenceFailure(
                f"Checkpoint {path} has format_version={version}, expected {FORMAT_VERSION}"
            )

        metadata = CheckpointMetadata.from_dict(payload.get("metadata") or {})
        return dict(payload["parameters"]), metadata

    def load_metadata(self, key: str) -> Optional[CheckpointMetadata]:
        """Read only the JSON sidecar, returning ``None`` when absent."""

        path = self.metadata_path(key)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceFailure(f"Failed to read checkpoint metadata {path}: {exc}") from exc
        return CheckpointMetadata.from_dict(data)

    def delete_checkpoint(self, key: str) -> bool:
        removed = False
        for path in (self.checkpoint_path(key), self.metadata_path(key)):
            if path.exists():
                path.unlink()
                removed = True
        return removed

    def _atomic_write(self, target: Path, writer, *, binary: bool) -> None:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=str(target.parent))
        try:
            mode = "wb" if binary else "w"
            kwargs = {} if binary else {"encoding": "utf-8"}
            with os.fdopen(fd, mode, **kwargs) as handle:
                writer(handle)
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


__all__ = ["FORMAT_VERSION", "CheckpointMetadata", "CheckpointManager"]
