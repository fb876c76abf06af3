"""Top-level experiment configuration assembled from the typed schemas."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from climbrl.utils.config_layers import deep_merge
from climbrl.utils.config_schema import (
    DQNConfigSchema,
    EnvSchema,
    PPOConfigSchema,
    RewardSchema,
    SchemaError,
    TrainingSchema,
)


def _section(data: Mapping[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise SchemaError(f"Config section '{key}' must be a mapping")
    return dict(value)


@dataclass
class ExperimentConfig:
    env: EnvSchema = field(default_factory=EnvSchema)
    reward: RewardSchema = field(default_factory=RewardSchema)
    dqn: DQNConfigSchema = field(default_factory=DQNConfigSchema)
    ppo: PPOConfigSchema = field(default_factory=PPOConfigSchema)
    training: TrainingSchema = field(default_factory=TrainingSchema)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def load(cls, path: Path, experiment: Optional[str] = None) -> "ExperimentConfig":
        with Path(path).open("r", encoding="utf-8") as handle:
            raw_doc = yaml.safe_load(handle) or {}

        if not isinstance(raw_doc, dict):
            raise SchemaError("Configuration root must be a mapping")

        if "experiments" in raw_doc:
            experiments = raw_doc.get("experiments") or {}
            if not isinstance(experiments, dict):
                raise SchemaError("'experiments' section must be a mapping")
            selected = experiment or raw_doc.get("default_experiment")
            if not selected:
                raise KeyError("No experiment provided and 'default_experiment' missing")
            if selected not in experiments:
                raise KeyError(f"Experiment '{selected}' not found in config")
            base = {key: value for key, value in raw_doc.items() if key not in {"experiments", "default_experiment"}}
            data = deep_merge(base, experiments[selected] or {})
        else:
            data = raw_doc

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExperimentConfig":
        data_map = dict(data)
        return cls(
            env=EnvSchema.from_dict(_section(data_map, "env")),
            reward=RewardSchema.from_dict(_section(data_map, "reward")),
            dqn=DQNConfigSchema.from_dict(_section(data_map, "dqn")),
            ppo=PPOConfigSchema.from_dict(_section(data_map, "ppo")),
            training=TrainingSchema.from_dict(_section(data_map, "training")),
            raw=data_map,
        )

    def algorithm_config(self, algorithm: Optional[str] = None) -> Dict[str, Any]:
        """Return the agent hyperparameters for ``algorithm`` as a plain dict."""

        key = (algorithm or self.training.algorithm).lower().strip()
        if key in {"dqn", "value"}:
            return self.dqn.to_dict()
        if key in {"ppo", "policy"}:
            return self.ppo.to_dict()
        raise KeyError(f"Unknown algorithm '{algorithm}'")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "env": self.env.to_dict(),
            "reward": self.reward.to_dict(),
            "dqn": self.dqn.to_dict(),
            "ppo": self.ppo.to_dict(),
            "training": self.training.to_dict(),
        }


__all__ = ["ExperimentConfig"]
