"""Locate and load the YAML file describing a climbing experiment."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Tuple

import yaml

from climbrl.utils.config_models import ExperimentConfig
from climbrl.utils.config_schema import SchemaError

CONFIG_ENV_VAR = "CLIMBRL_CONFIG"
EXPERIMENT_ENV_VAR = "CLIMBRL_EXPERIMENT"
DEFAULT_CONFIG_PATH = Path("configs/default.yaml")


def _env_override(name: str) -> Optional[str]:
    value = os.environ.get(name, "").strip()
    return value or None


def find_config(cfg_path: Path | str | None, default_path: Path | str = DEFAULT_CONFIG_PATH) -> Path:
    """Pick the config file: explicit argument, then ``CLIMBRL_CONFIG``, then the default."""

    candidate = cfg_path if cfg_path is not None else _env_override(CONFIG_ENV_VAR)
    path = Path(candidate if candidate is not None else default_path).expanduser().resolve()
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")
    return path


def load_config(
    cfg_path: Path | str | None,
    *,
    experiment: Optional[str] = None,
    default_path: Path | str = DEFAULT_CONFIG_PATH,
) -> Tuple[ExperimentConfig, Path, Optional[str]]:
    """Load the experiment config.

    ``experiment`` falls back to ``CLIMBRL_EXPERIMENT``; when both are unset the
    file's ``default_experiment`` is used and the returned name is ``None``.
    Unknown experiments raise ``KeyError``, unparsable YAML raises
    :class:`SchemaError`.
    """

    path = find_config(cfg_path, default_path)
    name = experiment if experiment is not None else _env_override(EXPERIMENT_ENV_VAR)
    try:
        cfg = ExperimentConfig.load(path, experiment=name)
    except yaml.YAMLError as exc:
        raise SchemaError(f"Could not parse {path}: {exc}") from exc
    return cfg, path, name


__all__ = ["CONFIG_ENV_VAR", "DEFAULT_CONFIG_PATH", "EXPERIMENT_ENV_VAR", "find_config", "load_config"]
