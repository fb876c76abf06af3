"""Overlaying experiment sections onto the base config document."""
from __future__ import annotations

from typing import Any, Dict, Mapping

REPLACE_KEY = "__replace__"


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items() if k != REPLACE_KEY}
    return value


def deep_merge(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """Return ``base`` with ``overlay`` laid on top; neither input is modified.

    Nested mappings merge key by key. A mapping carrying ``__replace__: true``
    discards the base value instead of merging into it.
    """

    merged = _plain(base)
    for key, value in overlay.items():
        if key == REPLACE_KEY:
            continue
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping) and not value.get(REPLACE_KEY):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = _plain(value)
    return merged


__all__ = ["REPLACE_KEY", "deep_merge"]
