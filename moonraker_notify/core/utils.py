"""Core utility functions shared across modules."""

from __future__ import annotations

import copy
from typing import Any, Dict, Mapping, Optional, Sequence


_MISSING = object()


def deep_merge(target: Dict[str, Any], updates: Mapping[str, Any]) -> None:
    """Recursively merge updates into target dict, modifying target in-place.

    For each key in updates:
    - If both target[key] and updates[key] are dicts, recursively merge them
    - Otherwise, overwrite target[key] with a deep copy of updates[key]

    Examples:
        >>> target = {"server": {"address": "a", "port": 1}}
        >>> deep_merge(target, {"server": {"port": 2}, "logging": {}})
        >>> target
        {"server": {"address": "a", "port": 2}, "logging": {}}
    """
    for key, value in updates.items():
        existing = target.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            deep_merge(existing, value)
        else:
            target[key] = copy.deepcopy(value)


def lookup_path(payload: Mapping[str, Any], path: Sequence[str]) -> Optional[Any]:
    """Walk nested mappings along ``path``.

    Returns ``None`` when a key along the way is absent or null. Raises ``TypeError``
    when an intermediate value exists but is not a mapping.
    """

    current: Any = payload
    for depth, key in enumerate(path):
        if current is None:
            return None
        if not isinstance(current, Mapping):
            raise TypeError(
                f"expected object at {'.'.join(path[:depth])!r}, "
                f"got {type(current).__name__}"
            )
        current = current.get(key, _MISSING)
        if current is _MISSING:
            return None
    return current
