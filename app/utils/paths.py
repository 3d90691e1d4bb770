"""
Dot-path helpers for nested entity dicts ("stats.strength", "raceSystem.races").
"""

from typing import Any, Dict

MISSING = object()


def get_path(data: Dict, path: str, default: Any = None) -> Any:
    """Safely get nested dictionary value."""
    if not path:
        return default
    current = data
    for key in path.split("."):
        if isinstance(current, dict) and key in current:
            current = current[key]
        else:
            return default
    return current


def has_path(data: Dict, path: str) -> bool:
    return get_path(data, path, MISSING) is not MISSING


def set_path(data: Dict, path: str, value: Any) -> bool:
    """
    Set a nested value, creating intermediate dicts as needed.
    A non-dict intermediate is replaced by a dict.
    """
    if not path:
        return False
    keys = path.split(".")
    current = data
    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[keys[-1]] = value
    return True


def delete_path(data: Dict, path: str) -> bool:
    """Remove the value at path. Returns False when nothing was there."""
    if not path:
        return False
    keys = path.split(".")
    current = data
    for key in keys[:-1]:
        if not isinstance(current, dict) or key not in current:
            return False
        current = current[key]
    if isinstance(current, dict) and keys[-1] in current:
        del current[keys[-1]]
        return True
    return False


def shallowest_unwritable_prefix(data: Dict, path: str) -> str:
    """
    The shortest prefix of `path` that is missing or blocked by a non-dict.
    Returns `path` itself when every intermediate container exists.
    """
    keys = path.split(".")
    current = data
    for i, key in enumerate(keys[:-1]):
        nxt = current.get(key, MISSING) if isinstance(current, dict) else MISSING
        if not isinstance(nxt, dict):
            return ".".join(keys[: i + 1])
        current = nxt
    return path


def nest_value(path: str, prefix: str, value: Any) -> Any:
    """Wrap `value` in dicts so it can be stored at `prefix` instead of `path`."""
    remainder = path[len(prefix) + 1:].split(".") if path != prefix else []
    for key in reversed(remainder):
        value = {key: value}
    return value
