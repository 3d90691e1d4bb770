"""
Stat rules for character sheets.
Clamps values to their definitions, evaluates derived stats and resolves
the awakening rank from the stat total.
"""

import logging
from typing import Any, Dict

from app.utils.formula import evaluate_int

logger = logging.getLogger(__name__)

DEFAULT_MIN_VALUE = 0
DEFAULT_MAX_VALUE = 999
DEFAULT_RANK = "E"


def validate_stat_value(value: float, stat_def: Dict[str, Any]) -> float:
    """Clamp a value to the definition's [minValue, maxValue] (0 and 999 when unset)."""
    low = stat_def.get("minValue")
    high = stat_def.get("maxValue")
    low = DEFAULT_MIN_VALUE if low is None else low
    high = DEFAULT_MAX_VALUE if high is None else high
    return max(low, min(value, high))


def validate_all_stats(stats: Dict[str, float], stat_defs: Dict[str, Dict[str, Any]]) -> Dict[str, float]:
    """Clamp every stat that has a definition. Undefined stats pass through unchanged."""
    validated = {}
    for key, value in stats.items():
        definition = stat_defs.get(key)
        validated[key] = validate_stat_value(value, definition) if definition else value
    return validated


def calculate_derived_stats(stats: Dict[str, float], stat_defs: Dict[str, Dict[str, Any]]) -> Dict[str, int]:
    derived = {}
    for key, definition in stat_defs.items():
        if definition.get("isDerived") and definition.get("formula"):
            derived[key] = evaluate_int(definition["formula"], stats)
    if derived:
        logger.debug(f"Derived stats: {derived}")
    return derived


def get_total_stats(stats: Dict[str, float]) -> float:
    return sum(v for v in stats.values() if isinstance(v, (int, float)) and not isinstance(v, bool))


def calculate_awakening(stats: Dict[str, float], awakening_system: Dict[str, Any]) -> str:
    """
    Highest level whose threshold the stat total reaches.
    A disabled system, or a total below every threshold, gives the first level.
    """
    levels = awakening_system.get("levels") or []
    first = levels[0] if levels else DEFAULT_RANK
    if not awakening_system.get("enabled"):
        return first

    total = get_total_stats(stats)
    thresholds = awakening_system.get("thresholds") or []
    for i in range(min(len(thresholds), len(levels)) - 1, -1, -1):
        if total >= thresholds[i]:
            return levels[i]
    return first
