"""
Stat Formula Evaluation
=======================
Sandboxed evaluation of derived-stat formulas such as "(strength + agility) / 2".
Uses simpleeval; formulas never reach eval().

Supports:
- Arithmetic: +, -, *, /, //, %, parentheses
- Functions: floor(), ceil(), max(), min(), abs(), round()
- Names: stat keys of the character ("strength", "agility", ...)
"""

import logging
import math
import re
from typing import Dict, Iterable, Optional

from simpleeval import simple_eval

logger = logging.getLogger(__name__)


# =============================================================================
# SAFE FUNCTIONS FOR FORMULAS
# =============================================================================

SAFE_FUNCTIONS = {
    "floor": lambda x: int(math.floor(x)),
    "ceil": lambda x: int(math.ceil(x)),
    "max": max,
    "min": min,
    "abs": abs,
    "round": round,
}

_FORBIDDEN = [r"__", r"\bimport\b", r"\bexec\b", r"\beval\b", r"\bopen\b", r"\blambda\b"]
_IDENTIFIER = re.compile(r"\b([A-Za-z_][A-Za-z0-9_]*)\b")


def _to_identifier(key: str) -> str:
    return re.sub(r"[^A-Za-z0-9_]", "_", key)


def build_stat_context(stats: Dict[str, float]) -> Dict[str, float]:
    """Numeric stat values keyed by a formula-safe identifier."""
    context = {}
    for key, value in stats.items():
        if isinstance(value, bool):
            continue
        try:
            context[_to_identifier(key)] = float(value)
        except (TypeError, ValueError):
            continue
    return context


def evaluate(formula: str, stats: Dict[str, float], default: float = 0.0) -> float:
    """
    Evaluate a formula against stat values.

    Examples:
        >>> evaluate("(strength + agility) / 2", {"strength": 10, "agility": 6})
        8.0
        >>> evaluate("floor(vitality * 1.5)", {"vitality": 5})
        7.0

    Unknown names, syntax errors and division by zero return `default`.
    """
    if not formula or not isinstance(formula, str) or not formula.strip():
        return default

    names = build_stat_context(stats)
    try:
        result = simple_eval(formula.strip(), names=names, functions=SAFE_FUNCTIONS)
    except Exception as e:
        logger.debug(f"Formula evaluation failed for '{formula}': {e}")
        return default

    if isinstance(result, bool):
        return 1.0 if result else 0.0
    try:
        return float(result)
    except (TypeError, ValueError):
        return default


def evaluate_int(formula: str, stats: Dict[str, float], default: int = 0) -> int:
    """Evaluate and round half away from zero, as derived stats are whole numbers."""
    value = evaluate(formula, stats, float(default))
    return int(math.floor(value + 0.5)) if value >= 0 else -int(math.floor(-value + 0.5))


def referenced_names(formula: str) -> set:
    """Identifiers used by a formula, minus the safe functions."""
    if not formula:
        return set()
    return {n for n in _IDENTIFIER.findall(formula) if n not in SAFE_FUNCTIONS}


def validate_formula(formula: str, stat_keys: Iterable[str]) -> Optional[str]:
    """
    Returns an error message if the formula is unsafe, malformed or uses
    unknown stats; None if it can be evaluated.
    """
    if not formula or not isinstance(formula, str):
        return None

    for pattern in _FORBIDDEN:
        if re.search(pattern, formula, re.IGNORECASE):
            return f"Formula contains forbidden pattern: {pattern}"

    known = {_to_identifier(k) for k in stat_keys}
    unknown = referenced_names(formula) - known
    if unknown:
        return f"Formula references unknown stats: {', '.join(sorted(unknown))}"

    dummy = {k: 1.0 for k in known}
    try:
        simple_eval(formula, names=dummy, functions=SAFE_FUNCTIONS)
    except Exception as e:
        return f"Formula syntax error: {e}"
    return None
