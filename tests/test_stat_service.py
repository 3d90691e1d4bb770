import pytest

from app.services import stat_service
from app.utils.formula import build_stat_context, evaluate, evaluate_int, referenced_names, validate_formula

AWAKENING = {"enabled": True, "levels": ["E", "D", "C"], "thresholds": [0, 10, 20]}


def test_stat_value_is_clamped(universe):
    strength = universe["statDefinitions"]["strength"]
    assert stat_service.validate_stat_value(150, strength) == 100
    assert stat_service.validate_stat_value(40, strength) == 40
    assert stat_service.validate_stat_value(-5, {}) == 0
    assert stat_service.validate_stat_value(1500, {}) == 999


def test_undefined_stats_pass_through(universe):
    stats = stat_service.validate_all_stats({"strength": 150, "mana": 5000}, universe["statDefinitions"])
    assert stats == {"strength": 100, "mana": 5000}


def test_derived_stats():
    definitions = {
        "strength": {"name": "Fuerza"},
        "hp": {"isDerived": True, "formula": "(strength + agility) / 2"},
    }
    assert stat_service.calculate_derived_stats({"strength": 10, "agility": 5}, definitions) == {"hp": 8}


def test_total_ignores_non_numbers():
    assert stat_service.get_total_stats({"a": 1, "b": 2.5, "c": True, "d": "x"}) == 3.5


@pytest.mark.parametrize(
    "stats,rank",
    [
        ({"strength": 5}, "E"),
        ({"strength": 10, "agility": 5}, "D"),
        ({"strength": 25}, "C"),
    ],
)
def test_awakening_rank(stats, rank):
    assert stat_service.calculate_awakening(stats, AWAKENING) == rank


def test_awakening_defaults():
    assert stat_service.calculate_awakening({"strength": 50}, dict(AWAKENING, enabled=False)) == "E"
    assert stat_service.calculate_awakening({"strength": 50}, {}) == "E"
    below = {"enabled": True, "levels": ["F", "E"], "thresholds": [5, 10]}
    assert stat_service.calculate_awakening({"strength": 3}, below) == "F"


# =============================================================================
# FORMULAS
# =============================================================================

def test_evaluate():
    assert evaluate("(strength + agility) / 2", {"strength": 10, "agility": 6}) == 8.0
    assert evaluate("floor(vitality * 1.5)", {"vitality": 5}) == 7.0
    assert evaluate("mana * 2", {"strength": 1}) == 0.0
    assert evaluate("strength / 0", {"strength": 1}, default=-1.0) == -1.0
    assert evaluate("", {}) == 0.0


def test_evaluate_int_rounds_half_away_from_zero():
    assert evaluate_int("2.5", {}) == 3
    assert evaluate_int("-2.5", {}) == -3


def test_stat_context_uses_safe_identifiers():
    assert build_stat_context({"max-hp": 5, "flag": True, "name": "x"}) == {"max_hp": 5.0}


def test_referenced_names():
    assert referenced_names("floor(strength / 2) + agility") == {"strength", "agility"}


def test_validate_formula():
    assert validate_formula("strength * 2", ["strength"]) is None
    assert validate_formula("__import__('os')", []).startswith("Formula contains forbidden pattern")
    assert validate_formula("mana + 1", ["strength"]) == "Formula references unknown stats: mana"
    assert validate_formula("strength +", ["strength"]).startswith("Formula syntax error")
