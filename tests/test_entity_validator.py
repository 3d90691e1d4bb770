import pytest

from app.core.exceptions import SchemaNotFound
from app.models.form_schema import DOC_SIZE_LIMIT, ErrorCode, ValidationContext


def test_valid_universe_passes(validator, universe):
    result = validator.validate(universe, "universe")
    assert result.valid is True
    assert result.errors == []


def test_missing_required_name(validator, universe):
    del universe["name"]
    result = validator.validate(universe, "universe")
    assert result.valid is False
    error = next(e for e in result.errors if e.field == "name")
    assert error.code == ErrorCode.REQUIRED.value
    assert error.message == "Universe Name is required"
    assert error.message_es == "Nombre del Universo es requerido"


def test_name_too_short(validator, universe):
    universe["name"] = "X"
    result = validator.validate(universe, "universe")
    codes = [(e.field, e.code) for e in result.errors]
    assert ("name", ErrorCode.MIN_LENGTH.value) in codes


def test_unknown_kind_raises(validator):
    with pytest.raises(SchemaNotFound):
        validator.validate({}, "dragon")


def test_stat_min_above_max_is_cross_field_error(validator):
    stat = {
        "name": "Fuerza",
        "abbreviation": "STR",
        "icon": "barbell-outline",
        "color": "#e74c3c",
        "minValue": 50,
        "maxValue": 10,
    }
    result = validator.validate(stat, "stat")
    assert result.valid is False
    assert any(e.code == "MIN_ABOVE_MAX" for e in result.errors)


def test_auto_fix_truncates_long_name(validator, universe):
    universe["name"] = "x" * 200
    result = validator.validate(universe, "universe")
    assert any(e.code == ErrorCode.MAX_LENGTH.value for e in result.errors)

    fixed = validator.auto_fix(universe, result.errors, "universe")
    assert len(fixed.fixed_entity["name"]) == 100
    assert fixed.remaining_errors == []
    assert fixed.applied_fixes[0].field == "name"
    # The input is left untouched
    assert len(universe["name"]) == 200


def test_auto_fix_clamps_number(validator, universe):
    universe["initialPoints"] = 5000
    result = validator.validate(universe, "universe")
    fixed = validator.auto_fix(universe, result.errors, "universe")
    assert fixed.fixed_entity["initialPoints"] == 1000


def test_auto_fix_accepts_plain_dicts(validator):
    errors = [{"field": "description", "code": "MIN_LENGTH", "message": "too short"}]
    fixed = validator.auto_fix({"description": "corta"}, errors, "universe")
    assert fixed.applied_fixes == []
    assert len(fixed.remaining_errors) == 1


def test_size_over_limit(validator, universe):
    universe["coverImage"] = "a" * (DOC_SIZE_LIMIT + 10)
    size = validator.validate_size(universe)
    assert size.within_limit is False
    assert "exceeds" in size.recommendations[0]
    assert any("coverImage" in r for r in size.recommendations)


def test_small_document_has_no_recommendations(validator, universe):
    size = validator.validate_size(universe)
    assert size.within_limit is True
    assert size.recommendations == []


def test_character_race_must_exist_in_universe(validator, universe):
    universe["raceSystem"] = {"enabled": True, "races": [{"id": "elf", "name": "Elfo"}]}
    character = {"universeId": "u1", "name": "Aragorn", "raceId": "orc", "stats": {"strength": 10}}
    result = validator.validate_cross_references(character, ValidationContext(universe=universe))
    assert result.valid is False
    assert result.errors[0].code == ErrorCode.INVALID_REFERENCE.value
    assert result.missing_references[0].referenced_id == "orc"


def test_unknown_character_stat_is_warning(validator, universe):
    character = {"universeId": "u1", "name": "Aragorn", "stats": {"strength": 10, "mana": 3}}
    result = validator.validate_cross_references(character, ValidationContext(universe=universe))
    assert result.valid is True
    assert [w.code for w in result.warnings] == ["UNKNOWN_STAT"]


def test_rule_with_unknown_stat_is_warning(validator, universe):
    universe["progressionRules"][0]["affectedStats"].append("mana")
    result = validator.validate_cross_references(universe)
    assert result.valid is True
    assert result.warnings[0].code == "RULE_REFERENCES_UNKNOWN_STAT"


def test_negative_stat_and_duplicate_rules_are_inconsistent(validator, universe):
    universe["progressionRules"].append(dict(universe["progressionRules"][0]))
    universe["stats"] = {"strength": -1}
    result = validator.validate_consistency(universe)
    assert result.consistent is False
    assert {i.type for i in result.issues} == {"imbalance", "duplicate"}


def test_enabled_race_system_without_races_is_only_a_warning(validator, universe):
    universe["raceSystem"] = {"enabled": True, "races": []}
    result = validator.validate_consistency(universe)
    assert result.consistent is True
    assert result.issues[0].severity == "warning"


def test_validate_complete(validator, universe):
    complete = validator.validate_complete(universe, "universe")
    assert complete.valid is True
    assert complete.size.within_limit is True


def test_validate_for_phase_checks_only_that_phase(validator, universe):
    universe["name"] = "X"
    del universe["statDefinitions"]

    concept = validator.validate_for_phase(universe, "universe", "concept")
    assert [(e.field, e.code) for e in concept.errors] == [("name", ErrorCode.MIN_LENGTH.value)]

    statistics = validator.validate_for_phase(universe, "universe", "statistics")
    assert [(e.field, e.code) for e in statistics.errors] == [("statDefinitions", ErrorCode.REQUIRED.value)]

    assert validator.validate_for_phase(universe, "universe", "appearance").valid is True
