import pytest

from app.core.exceptions import SchemaNotFound
from app.models.form_schema import FieldDependency, ValidationContext
from app.schemas import registry


def test_all_kinds_are_registered():
    assert registry.list_schemas() == ["universe", "character", "stat", "race", "skill", "rule"]


def test_unknown_kind():
    with pytest.raises(SchemaNotFound):
        registry.get_schema("dragon")


def test_phase_order():
    assert registry.get_phase_ids("universe") == [
        "concept", "races", "statistics", "progression", "appearance", "review",
    ]
    assert registry.get_phase_ids("character")[0] == "universe_selection"


def test_fields_for_phase_skip_unmapped_names():
    names = [f.name for f in registry.get_fields_for_phase("universe", "races")]
    assert names == ["raceSystemEnabled"]
    assert registry.get_fields_for_phase("universe", "missing") == []


def test_missing_required_counts_only_absent_and_blank_values():
    schema = registry.get_schema("universe")
    data = {"name": "Eldoria", "description": "", "statDefinitions": {}}
    assert registry.get_missing_required_fields(schema, data, "review") == [
        "description", "progressionRules",
    ]
    assert registry.get_missing_required_fields(schema, data, "concept") == ["description"]
    # An empty rule list is an answer, not a gap
    assert registry.get_missing_required_fields(schema, {"progressionRules": []}, "progression") == []


def test_static_options_pass_through():
    options = registry.resolve_options(registry.get_field("universe", "theme"))
    assert len(options) == 8
    assert options[0].value == "fantasy"


def test_dynamic_options_come_from_parent(universe):
    universe["raceSystem"] = {"enabled": True, "races": [{"id": "elf", "name": "Elfo"}]}
    context = ValidationContext(universe=universe)

    races = registry.resolve_options(registry.get_field("character", "raceId"), context)
    assert [(o.value, o.label["es"]) for o in races] == [("elf", "Elfo")]


def test_dynamic_options_without_universe_are_empty():
    assert registry.resolve_options(registry.get_field("character", "raceId")) == []


@pytest.mark.parametrize(
    "condition,expected,value,result",
    [
        ("equals", True, True, True),
        ("notEquals", True, False, True),
        ("exists", None, "", False),
        ("notExists", None, None, True),
        ("contains", "magia", ["magia", "fuerza"], True),
        ("greaterThan", 5, "7", True),
        ("lessThan", 5, "abc", False),
    ],
)
def test_condition_met(condition, expected, value, result):
    dep = FieldDependency(field="x", condition=condition, value=expected, action="show")
    assert registry.condition_met(dep, value) is result


def test_dependent_fields():
    schema = registry.get_schema("stat")
    assert [f.name for f in registry.get_dependent_fields(schema, "isDerived", True)] == ["formula"]
    assert registry.get_dependent_fields(schema, "isDerived", False) == []


def test_extraction_hints_include_range():
    hints = registry.get_extraction_hints(registry.get_field("universe", "initialPoints"), "es")
    assert "Keywords: puntos, puntos iniciales" in hints
    assert hints.endswith("Range: 0 to 1000")
