from app.core.incremental_editor import IncrementalEditor
from app.models.edit import ChangeDetectionRequest, FieldChange, IncrementalEditConfig


def test_apply_does_not_mutate_input(editor, universe):
    updated = editor.apply_changes(universe, [FieldChange("name", "update", new_value="Narnia")])
    assert updated["name"] == "Narnia"
    assert universe["name"] == "Tierra Media"


def test_undo_redo_round_trip(editor, universe):
    changes = [
        FieldChange("name", "update", new_value="Narnia"),
        FieldChange("statDefinitions.strength.maxValue", "update", new_value=500),
        FieldChange("lore.era", "add", new_value="Tercera Edad"),
        FieldChange("theme", "delete"),
    ]
    updated = editor.apply_changes(universe, changes)
    assert updated["lore"] == {"era": "Tercera Edad"}
    assert "theme" not in updated

    restored = editor.undo(updated)
    assert restored == universe
    assert editor.can_redo() is True

    again = editor.redo(restored)
    assert again == updated
    assert editor.can_redo() is False


def test_add_on_existing_path_undoes_to_previous_value(editor, universe):
    updated = editor.apply_changes(universe, [FieldChange("name", "add", new_value="Otro")])
    assert editor.get_history().changesets[-1].changes[0].operation == "update"
    assert editor.undo(updated)["name"] == "Tierra Media"


def test_move_is_reversible(editor, universe):
    updated = editor.apply_changes(universe, [FieldChange("theme", "move", new_path="setting.theme")])
    assert updated["setting"]["theme"] == "fantasy"
    assert "theme" not in updated
    assert editor.undo(updated) == universe


def test_undo_with_empty_history(editor, universe):
    assert editor.can_undo() is False
    assert editor.undo(universe) is None
    assert editor.redo(universe) is None


def test_new_change_discards_redo_tail(editor, universe):
    first = editor.apply_changes(universe, [FieldChange("name", "update", new_value="A")])
    editor.undo(first)
    editor.apply_changes(universe, [FieldChange("name", "update", new_value="B")])
    assert editor.can_redo() is False
    assert len(editor.get_history().changesets) == 1


def test_history_is_bounded(universe):
    editor = IncrementalEditor(config=IncrementalEditConfig(max_history_size=3))
    entity = universe
    for i in range(5):
        entity = editor.apply_changes(entity, [FieldChange("initialPoints", "update", new_value=i)])

    history = editor.get_history()
    assert len(history.changesets) == 3
    assert history.current_index == 2
    assert [c.changes[0].new_value for c in history.changesets] == [2, 3, 4]


def test_malformed_changes_are_skipped(editor, universe):
    updated = editor.apply_changes(
        universe,
        [FieldChange("", "update", new_value="x"), FieldChange("name", "move")],
    )
    assert updated == universe


def test_get_changeset_by_id(editor, universe):
    editor.apply_changes(universe, [FieldChange("name", "update", new_value="Narnia")], description="rename")
    changeset = editor.get_history().changesets[0]
    assert editor.get_changeset(changeset.id) is changeset
    assert changeset.description == "rename"
    assert changeset.applied is True
    assert editor.get_changeset("missing") is None


def test_diff_of_identical_entities(editor, universe):
    diff = editor.generate_diff(universe, dict(universe))
    assert diff.has_changes is False
    assert diff.changes == []


def test_diff_counts_and_nests(editor, universe):
    new = dict(universe)
    new["statDefinitions"] = {
        "strength": dict(universe["statDefinitions"]["strength"], maxValue=200),
        "agility": universe["statDefinitions"]["agility"],
    }
    new["coverImage"] = "https://example.com/cover.png"
    del new["theme"]

    diff = editor.generate_diff(universe, new)
    assert diff.summary.added == 1
    assert diff.summary.updated == 1
    assert diff.summary.deleted == 1
    paths = {c.path for c in diff.changes}
    assert "statDefinitions.strength.maxValue" in paths
    assert set(diff.summary.affected_keys) == {"statDefinitions", "coverImage", "theme"}


def test_detect_changes_from_message(editor, universe):
    request = ChangeDetectionRequest(
        user_message='Cambia el nombre a "Narnia"',
        current_entity=universe,
        entity_type="universe",
        context={"language": "es"},
    )
    result = editor.detect_changes(request)
    change = next(c for c in result.changes if c.path == "name")
    assert change.operation == "update"
    assert change.old_value == "Tierra Media"
    assert change.new_value == "Narnia"
    assert result.confidence > 0


def test_secondary_effects_for_stat_definitions():
    affected, warnings = IncrementalEditor.secondary_effects(["statDefinitions.strength.maxValue", "name"])
    assert affected == ["progressionRules"]
    assert len(warnings) == 1


def test_describe_changes():
    assert IncrementalEditor.describe_changes([]) == "No changes"
    assert IncrementalEditor.describe_changes([FieldChange("name", "delete")]) == "Removed name"


def test_empty_change_list_records_noop_changeset(editor, universe):
    result = editor.apply_changes(universe, [])

    assert result == universe
    assert result is not universe
    changeset = editor.get_history().changesets[0]
    assert changeset.changes == []
    assert changeset.description == "No changes"
    assert editor.can_undo() is True
    assert editor.undo(result) == universe
