from app.core.phase_engine import PhaseEngine


def test_universe_concept_requires_name_and_theme():
    concept = PhaseEngine.get_phases("universe")[0]
    assert concept.id == "concept"
    assert concept.required_fields == ["name", "theme"]
    assert concept.can_skip is False


def test_unknown_mode_has_no_phases():
    assert PhaseEngine.get_phases("dragon") == []


def test_phase_state_after_concept(phase_engine):
    state = phase_engine.calculate_phase_state("universe", ["name", "theme"], 0)
    assert state.current_phase_id == "concept"
    assert state.total_phases == 6
    assert state.completeness == 37
    assert state.can_skip_to_confirmation is False
    assert state.skippable_phases == ["rules", "appearance"]
    assert "statNames" in state.pending_fields


def test_high_completeness_suggests_review(phase_engine):
    suggestion = phase_engine.suggest_next_phase("universe", 0, ["name", "theme", "statNames", "rankSystem"])
    assert suggestion.phase_id == "review"
    assert suggestion.phase_index == 5
    assert suggestion.reason == "Tienes 74% completo. Puedes ir directo a la revisión."


def test_english_review_reason(phase_engine):
    suggestion = phase_engine.suggest_next_phase(
        "universe", 0, ["name", "theme", "statNames", "rankSystem"], language="en"
    )
    assert suggestion.reason.startswith("You are 74% complete")


def test_next_phase_with_missing_required(phase_engine):
    suggestion = phase_engine.suggest_next_phase("character", 0, [])
    assert suggestion.phase_id == "identity"
    assert suggestion.reason == "Nombre y concepto"


def test_optional_phases_are_passed_over(phase_engine):
    suggestion = phase_engine.suggest_next_phase("universe", 0, ["name", "theme"])
    assert suggestion.phase_id == "review"


def test_can_generate(phase_engine):
    readiness = phase_engine.can_generate("universe", ["name"])
    assert readiness.can_generate is False
    assert readiness.missing_fields == ["theme"]
    assert len(readiness.warnings) == 1

    assert phase_engine.can_generate("character", ["name", "universeId"]).can_generate is True


def test_can_generate_does_not_repeat_missing_fields(phase_engine):
    readiness = phase_engine.can_generate("character", ["name"])
    assert readiness.missing_fields == ["universeId"]


def test_smart_suggestions(phase_engine):
    assert phase_engine.get_smart_suggestions("universe", "concept", []) == [
        "Fantasía", "Ciencia Ficción", "Cyberpunk", "Medieval",
    ]
    # A chosen theme silences the theme chips
    assert phase_engine.get_smart_suggestions("universe", "concept", ["theme"]) == []


def test_smart_suggestions_are_capped(phase_engine):
    suggestions = phase_engine.get_smart_suggestions("universe", "ranks", ["name", "theme", "statNames", "rankSystem"])
    assert len(suggestions) == 4
    assert suggestions[-1] == "Ver preview"
    assert phase_engine.get_smart_suggestions("universe", "missing", []) == []
