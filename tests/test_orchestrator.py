import json
import threading
import time

from app.core.orchestrator import MAX_EVENTS, Orchestrator
from app.models.intent import ExtractedField

CREATE_MESSAGE = 'Crear un universo llamado "Tierra Media" de fantasía'


def _collect(orchestrator, session_id, **values):
    state = orchestrator.get_session(session_id)
    for name, value in values.items():
        state.extracted_data[name] = ExtractedField(field_name=name, value=value, confidence=0.9, source="explicit")


# =============================================================================
# SESSIONS
# =============================================================================

def test_start_session(orchestrator):
    session_id = orchestrator.start_session("universe")
    state = orchestrator.get_session(session_id)

    assert session_id.startswith("orch_")
    assert state.phase == "gathering"
    assert state.creation_phase_id == "concept"
    assert orchestrator.get_active_sessions() == [session_id]
    assert orchestrator.get_events(session_id, "session_start")[0].data["mode"] == "universe"


def test_session_config_overrides(orchestrator):
    session_id = orchestrator.start_session("universe", config={"confidence_threshold": 0.9})
    assert orchestrator.get_session(session_id).config.confidence_threshold == 0.9
    assert orchestrator.config.confidence_threshold == 0.7


def test_unknown_session(orchestrator):
    result = orchestrator.process_message("missing", "hola")
    assert result.success is False
    assert result.response == "Session not found or inactive"


def test_ended_session_rejects_messages(orchestrator):
    session_id = orchestrator.start_session("universe")
    assert orchestrator.end_session(session_id) is True
    assert orchestrator.end_session(session_id) is False
    assert orchestrator.process_message(session_id, CREATE_MESSAGE).success is False
    assert orchestrator.active_session_count() == 0


def test_expire_idle_sessions(orchestrator):
    session_id = orchestrator.start_session("universe")
    state = orchestrator.get_session(session_id)

    assert orchestrator.expire_sessions(now_ms=state.last_activity) == []
    expired = orchestrator.expire_sessions(now_ms=state.last_activity + state.config.session_timeout_ms + 1)

    assert expired == [session_id]
    assert orchestrator.get_session(session_id) is None
    assert state.is_active is False
    assert orchestrator.get_events(session_id, "session_end")[0].data == {"reason": "expired"}


def test_events_are_capped(orchestrator):
    for _ in range(MAX_EVENTS + 5):
        orchestrator._emit("message_processed", "s1")
    assert len(orchestrator.get_events()) == MAX_EVENTS


# =============================================================================
# CREATION
# =============================================================================

def test_create_collects_name_and_theme(orchestrator):
    session_id = orchestrator.start_session("universe")
    result = orchestrator.process_message(session_id, CREATE_MESSAGE)

    assert result.success is True
    assert result.response.startswith("Entendido. He registrado:")
    assert "name" in result.state_updates["extracted_fields"]

    values = orchestrator.get_session(session_id).collected_values()
    assert values["name"] == "Tierra Media"
    assert values["theme"] == "fantasy"
    # The concept phase still needs a description
    assert [a.value for a in result.suggested_actions] == ["description"]


def test_create_without_name_asks_for_it(orchestrator):
    session_id = orchestrator.start_session("universe")
    result = orchestrator.process_message(session_id, "Quiero crear un universo")

    assert result.success is True
    assert result.response == "¿Cómo te gustaría llamar a este universo?"
    assert orchestrator.get_session(session_id).clarification_rounds == 1


def test_unintelligible_message(orchestrator):
    session_id = orchestrator.start_session("universe")
    result = orchestrator.process_message(session_id, "xyz")
    assert result.success is False
    assert result.response == "No entendí bien. ¿Puedes reformular?"


def test_stat_names_derive_definitions(orchestrator):
    session_id = orchestrator.start_session("universe")
    state = orchestrator.get_session(session_id)
    orchestrator._merge_fields(
        state,
        {
            "statNames": ExtractedField(
                field_name="statNames", value=["Fuerza", "Agilidad"], confidence=0.8, source="explicit"
            )
        },
        orchestrator.classifier.classify("fuerza y agilidad"),
    )

    definitions = state.collected_values()["statDefinitions"]
    assert list(definitions) == ["fuerza", "agilidad"]
    assert definitions["fuerza"]["abbreviation"] == "FUE"
    assert definitions["agilidad"]["maxValue"] == 999


def test_stat_list_rebuilds_derived_definitions(orchestrator):
    session_id = orchestrator.start_session("universe")
    orchestrator.process_message(session_id, CREATE_MESSAGE)
    orchestrator.process_message(session_id, "La descripción es un mundo de magia antigua y reinos en guerra")
    state = orchestrator.get_session(session_id)
    assert list(state.collected_values()["statDefinitions"]) == ["magia"]

    orchestrator.process_message(session_id, "Las estadísticas son fuerza, agilidad y magia")

    values = state.collected_values()
    assert values["statNames"] == ["fuerza", "agilidad", "magia"]
    assert list(values["statDefinitions"]) == ["fuerza", "agilidad", "magia"]


def test_supplied_stat_definitions_are_kept(orchestrator):
    session_id = orchestrator.start_session("universe")
    state = orchestrator.get_session(session_id)
    _collect(orchestrator, session_id, statDefinitions={"poder": {"name": "Poder", "minValue": 0, "maxValue": 10}})

    orchestrator._merge_fields(
        state,
        {"statNames": ExtractedField(field_name="statNames", value=["Fuerza"], confidence=0.8, source="explicit")},
        orchestrator.classifier.classify("fuerza"),
    )

    assert list(state.collected_values()["statDefinitions"]) == ["poder"]


def test_build_stat_definitions_skips_duplicates():
    definitions = Orchestrator.build_stat_definitions("Fuerza, fuerza, Magia")
    assert list(definitions) == ["fuerza", "magia"]
    assert definitions["magia"]["color"] == "#2ecc71"


# =============================================================================
# PHASES
# =============================================================================

def test_advance_blocked_by_missing_fields(orchestrator):
    session_id = orchestrator.start_session("universe")
    result = orchestrator.advance_phase(session_id)

    assert result.success is False
    assert result.errors == ["name", "description"]
    assert orchestrator.get_session(session_id).creation_phase_id == "concept"


def test_advance_to_next_phase(orchestrator):
    session_id = orchestrator.start_session("universe")
    _collect(orchestrator, session_id, name="Tierra Media", description="Un mundo de magia antigua")

    result = orchestrator.advance_phase(session_id)

    assert result.success is True
    assert result.next_phase == "races"
    assert result.response == "¿Habrá diferentes razas o especies en tu mundo?"
    assert orchestrator.get_events(session_id, "phase_advance")[0].data == {"from": "concept", "to": "races"}


def test_last_phase_asks_to_save(orchestrator):
    session_id = orchestrator.start_session("universe")
    orchestrator.get_session(session_id).creation_phase_id = "review"

    result = orchestrator.advance_phase(session_id)

    assert result.requires_confirmation is True
    assert result.confirmation_type == "save"
    assert orchestrator.get_session(session_id).phase == "reviewing"


def test_complete_phase_auto_advances(orchestrator):
    session_id = orchestrator.start_session("universe")
    _collect(orchestrator, session_id, description="Un mundo de magia antigua")

    result = orchestrator.process_message(session_id, CREATE_MESSAGE)

    assert result.success is True
    assert result.next_phase == "races"
    assert result.response.startswith("Entendido.")


def test_rule_only_conversation_reaches_review(orchestrator):
    session_id = orchestrator.start_session("universe")
    orchestrator.process_message(session_id, CREATE_MESSAGE)
    orchestrator.process_message(session_id, "La descripción es un mundo de magia antigua y reinos en guerra")
    orchestrator.process_message(session_id, "Las estadísticas son fuerza, agilidad y magia")
    state = orchestrator.get_session(session_id)

    visited = []
    for _ in range(6):
        if state.phase == "reviewing":
            break
        result = orchestrator.process_message(session_id, "siguiente fase")
        assert result.success is True, result.response
        visited.append(state.creation_phase_id)

    assert state.phase == "reviewing"
    assert "progression" in visited
    assert visited[-1] == "review"
    assert result.requires_confirmation is True

    confirmed = orchestrator.process_message(session_id, "sí, de acuerdo")
    assert confirmed.state_updates == {"phase": "confirmed"}
    assert confirmed.generated_entity["progressionRules"] == []
    assert list(confirmed.generated_entity["statDefinitions"]) == ["fuerza", "agilidad", "magia"]


def test_advance_jumps_to_review_when_mostly_complete(orchestrator):
    session_id = orchestrator.start_session("universe")
    _collect(
        orchestrator,
        session_id,
        name="Tierra Media",
        theme="fantasy",
        description="Un mundo de magia antigua",
        statNames=["Fuerza", "Agilidad"],
        statCount=2,
        statDefinitions=Orchestrator.build_stat_definitions(["Fuerza", "Agilidad"]),
        rankSystem={"type": "letters", "levels": ["C", "B", "A"]},
    )

    result = orchestrator.advance_phase(session_id)

    assert result.next_phase == "review"
    assert result.response.startswith("Tienes 95% completo. Puedes ir directo a la revisión.")
    assert [a.label for a in result.suggested_actions] == ["Ver preview", "Guardar", "Editar algo"]
    assert orchestrator.get_events(session_id, "phase_advance")[0].data == {"from": "concept", "to": "review"}


def test_no_review_jump_past_missing_fields(orchestrator):
    session_id = orchestrator.start_session("universe")
    _collect(
        orchestrator,
        session_id,
        name="Tierra Media",
        theme="fantasy",
        description="Un mundo de magia antigua",
        statNames=["Fuerza", "Agilidad"],
        statCount=2,
        rankSystem={"type": "letters", "levels": ["C", "B", "A"]},
    )

    # The statistics phase still lacks statDefinitions
    result = orchestrator.advance_phase(session_id)
    assert result.next_phase == "races"


def test_phase_chips_come_from_phase_engine(orchestrator):
    session_id = orchestrator.start_session("universe")
    result = orchestrator.process_message(session_id, "muestra el progreso")
    assert [a.label for a in result.suggested_actions] == ["Fantasía", "Ciencia Ficción", "Cyberpunk", "Medieval"]


# =============================================================================
# GENERATION
# =============================================================================

def test_generate_requires_data(orchestrator):
    session_id = orchestrator.start_session("universe")
    result = orchestrator.generate_final_entity(session_id)
    assert result.success is False
    assert result.errors == ["name", "theme"]


def test_generate_universe_and_confirm(orchestrator):
    session_id = orchestrator.start_session("universe")
    _collect(
        orchestrator,
        session_id,
        name="Tierra Media",
        theme="fantasy",
        description="Un mundo de magia antigua",
        statNames=["Fuerza", "Agilidad"],
        rankSystem={"type": "letters", "levels": ["C", "B", "A"]},
    )

    result = orchestrator.generate_final_entity(session_id)

    assert result.success is True
    assert result.requires_confirmation is True
    entity = result.generated_entity
    assert entity["initialPoints"] == 100
    assert list(entity["statDefinitions"]) == ["fuerza", "agilidad"]
    assert entity["progressionRules"] == []
    assert entity["awakeningSystem"]["thresholds"] == [0, 10, 20]
    assert orchestrator.get_events(session_id, "entity_generated")[0].data["valid"] is True

    confirmed = orchestrator.process_message(session_id, "sí, de acuerdo")
    assert confirmed.state_updates == {"phase": "confirmed"}
    assert confirmed.generated_entity["name"] == "Tierra Media"

    again = orchestrator.process_message(session_id, "ok")
    assert again.success is True
    assert again.response == "Ya está confirmado y guardado."
    assert orchestrator.get_session(session_id).phase == "confirmed"


def test_invalid_entity_is_reported(orchestrator):
    session_id = orchestrator.start_session("universe", config={"auto_fix_validation_errors": False})
    _collect(orchestrator, session_id, name="Tierra Media", theme="fantasy", description="corta")

    result = orchestrator.generate_final_entity(session_id)

    assert result.success is False
    assert "Descripción debe tener al menos 10 caracteres" in result.errors
    assert orchestrator.get_events(session_id, "validation_error")


def test_character_creation_uses_selected_universe(orchestrator, universe):
    session_id = orchestrator.start_session("character")
    assert orchestrator.set_selected_universe(session_id, universe) is True

    result = orchestrator.process_message(session_id, 'Crear un personaje llamado "Aragorn"')
    assert result.next_phase == "identity"

    generated = orchestrator.generate_final_entity(session_id)
    assert generated.success is True
    assert generated.generated_entity["universeId"] == "u1"
    assert generated.generated_entity["stats"] == {"strength": 0, "agility": 0}


# =============================================================================
# EDITING
# =============================================================================

def test_quick_edit_undo_redo(orchestrator, universe):
    session_id = orchestrator.start_session("edit", existing_entity=universe)
    assert orchestrator.get_session(session_id).phase == "adjusting"

    result = orchestrator.process_message(session_id, 'Cambia el nombre a "Narnia"')
    assert result.success is True
    assert "name" in result.changed_fields
    assert result.generated_entity["name"] == "Narnia"
    assert orchestrator.get_session(session_id).collected_values()["name"] == "Narnia"

    assert orchestrator.undo(session_id).generated_entity["name"] == "Tierra Media"
    assert orchestrator.redo(session_id).generated_entity["name"] == "Narnia"
    assert orchestrator.redo(session_id).success is False
    # The caller's document is never touched
    assert universe["name"] == "Tierra Media"


def test_cancel_undoes_last_edit(orchestrator, universe):
    session_id = orchestrator.start_session("edit", existing_entity=universe)
    orchestrator.apply_quick_edit(session_id, 'Cambia el nombre a "Narnia"')

    result = orchestrator.process_message(session_id, "cancelar")
    assert result.generated_entity["name"] == "Tierra Media"


def test_edit_before_generation(orchestrator):
    session_id = orchestrator.start_session("universe")
    result = orchestrator.process_message(session_id, "cambia la descripción por algo más oscuro")
    assert result.success is False
    assert result.response == "No hay entidad para editar aún."


def test_nothing_to_undo(orchestrator, universe):
    session_id = orchestrator.start_session("edit", existing_entity=universe)
    assert orchestrator.undo(session_id).response == "No hay nada que deshacer."


def test_delete_is_unsupported(orchestrator):
    session_id = orchestrator.start_session("universe")
    result = orchestrator.process_message(session_id, "borra la raza de los orcos")
    assert result.success is False
    assert result.response == "La eliminación no está soportada en esta sesión."


# =============================================================================
# QUERIES
# =============================================================================

def test_query_reports_progress(orchestrator):
    session_id = orchestrator.start_session("universe")
    result = orchestrator.process_message(session_id, "muestra el progreso")
    assert result.response == "Modo: universe, Fase: concept, Progreso: 0%"


def test_session_summary(orchestrator):
    session_id = orchestrator.start_session("universe")
    orchestrator.process_message(session_id, CREATE_MESSAGE)

    summary = orchestrator.get_session_summary(session_id)
    assert summary.entity_name == "Tierra Media"
    assert summary.fields_collected >= 2
    assert summary.progress_percent > 0
    assert orchestrator.get_session_summary("missing") is None


def test_prompt_context(orchestrator):
    session_id = orchestrator.start_session("universe")
    _collect(orchestrator, session_id, name="Tierra Media")

    context = orchestrator.build_prompt_context(session_id)
    assert context.phase == "concept"
    assert context.collected_data == {"name": "Tierra Media"}
    assert context.session_id == session_id


# =============================================================================
# LLM AND FAILURES
# =============================================================================

def test_llm_fields_take_priority(make_llm):
    reply = {
        "fields": [
            {"field": "name", "value": "Eldoria", "confidence": 0.95},
            {"field": "description", "value": "Un mundo de magia antigua y reinos en guerra", "confidence": 0.8},
            {"field": "notAField", "value": "x"},
        ]
    }
    connector = make_llm(replies=[json.dumps(reply)])
    orchestrator = Orchestrator(llm_connector=connector)
    session_id = orchestrator.start_session("universe")

    result = orchestrator.process_message(session_id, CREATE_MESSAGE)

    values = orchestrator.get_session(session_id).collected_values()
    assert values["name"] == "Eldoria"
    assert "notAField" not in values
    assert result.next_phase == "races"
    assert connector.calls[0]["json_mode"] is True


def test_llm_failure_falls_back_to_rules(make_llm):
    connector = make_llm(fail=True)
    orchestrator = Orchestrator(llm_connector=connector)
    session_id = orchestrator.start_session("universe")

    result = orchestrator.process_message(session_id, CREATE_MESSAGE)

    assert result.success is True
    assert orchestrator.get_session(session_id).collected_values()["name"] == "Tierra Media"
    assert len(connector.calls) == 1


def test_unexpected_error_is_recoverable(orchestrator, monkeypatch):
    session_id = orchestrator.start_session("universe")

    def boom(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(orchestrator.classifier, "classify", boom)
    result = orchestrator.process_message(session_id, "hola")
    assert result.success is False
    assert result.errors == ["boom"]
    assert orchestrator.get_session(session_id).phase == "error"

    monkeypatch.undo()
    orchestrator.process_message(session_id, "muestra el progreso")
    assert orchestrator.get_session(session_id).phase == "gathering"


def test_connector_crash_falls_back_to_rules(make_llm):
    connector = make_llm(error=ConnectionError("connection reset by peer"))
    orchestrator = Orchestrator(llm_connector=connector)
    session_id = orchestrator.start_session("universe")

    result = orchestrator.process_message(session_id, CREATE_MESSAGE)

    state = orchestrator.get_session(session_id)
    assert result.success is True
    assert state.phase == "gathering"
    assert state.collected_values()["name"] == "Tierra Media"
    assert len(connector.calls) == 1


# =============================================================================
# CONCURRENCY
# =============================================================================

def test_messages_for_one_session_run_one_at_a_time(orchestrator, monkeypatch):
    session_id = orchestrator.start_session("universe")
    classify = orchestrator.classifier.classify
    counter_lock = threading.Lock()
    counts = {"active": 0, "peak": 0}

    def slow_classify(*args, **kwargs):
        with counter_lock:
            counts["active"] += 1
            counts["peak"] = max(counts["peak"], counts["active"])
        time.sleep(0.02)
        with counter_lock:
            counts["active"] -= 1
        return classify(*args, **kwargs)

    monkeypatch.setattr(orchestrator.classifier, "classify", slow_classify)
    threads = [
        threading.Thread(target=orchestrator.process_message, args=(session_id, "muestra el progreso"))
        for _ in range(5)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert counts["peak"] == 1
    assert len(orchestrator.get_events(session_id, "message_processed")) == 5


def test_sessions_do_not_block_each_other(orchestrator, monkeypatch):
    first = orchestrator.start_session("universe")
    second = orchestrator.start_session("universe")
    classify = orchestrator.classifier.classify
    # Both messages must be inside classify at the same time to get past the barrier
    barrier = threading.Barrier(2, timeout=5)

    def meet(*args, **kwargs):
        barrier.wait()
        return classify(*args, **kwargs)

    monkeypatch.setattr(orchestrator.classifier, "classify", meet)
    results = {}

    def run(session_id):
        results[session_id] = orchestrator.process_message(session_id, "muestra el progreso")

    threads = [threading.Thread(target=run, args=(sid,)) for sid in (first, second)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results[first].success is True
    assert results[second].success is True
