"""
Creation Orchestrator
=====================
Owns the creation/edit sessions and routes every user message:

    text -> IntentClassifier -> handler (create / edit / confirm / cancel /
            query / delete / navigate / unknown) -> OrchestrationResult

Field collection merges three sources, later ones only filling gaps:
LLM extraction (when a connector is configured), the classifier's fields
for the message target, and bulk extraction over the creation mode.

Sessions live in memory. The session map is guarded by one lock and every
session has its own re-entrant lock, so two sessions never block each other
while messages for the same session are processed one at a time.
"""

import copy
import logging
import threading
import time
from typing import Any, Dict, List, Optional

from app.core.entity_validator import CompleteValidation, EntityValidator
from app.core.exceptions import ExternalProviderFailure
from app.core.field_extractor import FieldExtractor
from app.core.incremental_editor import IncrementalEditor
from app.core.intent_classifier import IntentClassifier
from app.core.phase_engine import MAX_SUGGESTIONS, PhaseEngine, PhaseSuggestion
from app.llm.llm_connector import LLMConnector
from app.models.edit import ChangeDetectionRequest
from app.models.form_schema import ValidationContext
from app.models.intent import DetectedIntent, ExtractedField
from app.models.orchestration import (
    OrchestrationEvent,
    OrchestrationResult,
    OrchestrationState,
    OrchestratorConfig,
    SessionSummary,
    SuggestedAction,
    generate_session_id,
)
from app.models.prompt import PromptContext
from app.prompts.builder import PromptBuilder
from app.schemas.definitions import STAT_ICONS
from app.schemas.extractable import get_extractable_fields
from app.schemas.registry import get_field, get_fields_for_phase, get_missing_required_fields, get_phase_ids, get_schema
from app.utils.text import normalize

logger = logging.getLogger(__name__)

MAX_EVENTS = 1000

TEXTS = {
    "es": {
        "data_collected": "Entendido. He registrado: {fields}.",
        "need_more_info": "Necesito más información. {question}",
        "all_phases_complete": "¡Todas las fases están completas! ¿Deseas guardar?",
        "missing_fields": "Faltan campos requeridos: {fields}",
        "confirmed": "¡Perfecto! Guardando...",
        "already_confirmed": "Ya está confirmado y guardado.",
        "operation_cancelled": "Operación cancelada.",
        "no_entity_to_edit": "No hay entidad para editar aún.",
        "no_changes_detected": "No detecté cambios en tu solicitud.",
        "changes_applied": "Se aplicaron {count} cambio(s).",
        "undone": "Cambio deshecho.",
        "nothing_to_undo": "No hay nada que deshacer.",
        "redone": "Cambio rehecho.",
        "nothing_to_redo": "No hay nada que rehacer.",
        "delete_unsupported": "La eliminación no está soportada en esta sesión.",
        "didnt_understand": "No entendí bien. ¿Puedes reformular?",
        "session_info": "Modo: {mode}, Fase: {phase}, Progreso: {progress}%",
        "entity_ready": "Listo. Revisa el resultado y confirma para guardar.",
        "entity_invalid": "El resultado tiene errores: {errors}",
        "not_ready": "Aún faltan datos para generar: {fields}",
        "unexpected_error": "Ocurrió un error inesperado. Inténtalo de nuevo.",
        "undo": "Deshacer",
        "redo": "Rehacer",
        "save": "Guardar",
        "continue": "Continuar",
    },
    "en": {
        "data_collected": "Got it. I recorded: {fields}.",
        "need_more_info": "I need more information. {question}",
        "all_phases_complete": "All phases are complete! Do you want to save?",
        "missing_fields": "Missing required fields: {fields}",
        "confirmed": "Perfect! Saving...",
        "already_confirmed": "It is already confirmed and saved.",
        "operation_cancelled": "Operation cancelled.",
        "no_entity_to_edit": "There is no entity to edit yet.",
        "no_changes_detected": "I didn't detect any changes in your request.",
        "changes_applied": "Applied {count} change(s).",
        "undone": "Change undone.",
        "nothing_to_undo": "Nothing to undo.",
        "redone": "Change redone.",
        "nothing_to_redo": "Nothing to redo.",
        "delete_unsupported": "Deletion is not supported in this session.",
        "didnt_understand": "I didn't quite understand. Could you rephrase?",
        "session_info": "Mode: {mode}, Phase: {phase}, Progress: {progress}%",
        "entity_ready": "Done. Review the result and confirm to save.",
        "entity_invalid": "The result has errors: {errors}",
        "not_ready": "Still missing data to generate: {fields}",
        "unexpected_error": "An unexpected error occurred. Please try again.",
        "undo": "Undo",
        "redo": "Redo",
        "save": "Save",
        "continue": "Continue",
    },
}

PHASE_GUIDANCE = {
    "concept": {
        "es": "Cuéntame sobre tu universo. ¿Cómo se llama y de qué trata?",
        "en": "Tell me about your universe. What is it called and what is it about?",
    },
    "races": {
        "es": "¿Habrá diferentes razas o especies en tu mundo?",
        "en": "Will there be different races or species in your world?",
    },
    "statistics": {
        "es": "¿Qué atributos tendrán los personajes? (Fuerza, Agilidad, etc.)",
        "en": "What attributes will characters have? (Strength, Agility, etc.)",
    },
    "progression": {
        "es": "¿Cómo progresarán los personajes? ¿Habrá rangos o niveles?",
        "en": "How will characters progress? Will there be ranks or levels?",
    },
    "appearance": {
        "es": "¿Quieres añadir una imagen de portada o detalles visuales?",
        "en": "Would you like to add a cover image or visual details?",
    },
    "review": {
        "es": "Revisemos todo antes de guardar.",
        "en": "Let's review everything before saving.",
    },
    "universe_selection": {
        "es": "¿En qué universo vivirá tu personaje?",
        "en": "Which universe will your character live in?",
    },
    "identity": {
        "es": "¿Cómo se llama tu personaje? ¿Qué raza es?",
        "en": "What is your character's name? What race are they?",
    },
    "backstory": {
        "es": "Cuéntame la historia de tu personaje.",
        "en": "Tell me your character's backstory.",
    },
    "personality": {
        "es": "¿Cómo es la personalidad de tu personaje?",
        "en": "What is your character's personality like?",
    },
}

PHASE_ACTIONS = {
    "concept": ["Fantasía medieval", "Ciencia ficción", "Post-apocalíptico"],
    "races": ["Sí, varias razas", "Solo humanos", "Saltar"],
    "statistics": ["Fuerza, Agilidad, Inteligencia", "Usar estadísticas por defecto"],
    "progression": ["Rangos E-SSS", "Niveles 1-100", "Sin rangos"],
    "appearance": ["Generar imagen", "Saltar"],
    "review": ["Guardar", "Editar algo"],
    "universe_selection": ["Ver mis universos"],
    "identity": ["Guerrero", "Mago", "Arquero"],
    "backstory": ["Origen humilde", "Noble caído", "Saltar"],
    "personality": ["Valiente", "Astuto", "Reservado"],
}

STAT_COLORS = ["#e74c3c", "#2ecc71", "#3498db", "#f1c40f", "#9b59b6", "#1abc9c", "#e67e22", "#95a5a6"]

# Filled in at generation when the conversation never sets them; phases requiring them may pass
GENERATED_DEFAULTS = {
    "universe": {"progressionRules": []},
}


def _now_ms() -> int:
    return int(time.time() * 1000)


class Orchestrator:
    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        llm_connector: Optional[LLMConnector] = None,
        classifier: Optional[IntentClassifier] = None,
        extractor: Optional[FieldExtractor] = None,
        validator: Optional[EntityValidator] = None,
        phase_engine: Optional[PhaseEngine] = None,
        prompt_builder: Optional[PromptBuilder] = None,
    ):
        self.config = config or OrchestratorConfig()
        self.llm_connector = llm_connector
        self.extractor = extractor or FieldExtractor()
        self.classifier = classifier or IntentClassifier(extractor=self.extractor)
        self.validator = validator or EntityValidator()
        self.phase_engine = phase_engine or PhaseEngine(self.extractor)
        self.prompt_builder = prompt_builder or PromptBuilder()

        self._sessions: Dict[str, OrchestrationState] = {}
        self._editors: Dict[str, IncrementalEditor] = {}
        self._session_locks: Dict[str, threading.RLock] = {}
        self._lock = threading.Lock()

        self._events: List[OrchestrationEvent] = []
        self._events_lock = threading.Lock()

    def configure(self, **overrides):
        """Override defaults for sessions started from now on."""
        self.config = self.config.model_copy(update=overrides)

    # =========================================================================
    # SESSION LIFECYCLE
    # =========================================================================

    def start_session(
        self,
        mode: str,
        config: Optional[Dict[str, Any]] = None,
        existing_entity: Optional[Dict[str, Any]] = None,
    ) -> str:
        self.expire_sessions()

        session_config = self.config.model_copy(update=config or {})
        session_id = generate_session_id()
        state = OrchestrationState(session_id=session_id, mode=mode, config=session_config)
        if existing_entity is not None:
            state.generated_entity = copy.deepcopy(existing_entity)
            state.phase = "adjusting"

        editor = IncrementalEditor(entity_type=self._entity_kind(state), extractor=self.extractor)
        state.edit_history = editor.get_history()

        with self._lock:
            self._sessions[session_id] = state
            self._editors[session_id] = editor
            self._session_locks[session_id] = threading.RLock()

        self._emit("session_start", session_id, {"mode": mode, "has_entity": existing_entity is not None})
        logger.info(f"🆕 Started {mode} session {session_id}")
        return session_id

    def end_session(self, session_id: str) -> bool:
        state = self.get_session(session_id)
        if state is None or not state.is_active:
            return False
        with self._session_lock(session_id):
            state.is_active = False
        self._emit("session_end", session_id, {"reason": "ended"})
        logger.info(f"Ended session {session_id}")
        return True

    def get_session(self, session_id: str) -> Optional[OrchestrationState]:
        with self._lock:
            return self._sessions.get(session_id)

    def get_active_sessions(self) -> List[str]:
        with self._lock:
            return [sid for sid, state in self._sessions.items() if state.is_active]

    def active_session_count(self) -> int:
        return len(self.get_active_sessions())

    def expire_sessions(self, now_ms: Optional[int] = None) -> List[str]:
        """Drop every session idle for longer than its timeout. Returns the dropped ids."""
        now_ms = now_ms if now_ms is not None else _now_ms()
        with self._lock:
            expired = [sid for sid, state in self._sessions.items() if state.is_expired(now_ms)]
            for sid in expired:
                self._sessions.pop(sid).is_active = False
                self._editors.pop(sid, None)
                self._session_locks.pop(sid, None)

        for sid in expired:
            self._emit("session_end", sid, {"reason": "expired"})
        if expired:
            logger.info(f"Expired {len(expired)} idle session(s)")
        return expired

    def _session_lock(self, session_id: str) -> threading.RLock:
        with self._lock:
            lock = self._session_locks.get(session_id)
        # An expired session can race with a caller that already holds its state
        return lock or threading.RLock()

    # =========================================================================
    # MESSAGE PROCESSING
    # =========================================================================

    def process_message(self, session_id: str, text: str) -> OrchestrationResult:
        state = self.get_session(session_id)
        if state is None or not state.is_active:
            return OrchestrationResult(
                success=False,
                response="Session not found or inactive",
                errors=["Session not found or inactive"],
            )

        with self._session_lock(session_id):
            state.touch()
            if state.phase == "error":
                state.phase = "adjusting" if state.generated_entity else "gathering"
            try:
                result = self._dispatch(state, text or "")
            except Exception as e:
                logger.error(f"Error processing message for session {session_id}: {e}", exc_info=True)
                state.phase = "error"
                result = OrchestrationResult(
                    success=False,
                    response=self._text(state, "unexpected_error"),
                    state_updates={"phase": "error"},
                    errors=[str(e)],
                )

        action = state.last_intent.action if state.last_intent else "unknown"
        self._emit("message_processed", session_id, {"action": action, "success": result.success})
        return result

    def _dispatch(self, state: OrchestrationState, text: str) -> OrchestrationResult:
        current_language = state.last_intent.language if state.last_intent is not None else None
        intent = self.classifier.classify(
            text, contextual_target=self._entity_kind(state), current_language=current_language
        )
        state.last_intent = intent

        action = intent.action
        if action == "query" and not intent.matched_keywords:
            # No rule fired; treat the message as free-form data
            action = "unknown"
        if action == "create" and state.mode == "edit":
            action = "edit"

        logger.debug(f"Session {state.session_id}: {action}/{intent.target} (conf={intent.confidence})")
        handler = {
            "create": self._handle_create,
            "edit": self._handle_edit,
            "confirm": self._handle_confirm,
            "cancel": self._handle_cancel,
            "query": self._handle_query,
            "delete": self._handle_delete,
            "navigate": self._handle_navigate,
        }.get(action, self._handle_unknown)
        return handler(state, intent)

    # =========================================================================
    # HANDLERS
    # =========================================================================

    def _handle_create(self, state: OrchestrationState, intent: DetectedIntent) -> OrchestrationResult:
        gathered = self._gather_fields(state, intent)
        updates = self._merge_fields(state, gathered, intent)

        confidence_low = intent.confidence < state.config.confidence_threshold
        needs_clarification = confidence_low or self.classifier.needs_clarification(
            intent.action, intent.confidence, list(state.extracted_data.values())
        )
        if needs_clarification and state.clarification_rounds < state.config.max_clarification_rounds:
            state.clarification_rounds += 1
            merged = intent.model_copy(update={"extracted_fields": list(state.extracted_data.values())})
            questions = self.classifier.clarification_questions(merged)
            state.pending_questions = questions
            return OrchestrationResult(
                success=True,
                response=questions[0],
                suggested_actions=self._phase_actions(state, state.creation_phase_id),
                state_updates=updates,
            )

        state.pending_questions = []
        return self._after_collection(state, gathered, updates)

    def _handle_unknown(self, state: OrchestrationState, intent: DetectedIntent) -> OrchestrationResult:
        gathered = self._gather_fields(state, intent) if state.mode != "edit" else {}
        if not gathered:
            return OrchestrationResult(success=False, response=self._text(state, "didnt_understand"))
        updates = self._merge_fields(state, gathered, intent)
        return self._after_collection(state, gathered, updates)

    def _after_collection(
        self, state: OrchestrationState, gathered: Dict[str, ExtractedField], updates: Dict[str, Any]
    ) -> OrchestrationResult:
        kind = self._entity_kind(state)
        missing = get_missing_required_fields(get_schema(kind), self._phase_values(state), state.creation_phase_id)
        recorded = self._text(state, "data_collected", fields=", ".join(gathered)) if gathered else ""

        if not missing and state.config.auto_advance_on_complete:
            advanced = self._advance(state)
            advanced.response = f"{recorded} {advanced.response}".strip()
            advanced.state_updates = {**updates, **advanced.state_updates}
            return advanced

        if recorded:
            response = recorded
        else:
            response = self._text(state, "need_more_info", question=self._question_for(state, missing))
        return OrchestrationResult(
            success=True,
            response=response,
            suggested_actions=[
                SuggestedAction(label=self._field_label(kind, name, state), action="fill", value=name)
                for name in missing
            ],
            state_updates=updates,
        )

    def _handle_edit(self, state: OrchestrationState, intent: DetectedIntent) -> OrchestrationResult:
        if not state.generated_entity:
            return OrchestrationResult(success=False, response=self._text(state, "no_entity_to_edit"))
        return self._quick_edit(state, intent.raw_input)

    def _handle_confirm(self, state: OrchestrationState, intent: DetectedIntent) -> OrchestrationResult:
        if state.phase == "confirmed":
            return OrchestrationResult(
                success=True,
                response=self._text(state, "already_confirmed"),
                generated_entity=copy.deepcopy(state.generated_entity),
            )
        if state.phase not in ("reviewing", "adjusting"):
            return self._advance(state)

        if not state.generated_entity:
            generated = self._generate(state)
            if not generated.success:
                return generated

        state.phase = "confirmed"
        logger.info(f"✅ Session {state.session_id} confirmed")
        return OrchestrationResult(
            success=True,
            response=self._text(state, "confirmed"),
            generated_entity=copy.deepcopy(state.generated_entity),
            state_updates={"phase": "confirmed"},
        )

    def _handle_cancel(self, state: OrchestrationState, intent: DetectedIntent) -> OrchestrationResult:
        editor = self._editors.get(state.session_id)
        if state.generated_entity and editor is not None and editor.can_undo():
            return self._undo(state)
        state.pending_questions = []
        return OrchestrationResult(success=True, response=self._text(state, "operation_cancelled"))

    def _handle_query(self, state: OrchestrationState, intent: DetectedIntent) -> OrchestrationResult:
        return OrchestrationResult(
            success=True,
            response=self.format_session_info(state, intent.language),
            suggested_actions=self._phase_actions(state, state.creation_phase_id),
        )

    def _handle_delete(self, state: OrchestrationState, intent: DetectedIntent) -> OrchestrationResult:
        return OrchestrationResult(success=False, response=self._text(state, "delete_unsupported"))

    def _handle_navigate(self, state: OrchestrationState, intent: DetectedIntent) -> OrchestrationResult:
        return self._advance(state)

    # =========================================================================
    # FIELD COLLECTION
    # =========================================================================

    def _gather_fields(self, state: OrchestrationState, intent: DetectedIntent) -> Dict[str, ExtractedField]:
        kind = self._entity_kind(state)
        gathered: Dict[str, ExtractedField] = {}

        for extracted in self._llm_extract(state, intent.raw_input, intent.language):
            gathered[extracted.field_name] = extracted

        # Fields for a sub-entity ("add a race") never land on the parent
        if intent.target == kind:
            for extracted in intent.extracted_fields:
                gathered.setdefault(extracted.field_name, extracted)

        if state.mode in ("universe", "character"):
            bulk = self.extractor.extract_all(intent.raw_input, kind, intent.language)
            for key, extracted in bulk.fields.items():
                gathered.setdefault(key, extracted)

        return gathered

    def _merge_fields(
        self, state: OrchestrationState, gathered: Dict[str, ExtractedField], intent: DetectedIntent
    ) -> Dict[str, Any]:
        updates: Dict[str, Any] = {}
        kind = self._entity_kind(state)

        if gathered and state.config.enable_contradiction_check and state.extracted_data:
            contradictions = self.extractor.detect_contradictions(
                intent.raw_input, state.collected_values(), intent.language, kind
            )
            if contradictions.has_contradictions:
                logger.info(f"Session {state.session_id}: {contradictions.explanation}")
                updates["contradictions"] = contradictions.model_dump()

        # Later values overwrite earlier ones
        state.extracted_data.update(gathered)

        # Definitions derived from statNames follow the latest list; supplied ones are kept
        current = state.extracted_data.get("statDefinitions")
        if "statNames" in gathered and (current is None or current.source == "default"):
            definitions = self.build_stat_definitions(gathered["statNames"].value)
            if definitions:
                state.extracted_data["statDefinitions"] = ExtractedField(
                    field_name="statDefinitions", value=definitions, confidence=0.8, source="default"
                )

        if gathered:
            updates["extracted_fields"] = list(gathered)
        return updates

    def _llm_extract(self, state: OrchestrationState, text: str, language: str) -> List[ExtractedField]:
        if self.llm_connector is None or not state.config.use_llm_fallback or state.mode == "edit" or not text:
            return []

        kind = self._entity_kind(state)
        target_fields = [f.name for f in get_fields_for_phase(kind, state.creation_phase_id)]
        if not target_fields:
            target_fields = [f.name for f in get_schema(kind).fields]

        context = self._prompt_context(state, language)
        prompt = self.prompt_builder.build_field_extraction_prompt(text, target_fields, context)
        try:
            data = self.llm_connector.complete_json(prompt)
        except ExternalProviderFailure as e:
            logger.warning(f"⚠️ LLM extraction failed, falling back to rules: {e}")
            return []
        except Exception as e:
            # Connectors that skip complete_prompt can still leak raw SDK errors
            logger.warning(f"⚠️ LLM connector raised {type(e).__name__}, falling back to rules: {e}", exc_info=True)
            return []

        extracted = []
        for item in data.get("fields") or []:
            if not isinstance(item, dict):
                continue
            name, value = item.get("field"), item.get("value")
            if name not in target_fields or value is None or value == "":
                continue
            try:
                confidence = min(max(float(item.get("confidence", 0.7)), 0.0), 1.0)
            except (TypeError, ValueError):
                confidence = 0.7
            extracted.append(ExtractedField(field_name=name, value=value, confidence=confidence, source="inferred"))

        logger.debug(f"LLM extracted {[f.field_name for f in extracted]}")
        return extracted

    @staticmethod
    def build_stat_definitions(names: Any) -> Dict[str, Dict[str, Any]]:
        """Default stat definitions for a list of stat names, keyed by a slug of each name."""
        if isinstance(names, str):
            names = [n.strip() for n in names.split(",")]
        definitions: Dict[str, Dict[str, Any]] = {}
        for name in names or []:
            name = str(name).strip()
            key = "".join(c for c in normalize(name) if c.isalnum())
            if not key or key in definitions:
                continue
            i = len(definitions)
            definitions[key] = {
                "name": name,
                "abbreviation": key[:3].upper(),
                "icon": STAT_ICONS[i % len(STAT_ICONS)],
                "minValue": 0,
                "maxValue": 999,
                "category": "primary",
                "color": STAT_COLORS[i % len(STAT_COLORS)],
            }
        return definitions

    # =========================================================================
    # PHASES
    # =========================================================================

    def advance_phase(self, session_id: str) -> OrchestrationResult:
        state = self.get_session(session_id)
        if state is None or not state.is_active:
            return OrchestrationResult(success=False, response="Session not found or inactive")
        with self._session_lock(session_id):
            state.touch()
            return self._advance(state)

    def _advance(self, state: OrchestrationState) -> OrchestrationResult:
        order = get_phase_ids(self._entity_kind(state)) if state.mode != "edit" else []
        current = state.creation_phase_id
        index = order.index(current) if current in order else -1

        if index == -1 or index >= len(order) - 1:
            state.phase = "reviewing"
            return OrchestrationResult(
                success=True,
                response=self._text(state, "all_phases_complete"),
                suggested_actions=[SuggestedAction(label=self._text(state, "save"), action="confirm")],
                state_updates={"phase": "reviewing"},
                requires_confirmation=True,
                confirmation_type="save",
            )

        kind = self._entity_kind(state)
        missing = get_missing_required_fields(get_schema(kind), self._phase_values(state), current)
        if missing:
            return OrchestrationResult(
                success=False,
                response=self._text(state, "missing_fields", fields=", ".join(missing)),
                suggested_actions=[
                    SuggestedAction(label=self._field_label(kind, name, state), action="fill", value=name)
                    for name in missing
                ],
                errors=missing,
            )

        next_phase = order[index + 1]
        skip_note = ""
        jump = self._review_jump(state, order, index)
        if jump is not None:
            next_phase, skip_note = "review", jump.reason
        state.creation_phase_id = next_phase
        state.phase = "gathering"
        state.clarification_rounds = 0
        self._emit("phase_advance", state.session_id, {"from": current, "to": next_phase})
        logger.info(f"Session {state.session_id}: phase {current} -> {next_phase}")

        guidance = PHASE_GUIDANCE.get(next_phase, {})
        response = guidance.get(self._language(state), guidance.get("es", ""))
        return OrchestrationResult(
            success=True,
            response=f"{skip_note} {response}".strip(),
            suggested_actions=self._phase_actions(state, next_phase),
            state_updates={"creation_phase_id": next_phase, "phase": "gathering"},
            next_phase=next_phase,
        )

    # =========================================================================
    # GENERATION
    # =========================================================================

    def generate_final_entity(self, session_id: str) -> OrchestrationResult:
        state = self.get_session(session_id)
        if state is None or not state.is_active:
            return OrchestrationResult(success=False, response="Session not found or inactive")
        with self._session_lock(session_id):
            state.touch()
            return self._generate(state)

    def _generate(self, state: OrchestrationState) -> OrchestrationResult:
        kind = self._entity_kind(state)
        collected = state.collected_values()

        if state.mode != "edit":
            readiness = self.phase_engine.can_generate(kind, list(collected))
            if not readiness.can_generate:
                return OrchestrationResult(
                    success=False,
                    response=self._text(state, "not_ready", fields=", ".join(readiness.missing_fields)),
                    errors=readiness.missing_fields,
                )

        state.phase = "generating"
        entity = self.synthesize_entity(state)
        context = ValidationContext(universe=state.selected_universe, collected_data=collected)
        validation = self.validator.validate_complete(entity, kind, context)

        if not validation.valid and state.config.auto_fix_validation_errors:
            fixed = self.validator.auto_fix(entity, validation.schema_result.errors, kind)
            if fixed.applied_fixes:
                entity = fixed.fixed_entity
                validation = self.validator.validate_complete(entity, kind, context)

        state.generated_entity = entity
        state.validation_errors = self._all_errors(validation)
        state.validation_warnings = list(validation.schema_result.warnings) + list(validation.cross_references.warnings)
        state.phase = "reviewing"

        self._emit("entity_generated", state.session_id, {"kind": kind, "valid": validation.valid})
        if not validation.valid:
            self._emit(
                "validation_error", state.session_id, {"errors": [e.code for e in state.validation_errors]}
            )

        language = self._language(state)
        messages = [
            (e.message_es or e.message) if language == "es" else e.message for e in state.validation_errors
        ]
        messages += [
            issue.message_es if language == "es" else issue.message
            for issue in validation.consistency.issues
            if issue.severity == "error"
        ]
        if not validation.size.within_limit:
            messages += validation.size.recommendations

        if validation.valid:
            response = self._text(state, "entity_ready")
        else:
            response = self._text(state, "entity_invalid", errors="; ".join(messages))
        return OrchestrationResult(
            success=validation.valid,
            response=response,
            generated_entity=copy.deepcopy(entity),
            state_updates={"phase": "reviewing", "valid": validation.valid},
            requires_confirmation=validation.valid,
            confirmation_type="save" if validation.valid else None,
            suggested_actions=[SuggestedAction(label=self._text(state, "save"), action="confirm")]
            if validation.valid
            else [],
            errors=messages,
        )

    @staticmethod
    def _all_errors(validation: CompleteValidation):
        return list(validation.schema_result.errors) + list(validation.cross_references.errors)

    def synthesize_entity(self, state: OrchestrationState) -> Dict[str, Any]:
        """Build the entity document from what the session has collected."""
        kind = self._entity_kind(state)
        collected = copy.deepcopy(state.collected_values())
        if state.mode == "edit":
            return {**(state.generated_entity or {}), **collected}

        entity: Dict[str, Any] = {}
        for field in get_schema(kind).fields:
            if field.default_value is not None:
                entity[field.name] = copy.deepcopy(field.default_value)
        entity.update(collected)
        for name, value in GENERATED_DEFAULTS.get(kind, {}).items():
            entity.setdefault(name, copy.deepcopy(value))

        if kind == "universe":
            if "statDefinitions" not in entity:
                entity["statDefinitions"] = self.build_stat_definitions(collected.get("statNames"))
            ranks = collected.get("rankSystem")
            if isinstance(ranks, dict) and ranks.get("levels"):
                levels = list(ranks["levels"])
                entity["awakeningSystem"] = {
                    "enabled": bool(entity.get("awakeningSystemEnabled", True)),
                    "levels": levels,
                    "thresholds": [i * 10 for i in range(len(levels))],
                }
        else:
            universe = state.selected_universe or {}
            if universe.get("id"):
                entity["universeId"] = universe["id"]
            if "stats" not in entity:
                definitions = universe.get("statDefinitions") or {}
                entity["stats"] = {key: d.get("minValue", 0) for key, d in definitions.items()}
        return entity

    # =========================================================================
    # EDITS
    # =========================================================================

    def apply_quick_edit(self, session_id: str, edit_request: str) -> OrchestrationResult:
        state = self.get_session(session_id)
        if state is None or not state.is_active:
            return OrchestrationResult(success=False, response="Session not found or inactive")
        with self._session_lock(session_id):
            state.touch()
            if not state.generated_entity:
                return OrchestrationResult(success=False, response=self._text(state, "no_entity_to_edit"))
            return self._quick_edit(state, edit_request)

    def _quick_edit(self, state: OrchestrationState, edit_request: str) -> OrchestrationResult:
        editor = self._editors[state.session_id]
        request = ChangeDetectionRequest(
            user_message=edit_request,
            current_entity=state.generated_entity,
            entity_type=self._entity_kind(state),
            context={"language": self._language(state)},
        )
        detection = editor.detect_changes(request)
        if not detection.changes:
            return OrchestrationResult(success=False, response=self._text(state, "no_changes_detected"))

        state.generated_entity = editor.apply_changes(
            state.generated_entity, detection.changes, source="user", user_message=edit_request
        )
        state.phase = "adjusting"
        for change in detection.changes:
            if "." not in change.path:
                state.extracted_data[change.path] = ExtractedField(
                    field_name=change.path, value=change.new_value, confidence=change.confidence, source="explicit"
                )

        changed = [c.path for c in detection.changes]
        response = self._text(state, "changes_applied", count=len(changed))
        if detection.warnings:
            response = f"{response} {' '.join(detection.warnings)}"
        logger.info(f"Session {state.session_id}: applied {changed}")
        return OrchestrationResult(
            success=True,
            response=response,
            suggested_actions=[
                SuggestedAction(label=self._text(state, "undo"), action="undo"),
                SuggestedAction(label=self._text(state, "save"), action="confirm"),
            ],
            state_updates={"affected_fields": detection.affected_fields, "warnings": detection.warnings},
            generated_entity=copy.deepcopy(state.generated_entity),
            requires_confirmation=True,
            confirmation_type="save",
            changed_fields=changed,
        )

    def undo(self, session_id: str) -> OrchestrationResult:
        state = self.get_session(session_id)
        if state is None or not state.is_active:
            return OrchestrationResult(success=False, response="Session not found or inactive")
        with self._session_lock(session_id):
            state.touch()
            return self._undo(state)

    def _undo(self, state: OrchestrationState) -> OrchestrationResult:
        editor = self._editors.get(state.session_id)
        if not state.generated_entity or editor is None or not editor.can_undo():
            return OrchestrationResult(success=False, response=self._text(state, "nothing_to_undo"))
        state.generated_entity = editor.undo(state.generated_entity)
        return OrchestrationResult(
            success=True,
            response=self._text(state, "undone"),
            suggested_actions=[SuggestedAction(label=self._text(state, "redo"), action="redo")],
            generated_entity=copy.deepcopy(state.generated_entity),
        )

    def redo(self, session_id: str) -> OrchestrationResult:
        state = self.get_session(session_id)
        if state is None or not state.is_active:
            return OrchestrationResult(success=False, response="Session not found or inactive")
        with self._session_lock(session_id):
            state.touch()
            editor = self._editors.get(session_id)
            if not state.generated_entity or editor is None or not editor.can_redo():
                return OrchestrationResult(success=False, response=self._text(state, "nothing_to_redo"))
            state.generated_entity = editor.redo(state.generated_entity)
            return OrchestrationResult(
                success=True,
                response=self._text(state, "redone"),
                suggested_actions=[SuggestedAction(label=self._text(state, "undo"), action="undo")],
                generated_entity=copy.deepcopy(state.generated_entity),
            )

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_session_summary(self, session_id: str) -> Optional[SessionSummary]:
        state = self.get_session(session_id)
        if state is None:
            return None
        collected = state.collected_values()
        entity_name = (state.generated_entity or {}).get("name") or collected.get("name")
        return SessionSummary(
            session_id=state.session_id,
            mode=state.mode,
            phase=state.phase,
            progress_percent=self._progress(state),
            entity_name=entity_name,
            fields_collected=len(collected),
            error_count=len(state.validation_errors),
            last_activity=state.last_activity,
        )

    def format_session_info(self, state: OrchestrationState, language: Optional[str] = None) -> str:
        language = language if language in TEXTS else self._language(state)
        return TEXTS[language]["session_info"].format(
            mode=state.mode, phase=state.creation_phase_id, progress=self._progress(state)
        )

    def set_selected_universe(self, session_id: str, universe: Dict[str, Any]) -> bool:
        state = self.get_session(session_id)
        if state is None or not state.is_active:
            return False
        with self._session_lock(session_id):
            state.selected_universe = copy.deepcopy(universe)
            if universe.get("id"):
                state.extracted_data["universeId"] = ExtractedField(
                    field_name="universeId", value=universe["id"], confidence=1.0, source="context"
                )
            state.touch()
        return True

    def build_prompt_context(self, session_id: str) -> Optional[PromptContext]:
        state = self.get_session(session_id)
        if state is None:
            return None
        return self._prompt_context(state, self._language(state))

    def get_events(self, session_id: Optional[str] = None, event_type: Optional[str] = None) -> List[OrchestrationEvent]:
        with self._events_lock:
            events = list(self._events)
        if session_id is not None:
            events = [e for e in events if e.session_id == session_id]
        if event_type is not None:
            events = [e for e in events if e.type == event_type]
        return events

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _emit(self, event_type: str, session_id: str, data: Optional[Dict[str, Any]] = None):
        event = OrchestrationEvent(type=event_type, session_id=session_id, data=data or {})
        with self._events_lock:
            self._events.append(event)
            if len(self._events) > MAX_EVENTS:
                del self._events[: len(self._events) - MAX_EVENTS]

    @staticmethod
    def _entity_kind(state: OrchestrationState) -> str:
        if state.mode in ("universe", "character"):
            return state.mode
        entity = state.generated_entity or {}
        return "character" if "universeId" in entity else "universe"

    def _language(self, state: OrchestrationState) -> str:
        if state.last_intent is not None:
            return state.last_intent.language
        return self.classifier.config.default_language

    def _text(self, state: OrchestrationState, key: str, **kwargs) -> str:
        template = TEXTS.get(self._language(state), TEXTS["es"])[key]
        return template.format(**kwargs) if kwargs else template

    def _phase_values(self, state: OrchestrationState) -> Dict[str, Any]:
        """Collected values plus the defaults generation would supply."""
        values = {} if state.mode == "edit" else copy.deepcopy(GENERATED_DEFAULTS.get(self._entity_kind(state), {}))
        values.update(state.collected_values())
        return values

    def _progress(self, state: OrchestrationState) -> int:
        if state.mode == "edit":
            return 100 if state.generated_entity else 0
        return self.phase_engine.calculate_completeness(state.mode, list(state.extracted_data))

    def _field_label(self, kind: str, name: str, state: OrchestrationState) -> str:
        field = get_field(kind, name)
        if field is None:
            return name
        return field.label.get(self._language(state), name)

    def _question_for(self, state: OrchestrationState, missing: List[str]) -> str:
        if state.pending_questions:
            return state.pending_questions[0]
        if missing:
            kind = self._entity_kind(state)
            field_def = next((f for f in get_extractable_fields(kind) if f.key == missing[0]), None)
            if field_def is not None:
                return self.extractor.question_for_field(field_def, self._language(state))
            return self._field_label(kind, missing[0], state)
        guidance = PHASE_GUIDANCE.get(state.creation_phase_id, {})
        return guidance.get(self._language(state), "")

    def _phase_actions(self, state: OrchestrationState, phase_id: str) -> List[SuggestedAction]:
        """Quick replies for a phase: the phase engine's chips first, then the static ones."""
        labels: List[str] = []
        if state.mode in ("universe", "character"):
            labels = self.phase_engine.get_smart_suggestions(state.mode, phase_id, list(state.extracted_data))
        for label in PHASE_ACTIONS.get(phase_id, []):
            if label not in labels:
                labels.append(label)
        return [SuggestedAction(label=label, action="reply", value=label) for label in labels[:MAX_SUGGESTIONS]]

    def _review_jump(self, state: OrchestrationState, order: List[str], index: int) -> Optional[PhaseSuggestion]:
        """The phase engine's suggestion to go straight to review, if nothing on the way is missing."""
        if state.mode not in ("universe", "character") or "review" not in order:
            return None
        review_index = order.index("review")
        if review_index <= index + 1:
            return None

        engine_ids = [p.id for p in self.phase_engine.get_phases(state.mode)]
        current = order[index]
        engine_index = engine_ids.index(current) if current in engine_ids else 0
        suggestion = self.phase_engine.suggest_next_phase(
            state.mode, engine_index, list(state.extracted_data), self._language(state)
        )
        if suggestion is None or suggestion.phase_id != "review":
            return None

        schema, values = get_schema(state.mode), self._phase_values(state)
        if any(get_missing_required_fields(schema, values, p) for p in order[index + 1:review_index + 1]):
            return None
        return suggestion

    def _prompt_context(self, state: OrchestrationState, language: str) -> PromptContext:
        return PromptContext(
            mode=state.mode,
            phase=state.creation_phase_id,
            language=language,
            current_entity=copy.deepcopy(state.generated_entity),
            collected_data=state.collected_values(),
            extracted_fields=dict(state.extracted_data),
            universe=copy.deepcopy(state.selected_universe),
            session_id=state.session_id,
        )
