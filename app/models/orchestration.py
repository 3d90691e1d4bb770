"""
Orchestration State
===================
Session state and the result/summary shapes returned by the orchestrator.
"""

import random
import string
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from app.models.edit import EditHistory
from app.models.form_schema import ValidationError, ValidationWarning
from app.models.intent import DetectedIntent, ExtractedField

OrchestrationMode = Literal["universe", "character", "edit"]
OrchestrationPhase = Literal[
    "gathering", "generating", "reviewing", "adjusting", "confirmed", "error"
]
ConfirmationType = Literal["save", "overwrite", "delete", "proceed"]
EventType = Literal[
    "session_start",
    "message_processed",
    "phase_advance",
    "entity_generated",
    "validation_error",
    "session_end",
]

INITIAL_CREATION_PHASE = {
    "universe": "concept",
    "character": "universe_selection",
    "edit": "edit",
}


class OrchestratorConfig(BaseModel):
    confidence_threshold: float = Field(0.7, ge=0.0, le=1.0)
    max_clarification_rounds: int = 3
    auto_advance_on_complete: bool = True
    enable_contradiction_check: bool = True
    max_context_tokens: int = 3000
    session_timeout_ms: int = 30 * 60 * 1000
    use_llm_fallback: bool = Field(
        True, description="Ask the LLM connector (when one is configured) before rule-based extraction."
    )
    auto_fix_validation_errors: bool = True


class SuggestedAction(BaseModel):
    label: str
    action: str
    value: Optional[str] = None


class OrchestrationResult(BaseModel):
    success: bool
    response: str
    suggested_actions: List[SuggestedAction] = Field(default_factory=list)
    state_updates: Dict[str, Any] = Field(default_factory=dict)
    generated_entity: Optional[Dict[str, Any]] = None
    requires_confirmation: bool = False
    confirmation_type: Optional[ConfirmationType] = None
    changed_fields: List[str] = Field(default_factory=list)
    next_phase: Optional[str] = None
    errors: List[str] = Field(default_factory=list)


class SessionSummary(BaseModel):
    session_id: str
    mode: OrchestrationMode
    phase: OrchestrationPhase
    progress_percent: int
    entity_name: Optional[str] = None
    fields_collected: int = 0
    error_count: int = 0
    last_activity: int = 0


def _now_ms() -> int:
    return int(time.time() * 1000)


def generate_session_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"orch_{_now_ms()}_{suffix}"


@dataclass
class OrchestrationEvent:
    type: EventType
    session_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: int = field(default_factory=_now_ms)


@dataclass
class OrchestrationState:
    session_id: str
    mode: OrchestrationMode
    config: OrchestratorConfig
    phase: OrchestrationPhase = "gathering"
    creation_phase_id: str = ""
    extracted_data: Dict[str, ExtractedField] = field(default_factory=dict)
    pending_questions: List[str] = field(default_factory=list)
    validation_errors: List[ValidationError] = field(default_factory=list)
    validation_warnings: List[ValidationWarning] = field(default_factory=list)
    edit_history: EditHistory = field(default_factory=EditHistory)
    last_intent: Optional[DetectedIntent] = None
    generated_entity: Optional[Dict[str, Any]] = None
    selected_universe: Optional[Dict[str, Any]] = None
    started_at: int = field(default_factory=_now_ms)
    last_activity: int = field(default_factory=_now_ms)
    clarification_rounds: int = 0
    is_active: bool = True

    def __post_init__(self):
        if not self.creation_phase_id:
            self.creation_phase_id = INITIAL_CREATION_PHASE[self.mode]

    def touch(self):
        self.last_activity = _now_ms()

    def collected_values(self) -> Dict[str, Any]:
        return {name: f.value for name, f in self.extracted_data.items()}

    def is_expired(self, now_ms: Optional[int] = None) -> bool:
        now_ms = now_ms if now_ms is not None else _now_ms()
        return now_ms - self.last_activity > self.config.session_timeout_ms
