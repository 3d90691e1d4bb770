from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from app.models.form_schema import Language

IntentAction = Literal[
    "create", "edit", "query", "delete", "confirm", "cancel", "navigate", "unknown"
]
IntentTarget = Literal[
    "universe", "character", "stat", "race", "skill", "rule", "awakening", "unknown"
]
FieldSource = Literal["explicit", "inferred", "default", "context"]


class ExtractedField(BaseModel):
    field_name: str
    value: Any
    confidence: float = Field(..., ge=0.0, le=1.0)
    source: FieldSource
    source_text: Optional[str] = None


class DetectedIntent(BaseModel):
    action: IntentAction
    target: IntentTarget
    target_id: Optional[str] = None
    extracted_fields: List[ExtractedField] = Field(default_factory=list)
    language: Language = "es"
    confidence: float = 0.0
    needs_clarification: bool = False
    clarification_questions: List[str] = Field(default_factory=list)
    raw_input: str = ""
    matched_keywords: List[str] = Field(default_factory=list)

    def get_field(self, name: str) -> Optional[ExtractedField]:
        for f in self.extracted_fields:
            if f.field_name == name:
                return f
        return None


class IntentDetectorConfig(BaseModel):
    default_confidence_threshold: float = 0.7
    min_field_confidence: float = 0.5
    auto_detect_language: bool = True
    default_language: Language = "es"


class ContradictingField(BaseModel):
    field: str
    existing_value: Any
    new_value: Any
    severity: Literal["high", "medium", "low"] = "medium"


class ContradictionResult(BaseModel):
    has_contradictions: bool
    contradicting_fields: List[ContradictingField] = Field(default_factory=list)
    resolution: Literal["ask_user", "use_new", "keep_old"] = "use_new"
    explanation: str = ""


class BulkExtraction(BaseModel):
    """Result of pulling every extractable field out of one message."""
    fields: Dict[str, ExtractedField] = Field(default_factory=dict)
    completeness: int = 0
    missing_required: List[str] = Field(default_factory=list)
    missing_optional: List[str] = Field(default_factory=list)
    suggested_question: Optional[str] = None
