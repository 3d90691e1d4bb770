"""
Form Schema Models
==================
Data-driven description of every entity kind the creation core understands.

A schema is a list of FormFieldSchema entries. Each field knows:
- its storage type (string, number, select...)
- its bilingual label
- its validation rules
- where its options come from (static list or the parent universe)
- which other fields it shows/hides/requires
- how the AI should find it in free text (hints + keywords per language)
"""

from enum import Enum
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

Language = Literal["es", "en"]

# Hard document limit of the persistence backend, and the size we warn at.
DOC_SIZE_LIMIT = 1024 * 1024
RECOMMENDED_DOC_SIZE = 900 * 1024


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    SELECT = "select"
    MULTISELECT = "multiselect"
    COLOR = "color"
    ICON = "icon"
    IMAGE = "image"


class ErrorCode(str, Enum):
    REQUIRED = "REQUIRED"
    MIN_LENGTH = "MIN_LENGTH"
    MAX_LENGTH = "MAX_LENGTH"
    MIN_VALUE = "MIN_VALUE"
    MAX_VALUE = "MAX_VALUE"
    PATTERN = "PATTERN"
    ONE_OF = "ONE_OF"
    CUSTOM = "CUSTOM"
    INVALID_REFERENCE = "INVALID_REFERENCE"


# =============================================================================
# VALIDATION RESULTS
# =============================================================================

class ValidationError(BaseModel):
    field: str
    code: str
    message: str = ""
    message_es: Optional[str] = None
    value: Any = None


class ValidationWarning(BaseModel):
    field: str
    code: str
    message: str = ""
    message_es: Optional[str] = None
    suggestion: Optional[str] = None


class ValidationResult(BaseModel):
    """Outcome of a schema validation. `valid` is False when any error exists."""
    valid: bool = True
    errors: List[ValidationError] = Field(default_factory=list)
    warnings: List[ValidationWarning] = Field(default_factory=list)


class ValidationContext(BaseModel):
    """Everything a validator or option resolver may look at besides the value."""
    universe: Optional[Dict[str, Any]] = Field(
        None, description="Parent universe document (character mode)."
    )
    character: Optional[Dict[str, Any]] = None
    existing_entities: Optional[List[Dict[str, Any]]] = None
    phase: Optional[str] = None
    collected_data: Dict[str, Any] = Field(default_factory=dict)
    language: Language = "es"


class SizeValidationResult(BaseModel):
    size_bytes: int
    within_limit: bool
    limit: int = DOC_SIZE_LIMIT
    recommendations: List[str] = Field(default_factory=list)


# =============================================================================
# FIELD DEFINITION PIECES
# =============================================================================

class FieldValidation(BaseModel):
    required: bool = False
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None
    pattern_message: Optional[Dict[str, str]] = None
    one_of: Optional[List[Any]] = None
    custom: Optional[Callable[[Any, ValidationContext], ValidationResult]] = Field(
        None, description="Extra predicate run after the built-in rules."
    )


class FormFieldOption(BaseModel):
    value: Any
    label: Dict[str, str]
    disabled: bool = False
    icon: Optional[str] = None
    color: Optional[str] = None


class DynamicOptionsConfig(BaseModel):
    source: Literal[
        "parent.races", "parent.stats", "parent.awakeningLevels", "parent.rules", "custom"
    ]
    custom_resolver: Optional[Callable[[ValidationContext], List[FormFieldOption]]] = None
    filter: Optional[Callable[[FormFieldOption, ValidationContext], bool]] = None


DependencyCondition = Literal[
    "equals", "notEquals", "exists", "notExists", "contains", "greaterThan", "lessThan"
]


class FieldDependency(BaseModel):
    field: str = Field(..., description="Field whose value drives the dependency.")
    condition: DependencyCondition
    value: Any = None
    action: Literal["show", "hide", "require", "unrequire", "enable", "disable"]


class FormFieldSchema(BaseModel):
    name: str
    type: FieldType
    label: Dict[str, str]
    description: Optional[Dict[str, str]] = None
    placeholder: Optional[Dict[str, str]] = None
    default_value: Any = None
    validation: FieldValidation = Field(default_factory=FieldValidation)
    options: Optional[List[FormFieldOption]] = None
    dynamic_options: Optional[DynamicOptionsConfig] = None
    depends_on: Optional[List[FieldDependency]] = None
    ai_extraction_hints: List[str] = Field(default_factory=list)
    ai_keywords: Dict[str, List[str]] = Field(default_factory=dict)
    hidden: bool = False
    order: int = 0
    group: Optional[str] = None

    @property
    def required(self) -> bool:
        return self.validation.required


class FieldGroup(BaseModel):
    id: str
    label: Dict[str, str]
    order: int = 0
    collapsible: bool = False


class CrossFieldValidation(BaseModel):
    fields: List[str]
    validate_fn: Callable[[Dict[str, Any], ValidationContext], bool] = Field(
        ..., description="Returns True when the combination of fields is acceptable."
    )
    error_code: str
    message: Dict[str, str]


class PhaseFieldMapping(BaseModel):
    required: List[str] = Field(default_factory=list)
    optional: List[str] = Field(default_factory=list)

    @property
    def all_fields(self) -> List[str]:
        return self.required + self.optional


class EntityFormSchema(BaseModel):
    entity_type: str
    version: str = "1.0.0"
    fields: List[FormFieldSchema]
    groups: List[FieldGroup] = Field(default_factory=list)
    cross_field_validations: List[CrossFieldValidation] = Field(default_factory=list)
    phases: Dict[str, PhaseFieldMapping] = Field(default_factory=dict)

    def get_field(self, name: str) -> Optional[FormFieldSchema]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    @property
    def required_fields(self) -> List[FormFieldSchema]:
        return [f for f in self.fields if f.validation.required]
