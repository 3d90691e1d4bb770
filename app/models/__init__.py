from app.models.form_schema import (
    EntityFormSchema,
    FormFieldSchema,
    FieldType,
    ErrorCode,
    ValidationContext,
    ValidationError,
    ValidationWarning,
    ValidationResult,
    SizeValidationResult,
)
from app.models.intent import (
    ExtractedField,
    DetectedIntent,
    ContradictionResult,
    BulkExtraction,
)
from app.models.edit import (
    FieldChange,
    EntityChangeset,
    EditHistory,
    EntityDiff,
    ChangeDetectionRequest,
    ChangeDetectionResult,
)
from app.models.orchestration import (
    OrchestratorConfig,
    OrchestrationState,
    OrchestrationResult,
    SessionSummary,
)
from app.models.prompt import (
    BuiltPrompt,
    PromptContext,
    PromptTemplate,
)
from app.models.progression import (
    ActionAnalysis,
    AnalysisOutcome,
    ProgressionRule,
    StatSuggestion,
)

__all__ = [
    "EntityFormSchema",
    "FormFieldSchema",
    "FieldType",
    "ErrorCode",
    "ValidationContext",
    "ValidationError",
    "ValidationWarning",
    "ValidationResult",
    "SizeValidationResult",
    "ExtractedField",
    "DetectedIntent",
    "ContradictionResult",
    "BulkExtraction",
    "FieldChange",
    "EntityChangeset",
    "EditHistory",
    "EntityDiff",
    "ChangeDetectionRequest",
    "ChangeDetectionResult",
    "OrchestratorConfig",
    "OrchestrationState",
    "OrchestrationResult",
    "SessionSummary",
    "BuiltPrompt",
    "PromptContext",
    "PromptTemplate",
    "ActionAnalysis",
    "AnalysisOutcome",
    "ProgressionRule",
    "StatSuggestion",
]
