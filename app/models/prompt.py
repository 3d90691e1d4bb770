"""
Prompt Models
=============
Inputs and outputs of the prompt builder.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from app.models.form_schema import EntityFormSchema, Language
from app.models.intent import ExtractedField

PromptTemplateId = Literal[
    "field_extraction",
    "json_generation",
    "validation_correction",
    "clarification_question",
    "edit_detection",
    "contradiction_check",
    "phase_guidance",
    "entity_summary",
    "action_analysis",
]
ResponseFormat = Literal["json", "text", "structured", "boolean"]


class ConversationMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class FewShotExample(BaseModel):
    input: str
    output: str
    explanation: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    language: Language = "es"


class PromptTemplate(BaseModel):
    id: PromptTemplateId
    name: str
    system_template: str
    user_template: str
    expected_format: ResponseFormat
    max_tokens: int
    temperature: float
    required_variables: List[str] = Field(default_factory=list)
    optional_variables: List[str] = Field(default_factory=list)


class PromptContext(BaseModel):
    mode: Literal["universe", "character", "edit", "action"]
    phase: str = ""
    language: Language = "es"
    current_entity: Optional[Dict[str, Any]] = None
    collected_data: Dict[str, Any] = Field(default_factory=dict)
    extracted_fields: Dict[str, ExtractedField] = Field(default_factory=dict)
    conversation_history: List[ConversationMessage] = Field(default_factory=list)
    entity_schema: Optional[EntityFormSchema] = None
    universe: Optional[Dict[str, Any]] = Field(None, description="Parent universe when creating a character.")
    session_id: Optional[str] = None


class BuiltPrompt(BaseModel):
    system_prompt: str
    user_prompt: str
    expected_format: ResponseFormat
    max_tokens: int
    temperature: float
    estimated_input_tokens: int


class PromptBuilderConfig(BaseModel):
    max_context_tokens: int = 3000
    max_history_messages: int = 5
    max_examples: int = 3
    compress_long_content: bool = True
    chars_per_token: int = 4


class TokenBudget(BaseModel):
    system_prompt: int
    schema_text: int
    examples: int
    collected_data: int
    conversation_history: int
    user_prompt: int


TOKEN_BUDGET_SHARES = {
    "system_prompt": 0.15,
    "schema_text": 0.20,
    "examples": 0.15,
    "collected_data": 0.20,
    "conversation_history": 0.15,
    "user_prompt": 0.15,
}
