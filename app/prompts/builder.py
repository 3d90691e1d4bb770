"""
Prompt Builder
==============
Turns a template id + PromptContext into a BuiltPrompt that fits a small
context window (default 3000 tokens).

The window is split into fixed shares (system 15%, schema 20%, examples 15%,
collected data 20%, history 15%, user 15%). JSON payloads shrink in three
steps until they fit their share: pretty -> compact -> essential keys only.
"""

import json
import logging
import math
import re
from typing import Any, Dict, List, Optional

from app.core.exceptions import TemplateNotFound
from app.models.form_schema import EntityFormSchema
from app.models.prompt import (
    TOKEN_BUDGET_SHARES,
    BuiltPrompt,
    ConversationMessage,
    FewShotExample,
    PromptBuilderConfig,
    PromptContext,
    PromptTemplate,
    TokenBudget,
)
from app.prompts.examples import FEW_SHOT_EXAMPLES
from app.prompts.templates import TEMPLATES
from app.schemas.registry import SCHEMAS, get_extraction_hints, get_schema

logger = logging.getLogger(__name__)

ESSENTIAL_KEYS = ["id", "name", "description", "theme", "type"]
KEY_COLLECTED_FIELDS = ["name", "description", "theme"]

_EACH_BLOCK = re.compile(r"\{\{#each (\w+)\}\}(.*?)\{\{/each\}\}", re.S)
_IF_BLOCK = re.compile(r"\{\{#if (\w+)\}\}(.*?)\{\{/if\}\}", re.S)
_VARIABLE = re.compile(r"\{\{(\w+)\}\}")
_THIS_PROP = re.compile(r"\{\{this\.(\w+)\}\}")


def _item_value(item: Any, key: str) -> Any:
    if isinstance(item, dict):
        return item.get(key)
    return getattr(item, key, None)


def render_template(template: str, variables: Dict[str, Any]) -> str:
    """Expand each-blocks, then if-blocks, then simple variables."""

    def expand_each(match):
        items = variables.get(match.group(1))
        if not isinstance(items, list):
            return ""
        body = match.group(2)
        rendered = []
        for item in items:
            text = _THIS_PROP.sub(lambda m: str(_item_value(item, m.group(1)) or ""), body)
            text = text.replace("{{this}}", str(item))
            rendered.append(text.strip("\n"))
        return "\n".join(rendered)

    def expand_if(match):
        return match.group(2) if variables.get(match.group(1)) else ""

    def expand_var(match):
        value = variables.get(match.group(1))
        return "" if value is None else str(value)

    result = _EACH_BLOCK.sub(expand_each, template)
    result = _IF_BLOCK.sub(expand_if, result)
    result = _VARIABLE.sub(expand_var, result)
    # Collapse blank runs left by dropped blocks
    result = re.sub(r"\n{3,}", "\n\n", result)
    return result.strip()


class PromptBuilder:
    def __init__(self, config: Optional[PromptBuilderConfig] = None):
        self.config = config or PromptBuilderConfig()
        self.templates: Dict[str, PromptTemplate] = dict(TEMPLATES)
        self.examples: List[FewShotExample] = list(FEW_SHOT_EXAMPLES)

    def configure(self, **overrides):
        self.config = self.config.model_copy(update=overrides)

    def available_templates(self) -> List[str]:
        return list(self.templates.keys())

    def get_template(self, template_id: str) -> PromptTemplate:
        template = self.templates.get(template_id)
        if template is None:
            logger.error(f"Unknown prompt template: {template_id}")
            raise TemplateNotFound(template_id)
        return template

    # =========================================================================
    # BUILD
    # =========================================================================

    def build(
        self, template_id: str, context: PromptContext, extra_variables: Optional[Dict[str, Any]] = None
    ) -> BuiltPrompt:
        template = self.get_template(template_id)
        budget = self.token_budget()

        variables = self._context_variables(context, budget)
        variables.update({k: v for k, v in (extra_variables or {}).items() if v is not None})
        # Context identity always wins over extras
        variables.update(entityType=context.mode, phase=context.phase, language=context.language)

        missing = [v for v in template.required_variables if variables.get(v) in (None, "", [])]
        if missing:
            logger.debug(f"Template '{template_id}' built without: {missing}")

        system_prompt = render_template(template.system_template, variables)
        user_prompt = render_template(template.user_template, variables)
        return BuiltPrompt(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            expected_format=template.expected_format,
            max_tokens=template.max_tokens,
            temperature=template.temperature,
            estimated_input_tokens=self.estimate_tokens(system_prompt + user_prompt),
        )

    def token_budget(self, total: Optional[int] = None) -> TokenBudget:
        total = total if total is not None else self.config.max_context_tokens
        return TokenBudget(**{section: int(total * share) for section, share in TOKEN_BUDGET_SHARES.items()})

    def _context_variables(self, context: PromptContext, budget: TokenBudget) -> Dict[str, Any]:
        variables: Dict[str, Any] = {
            "collectedDataJson": (
                self.compress_data(context.collected_data, budget.collected_data) if context.collected_data else ""
            ),
            "conversationText": self.format_conversation(
                context.conversation_history, self.config.max_history_messages
            ),
        }
        if context.current_entity:
            variables["currentEntityJson"] = self.compress_data(context.current_entity, budget.collected_data)
        if context.universe:
            variables["universeContext"] = self.compress_data(context.universe, budget.schema_text // 2)
        return variables

    # =========================================================================
    # CONVENIENCE BUILDERS
    # =========================================================================

    def _schema_for(self, context: PromptContext) -> EntityFormSchema:
        if context.entity_schema is not None:
            return context.entity_schema
        return get_schema(context.mode if context.mode in SCHEMAS else "universe")

    def build_field_extraction_prompt(
        self, user_input: str, target_fields: List[str], context: PromptContext
    ) -> BuiltPrompt:
        schema = self._schema_for(context)
        lines = []
        for field in schema.fields:
            if field.name not in target_fields:
                continue
            label = field.label.get(context.language, field.name)
            hints = get_extraction_hints(field, context.language).replace("\n", "; ")
            lines.append(f"- {field.name} ({field.type.value}): {label} [{hints}]")

        return self.build(
            "field_extraction",
            context,
            {
                "userMessage": user_input,
                "targetFieldsText": "\n".join(lines),
                "collectedDataJson": self.compress_data(context.collected_data, 500) if context.collected_data else "",
            },
        )

    def build_json_generation_prompt(self, collected_data: Dict[str, Any], context: PromptContext) -> BuiltPrompt:
        schema = self._schema_for(context)
        return self.build(
            "json_generation",
            context,
            {
                "collectedDataJson": self.compress_data(collected_data, self.token_budget().collected_data),
                "schemaText": self.format_schema_for_prompt(schema, context.language),
                "examples": self.select_examples(["create", context.mode], context.language),
                "universeContext": self.compress_data(context.universe, 500) if context.universe else None,
            },
        )

    def build_clarification_prompt(self, missing_fields: List[str], context: PromptContext) -> BuiltPrompt:
        return self.build(
            "clarification_question",
            context,
            {
                "missingFields": ", ".join(missing_fields),
                "collectedDataJson": self.compress_data(context.collected_data, 300),
                "conversationText": self.format_conversation(context.conversation_history, 3),
            },
        )

    def build_edit_detection_prompt(
        self, user_message: str, current_entity: Dict[str, Any], context: PromptContext
    ) -> BuiltPrompt:
        return self.build(
            "edit_detection",
            context,
            {"userMessage": user_message, "currentEntityJson": self.compress_data(current_entity, 800)},
        )

    def build_action_analysis_prompt(
        self,
        action_text: str,
        character: Dict[str, Any],
        rules: List[Dict[str, Any]],
        context: PromptContext,
    ) -> BuiltPrompt:
        stats = character.get("stats") or {}
        level = (character.get("progression") or {}).get("level", character.get("level"))
        rule_rows = [
            {
                "description": rule.get("description", ""),
                "keywordsText": ", ".join(rule.get("keywords") or []),
                "statsText": ", ".join(rule.get("affectedStats") or []),
                "maxChangePerAction": rule.get("maxChangePerAction", 1),
            }
            for rule in rules
        ]
        return self.build(
            "action_analysis",
            context,
            {
                "progressionRules": rule_rows,
                "actionText": action_text,
                "characterName": character.get("name"),
                "characterLevel": level,
                "statsText": ", ".join(f"{k}: {v}" for k, v in stats.items()),
            },
        )

    # =========================================================================
    # COMPRESSION / FORMATTING
    # =========================================================================

    def estimate_tokens(self, text: str) -> int:
        return math.ceil(len(text) / self.config.chars_per_token)

    def compress_data(self, data: Dict[str, Any], max_tokens: int) -> str:
        pretty = json.dumps(data, indent=2, ensure_ascii=False, default=str)
        if not self.config.compress_long_content or self.estimate_tokens(pretty) <= max_tokens:
            return pretty

        compact = json.dumps(data, ensure_ascii=False, separators=(",", ":"), default=str)
        if self.estimate_tokens(compact) <= max_tokens:
            return compact

        essential = {k: v for k, v in data.items() if k in ESSENTIAL_KEYS or not isinstance(v, (dict, list))}
        return json.dumps(essential, ensure_ascii=False, separators=(",", ":"), default=str)

    def compress_context(self, context: PromptContext, max_tokens: int) -> PromptContext:
        """Copy of `context` trimmed to the last N messages and, if data is heavy, key fields only."""
        update: Dict[str, Any] = {}
        history = context.conversation_history
        if len(history) > self.config.max_history_messages:
            update["conversation_history"] = history[-self.config.max_history_messages:]

        data_tokens = self.estimate_tokens(json.dumps(context.collected_data, ensure_ascii=False, default=str))
        if data_tokens > max_tokens * 0.3:
            update["collected_data"] = {
                k: v for k, v in context.collected_data.items() if k in KEY_COLLECTED_FIELDS
            }
        return context.model_copy(update=update)

    @staticmethod
    def format_conversation(history: List[ConversationMessage], max_messages: int) -> str:
        if not history or max_messages <= 0:
            return ""
        return "\n".join(f"{m.role}: {m.content}" for m in history[-max_messages:])

    @staticmethod
    def format_schema_for_prompt(schema: EntityFormSchema, language: str = "es") -> str:
        lines = []
        for field in schema.fields:
            label = field.label.get(language) or field.label.get("en", field.name)
            required = " (required)" if field.validation.required else ""
            lines.append(f"- {field.name}: {field.type.value}{required} - {label}")
        return "\n".join(lines)

    def select_examples(self, tags: List[str], language: str = "es") -> List[FewShotExample]:
        matching = [ex for ex in self.examples if ex.language == language and any(t in ex.tags for t in tags)]
        return matching[: self.config.max_examples]
