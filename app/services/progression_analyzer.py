"""
Progression Analyzer
====================
Suggests stat increases for something a character did, driven by the
universe's progression rules (keyword -> affected stats, capped per action).

Two providers:
- "llm": the configured connector reads the action with the rules in the
  prompt; its suggestions are filtered to ruled stats and capped.
- "rules-only": plain keyword matching. Always available and used whenever
  the LLM is missing or fails.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from app.core.exceptions import ExternalProviderFailure
from app.llm.llm_connector import LLMConnector
from app.models.progression import ActionAnalysis, AnalysisOutcome, ProgressionRule, StatSuggestion
from app.models.prompt import PromptContext
from app.prompts.builder import PromptBuilder
from app.utils.text import normalize

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 4
RULES_CONFIDENCE = 0.6

RuleLike = Union[ProgressionRule, Dict[str, Any]]


def _as_rules(rules: List[RuleLike]) -> List[ProgressionRule]:
    return [r if isinstance(r, ProgressionRule) else ProgressionRule.model_validate(r) for r in rules or []]


class ProgressionAnalyzer:
    def __init__(self, llm_connector: Optional[LLMConnector] = None, prompt_builder: Optional[PromptBuilder] = None):
        self.llm_connector = llm_connector
        self.prompt_builder = prompt_builder or PromptBuilder()

    def available_provider(self) -> str:
        return "llm" if self.llm_connector is not None else "rules-only"

    def analyze_with_rules_only(self, action: str, rules: List[RuleLike], language: str = "es") -> ActionAnalysis:
        text = normalize(action or "")
        changes: Dict[str, StatSuggestion] = {}
        matched: List[str] = []

        for rule in _as_rules(rules):
            keyword = next((k for k in rule.keywords if k and normalize(k) in text), None)
            if keyword is None:
                continue
            matched.append(rule.description)

            for index, stat in enumerate(rule.affectedStats):
                existing = changes.get(stat)
                if existing is None:
                    # Earlier stats in a rule grow more
                    amount = max(1, rule.maxChangePerAction - index)
                    reason = (
                        f'Keyword detectada: "{keyword}"' if language == "es" else f'Keyword detected: "{keyword}"'
                    )
                    changes[stat] = StatSuggestion(
                        stat=stat, change=min(amount, rule.maxChangePerAction), reason=reason
                    )
                else:
                    existing.change = min(existing.change + 1, rule.maxChangePerAction)

        top = sorted(changes.values(), key=lambda c: c.change, reverse=True)[:MAX_SUGGESTIONS]
        if matched:
            prefix = "Análisis basado en reglas" if language == "es" else "Rule-based analysis"
            analysis = f"{prefix}: {', '.join(matched)}"
        elif language == "es":
            analysis = "No se encontraron coincidencias con las reglas de progresión"
        else:
            analysis = "No progression rule matched this action"

        return ActionAnalysis(
            analysis=analysis, stat_changes=top, confidence=RULES_CONFIDENCE if matched else 0.0
        )

    def analyze_action(
        self,
        action: str,
        character: Dict[str, Any],
        rules: List[RuleLike],
        force_provider: Optional[str] = None,
        language: str = "es",
    ) -> AnalysisOutcome:
        """LLM first when available, rule-based otherwise or on any provider failure."""
        parsed_rules = _as_rules(rules)
        provider = force_provider or self.available_provider()

        if provider == "llm" and self.llm_connector is not None:
            try:
                result = self._analyze_with_llm(action, character, parsed_rules, language)
                return AnalysisOutcome(result=result, provider="llm")
            except ExternalProviderFailure as e:
                logger.warning(f"⚠️ LLM action analysis failed, falling back to rules-only: {e}")
            except Exception as e:
                logger.warning(
                    f"⚠️ LLM connector raised {type(e).__name__}, falling back to rules-only: {e}", exc_info=True
                )

        return AnalysisOutcome(
            result=self.analyze_with_rules_only(action, parsed_rules, language), provider="rules-only"
        )

    def _analyze_with_llm(
        self, action: str, character: Dict[str, Any], rules: List[ProgressionRule], language: str
    ) -> ActionAnalysis:
        context = PromptContext(mode="action", language=language if language in ("es", "en") else "es")
        prompt = self.prompt_builder.build_action_analysis_prompt(
            action, character, [r.model_dump() for r in rules], context
        )
        data = self.llm_connector.complete_json(prompt)

        raw_changes = data.get("stat_changes")
        if not data.get("analysis") or not isinstance(raw_changes, list):
            raise ExternalProviderFailure(self.llm_connector.provider_name, ValueError("invalid analysis structure"))

        validated = []
        for raw in raw_changes:
            if not isinstance(raw, dict):
                continue
            rule = next((r for r in rules if raw.get("stat") in r.affectedStats), None)
            if rule is None:
                continue
            try:
                change = int(raw.get("change", 1))
            except (TypeError, ValueError):
                change = 1
            validated.append(
                StatSuggestion(
                    stat=raw["stat"],
                    change=min(max(1, change), rule.maxChangePerAction),
                    reason=raw.get("reason") or ("Sin razón especificada" if language == "es" else "No reason given"),
                )
            )

        try:
            confidence = float(data.get("confidence") or 0.5)
        except (TypeError, ValueError):
            confidence = 0.5
        return ActionAnalysis(
            analysis=str(data["analysis"]),
            stat_changes=validated,
            confidence=min(1.0, max(0.0, confidence)),
        )
