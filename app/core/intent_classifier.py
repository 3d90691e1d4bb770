"""
Intent Classifier
=================
Turns a raw user message into a DetectedIntent (action + target + fields).

Pipeline:
1. Normalize (lowercase, strip accents)
2. Detect language by scoring stop-words and diacritics
3. First matching rule of that language wins (declaration order)
4. Refine target with a keyword pass ("crear ... personaje" -> character)
5. Extract fields for the target and decide whether to ask for clarification
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Pattern

from app.core.field_extractor import FieldExtractor
from app.models.form_schema import Language
from app.models.intent import DetectedIntent, ExtractedField, IntentDetectorConfig
from app.utils.text import normalize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntentRule:
    pattern: Pattern
    action: str
    target: Optional[str]  # None keeps the contextual target
    language: str
    priority: int


_RULE_SPECS = [
    # --- create ---
    ("create", "universe", "es", r"\b(crear|crea|quiero|hagamos|nuevo|nueva)\b.*\b(universo|mundo)\b"),
    ("create", "universe", "es", r"\b(universo|mundo)\b.*\b(llamad[oa]|nombre)\b"),
    ("create", "character", "es", r"\b(crear|crea|quiero|hagamos|nuevo|nueva)\b.*\b(personaje|heroe|protagonista)\b"),
    ("create", "character", "es", r"\b(personaje|heroe)\b.*\b(llamad[oa]|nombre)\b"),
    ("create", "stat", "es", r"\b(anadir|agregar|nueva)\b.*\b(estadistica|stat|atributo)\b"),
    ("create", "race", "es", r"\b(anadir|agregar|nueva)\b.*\b(raza|especie)\b"),
    ("create", "skill", "es", r"\b(anadir|agregar|nueva)\b.*\b(habilidad|skill|poder)\b"),
    ("create", "rule", "es", r"\b(anadir|agregar|nueva)\b.*\b(regla|norma)\b"),
    ("create", "universe", "en", r"\b(create|make|i want|let's make|new)\b.*\b(universe|world)\b"),
    ("create", "universe", "en", r"\b(universe|world)\b.*\b(called|named)\b"),
    ("create", "character", "en", r"\b(create|make|i want|new)\b.*\b(character|hero|protagonist)\b"),
    ("create", "character", "en", r"\b(character|hero)\b.*\b(called|named)\b"),
    ("create", "stat", "en", r"\b(add|new)\b.*\b(stat|statistic|attribute)\b"),
    ("create", "race", "en", r"\b(add|new)\b.*\b(race|species)\b"),
    ("create", "skill", "en", r"\b(add|new)\b.*\b(skill|ability|power)\b"),
    ("create", "rule", "en", r"\b(add|new)\b.*\b(rule)\b"),
    # --- edit ---
    ("edit", None, "es", r"\b(cambia|cambiar|modifica|modificar|edita|editar|actualiza|actualizar)\b"),
    ("edit", None, "es", r"\b(en vez de|en lugar de|mejor|prefiero|quiero que sea)\b"),
    ("edit", None, "es", r"\b(el nombre|la descripcion|el tema)\b.*\b(deberia|debe|sea|sera)\b"),
    ("edit", None, "en", r"\b(change|modify|edit|update|alter)\b"),
    ("edit", None, "en", r"\b(instead of|rather than|i prefer|i want it to be)\b"),
    ("edit", None, "en", r"\b(the name|the description|the theme)\b.*\b(should|must|will be)\b"),
    # --- navigate ---
    ("navigate", None, "es", r"\b(siguiente fase|saltar esta fase|saltar fase|ver preview|ir a la revision)\b"),
    ("navigate", None, "en", r"\b(next phase|skip this phase|skip phase|go to review|show preview)\b"),
    # --- query ---
    ("query", None, "es", r"\b(que|cual|como|cuanto|donde|por que)\b.*\?$"),
    ("query", None, "es", r"\b(mostrar|muestra|ver|dame|cuentame)\b"),
    ("query", None, "en", r"\b(what|which|how|where|why)\b.*\?$"),
    ("query", None, "en", r"\b(show|display|tell me|give me)\b"),
    # --- confirm ---
    ("confirm", None, "es", r"\b(si|ok|vale|correcto|exacto|confirmo|acepto|de acuerdo|perfecto)\b"),
    ("confirm", None, "es", r"\b(esta bien|me parece bien|adelante)\b"),
    ("confirm", None, "en", r"\b(yes|ok|okay|correct|right|confirm|accept|agree|perfect)\b"),
    ("confirm", None, "en", r"\b(sounds good|looks good|go ahead)\b"),
    # --- cancel ---
    ("cancel", None, "es", r"\b(no|cancelar|cancela|deshacer|atras|volver|olvidalo)\b"),
    ("cancel", None, "es", r"\b(no quiero|no me gusta|empezar de nuevo)\b"),
    ("cancel", None, "en", r"\b(no|cancel|undo|back|nevermind|forget it)\b"),
    ("cancel", None, "en", r"\b(i don't want|i dislike|start over)\b"),
    # --- delete ---
    ("delete", None, "es", r"\b(elimina|eliminar|borra|borrar|quita|quitar|remueve|remover)\b"),
    ("delete", None, "en", r"\b(delete|remove|erase)\b"),
]

INTENT_RULES: List[IntentRule] = [
    IntentRule(pattern=re.compile(p), action=a, target=t, language=lang, priority=i)
    for i, (a, t, lang, p) in enumerate(_RULE_SPECS)
]

# Matched against normalized text; the earliest hit in the message wins.
TARGET_KEYWORDS = {
    "universe": {"es": r"universo|mundo", "en": r"universe|world"},
    "character": {"es": r"personaje|heroe|protagonista", "en": r"character|hero|protagonist"},
    "stat": {"es": r"estadisticas?|stats?|atributos?", "en": r"stats?|statistics?|attributes?"},
    "race": {"es": r"razas?|especies?", "en": r"races?|species"},
    "skill": {"es": r"habilidad(?:es)?|skills?|poder(?:es)?", "en": r"skills?|abilit(?:y|ies)|powers?"},
    "rule": {"es": r"reglas?|normas?", "en": r"rules?"},
    "awakening": {"es": r"despertar|awakening", "en": r"awakening|awaken"},
}

LANGUAGE_PATTERNS = {
    "es": [
        r"\b(el|la|los|las|un|una|unos|unas)\b",
        r"\b(que|quiero|crear|hacer|con|para|por|como)\b",
        r"\b(universo|personaje|mundo|nombre|descripcion|historia)\b",
    ],
    "en": [
        r"\b(the|an|of|to|in|for|with)\b",
        r"\b(that|which|want|create|make|like|about)\b",
        r"\b(universe|character|world|name|description|story)\b",
    ],
}
_SPANISH_CHARS = re.compile(r"[áéíóúñü¿¡]")

TARGET_LABELS = {
    "es": {
        "universe": "universo",
        "character": "personaje",
        "stat": "estadística",
        "race": "raza",
        "skill": "habilidad",
        "rule": "regla",
        "awakening": "despertar",
        "unknown": "desconocido",
    },
    "en": {
        "universe": "universe",
        "character": "character",
        "stat": "stat",
        "race": "race",
        "skill": "skill",
        "rule": "rule",
        "awakening": "awakening",
        "unknown": "unknown",
    },
}
_FEMININE_TARGETS = {"stat", "race", "skill", "rule"}


class IntentClassifier:
    def __init__(self, config: Optional[IntentDetectorConfig] = None, extractor: Optional[FieldExtractor] = None):
        self.config = config or IntentDetectorConfig()
        self.extractor = extractor or FieldExtractor(self.config.min_field_confidence)

    def classify(
        self, text: str, contextual_target: Optional[str] = None, current_language: Optional[Language] = None
    ) -> DetectedIntent:
        raw = text or ""
        normalized = normalize(raw)
        language = self.detect_language(raw, current_language)
        target = contextual_target or "universe"

        if not normalized:
            return DetectedIntent(
                action="unknown",
                target=target,
                language=language,
                confidence=0.0,
                needs_clarification=True,
                clarification_questions=[self._vague_question(language)],
                raw_input=raw,
            )

        action, confidence, matched = "query", 0.3, []
        rule, match = self._match_rule(normalized, language)
        if rule is not None:
            action = rule.action
            confidence = 0.8
            matched = [match.group(0)]
            if rule.target:
                target = rule.target

        target = self.refine_target(normalized, target)
        fields = self.extractor.extract_fields(raw, target, language)
        needs_clarification = self.needs_clarification(action, confidence, fields)

        intent = DetectedIntent(
            action=action,
            target=target,
            extracted_fields=fields,
            language=language,
            confidence=confidence,
            needs_clarification=needs_clarification,
            raw_input=raw,
            matched_keywords=matched,
        )
        if needs_clarification:
            intent.clarification_questions = self.clarification_questions(intent)

        logger.debug(
            f"Intent: {action}/{target} lang={language} conf={confidence} "
            f"fields={[f.field_name for f in fields]}"
        )
        return intent

    # =========================================================================
    # RULE MATCHING
    # =========================================================================

    def _match_rule(self, normalized: str, language: str):
        # Rules of the detected language first; the others only when none of those fire.
        ordered = [r for r in INTENT_RULES if r.language == language] + [
            r for r in INTENT_RULES if r.language != language
        ]
        for rule in ordered:
            match = rule.pattern.search(normalized)
            if match:
                return rule, match
        return None, None

    def refine_target(self, normalized: str, default_target: str) -> str:
        best_target, best_pos = default_target, None
        for target, patterns in TARGET_KEYWORDS.items():
            combined = rf"\b(?:{patterns['es']}|{patterns['en']})\b"
            match = re.search(combined, normalized)
            if match and (best_pos is None or match.start() < best_pos):
                best_target, best_pos = target, match.start()
        return best_target

    def detect_language(self, text: str, current_language: Optional[Language] = None) -> Language:
        """Score Spanish vs English markers. A tie keeps `current_language` when one is given."""
        fallback = current_language or self.config.default_language
        if not self.config.auto_detect_language:
            return self.config.default_language
        if not text:
            return fallback

        normalized = normalize(text)
        scores = {
            lang: sum(len(re.findall(p, normalized)) for p in patterns)
            for lang, patterns in LANGUAGE_PATTERNS.items()
        }
        scores["es"] += len(_SPANISH_CHARS.findall(text.lower()))

        if scores["es"] > scores["en"]:
            return "es"
        if scores["en"] > scores["es"]:
            return "en"
        return fallback

    # =========================================================================
    # CLARIFICATION
    # =========================================================================

    def needs_clarification(self, action: str, confidence: float, fields: List[ExtractedField]) -> bool:
        if confidence < self.config.default_confidence_threshold:
            return True
        names = {f.field_name for f in fields}
        if action == "create" and "name" not in names:
            return True
        if action == "edit" and not fields:
            return True
        low = [f for f in fields if f.confidence < self.config.min_field_confidence]
        return bool(fields) and len(low) > len(fields) / 2

    def clarification_questions(self, intent: DetectedIntent) -> List[str]:
        language = intent.language
        questions = []
        if intent.action == "create" and intent.get_field("name") is None:
            label = TARGET_LABELS[language].get(intent.target, intent.target)
            if language == "es":
                article = "esta" if intent.target in _FEMININE_TARGETS else "este"
                questions.append(f"¿Cómo te gustaría llamar a {article} {label}?")
            else:
                questions.append(f"What would you like to name this {label}?")
        elif intent.action == "edit" and not intent.extracted_fields:
            questions.append("¿Qué te gustaría cambiar?" if language == "es" else "What would you like to change?")
        if not questions:
            questions.append(self._vague_question(language))
        return questions

    @staticmethod
    def _vague_question(language: str) -> str:
        if language == "es":
            return "¿Podrías darme más detalles sobre lo que quieres hacer?"
        return "Could you give me more details about what you want to do?"

    @staticmethod
    def target_label(target: str, language: str = "es") -> str:
        return TARGET_LABELS.get(language, TARGET_LABELS["es"]).get(target, target)
