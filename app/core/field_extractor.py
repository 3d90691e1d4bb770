"""
Field Extractor
===============
Pulls typed field values out of free text.

Three layers, tried in order per field:
1. Schema hints: quoted text (when the field hints at it) and keyword anchors
   ("nombre: X", "called X"). Select fields match their option vocabulary.
2. Generic heuristics for name / description / theme when the schema found nothing.
3. Bulk mode (extract_all): every extractable field of a creation mode runs
   its own patterns unconditionally and a completeness score is computed.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from app.models.form_schema import FieldType, FormFieldSchema, Language
from app.models.intent import BulkExtraction, ContradictingField, ContradictionResult, ExtractedField
from app.schemas.extractable import ExtractableField, get_extractable_fields
from app.schemas.registry import SCHEMAS
from app.utils.text import fold, search_folded

logger = logging.getLogger(__name__)


# =============================================================================
# VOCABULARY
# =============================================================================

QUOTED_PATTERN = r"(?<!\w)[\"'“«]([^\"'“”«»\n]+)[\"'”»]"

# Keyword captures often start with a connector ("nombre a X", "called X").
_LEADING_CONNECTORS = re.compile(
    r"^(?:(?:del?|de la|of the)\s+(?:universo|mundo|personaje|universe|world|character)\s+)?"
    r"(?:(?:llamad[oa]|called|named|a|to|por|es|is|sea|be|que sea|:)\s+)*",
    re.I,
)

NAME_PATTERNS = {
    "es": r"(?:llamad[oa]|nombre|se llama|llamar[a]?)\s*[:\s]?\s*[\"']?([^\"'\n,]+)[\"']?",
    "en": r"(?:called|named|name is|name:)\s*[\"']?([^\"'\n,]+)[\"']?",
}

DESCRIPTION_PATTERNS = {
    "es": [
        r"(?:descripcion|trata de|es sobre|acerca de)\s*[:\s]*(.+)",
        r"(?:es un|es una)\s+(.+?)(?:\.|$)",
    ],
    "en": [
        r"(?:description|about|is about)\s*[:\s]*(.+)",
        r"(?:it's a|it is a)\s+(.+?)(?:\.|$)",
    ],
}

# Patterns are matched against folded (lowercase, accent-free) text.
THEME_PATTERNS = {
    "fantasy": {"es": r"fantasia|magico|medieval", "en": r"fantasy|magical|medieval"},
    "scifi": {"es": r"ciencia ficcion|sci-fi|espacial|futurista", "en": r"sci-fi|science fiction|space|futuristic"},
    "horror": {"es": r"terror|horror|miedo|oscuro", "en": r"horror|scary|dark"},
    "cyberpunk": {"es": r"cyberpunk|ciberpunk", "en": r"cyberpunk"},
    "steampunk": {"es": r"steampunk", "en": r"steampunk"},
    "modern": {"es": r"moderno|contemporaneo|actual", "en": r"modern|contemporary|present day"},
    "postapocalyptic": {
        "es": r"post-?apocaliptico|apocalipsis",
        "en": r"post-?apocalyptic|apocalypse",
    },
}

STAT_KEYWORDS = {
    "es": [
        "fuerza", "agilidad", "vitalidad", "inteligencia", "percepción", "carisma",
        "suerte", "resistencia", "destreza", "sabiduría", "sentido", "velocidad",
        "magia", "espíritu", "constitución",
    ],
    "en": [
        "strength", "agility", "vitality", "intelligence", "perception", "charisma",
        "luck", "endurance", "dexterity", "wisdom", "sense", "speed",
        "magic", "spirit", "constitution",
    ],
}

TARGET_KEYWORDS = {
    "universe": {
        "es": ["universo", "mundo", "stats", "estadísticas", "rangos", "reglas", "sistema"],
        "en": ["universe", "world", "stats", "statistics", "ranks", "rules", "system"],
    },
    "character": {
        "es": ["personaje", "héroe", "protagonista", "guerrero", "mago", "cazador", "nivel"],
        "en": ["character", "hero", "protagonist", "warrior", "mage", "hunter", "level"],
    },
}

SOLO_LEVELING_RANKS = ["E", "D", "C", "B", "A", "S", "SS", "SSS"]
DEFAULT_LETTER_RANKS = ["E", "D", "C", "B", "A", "S"]

_TRUE_PATTERN = re.compile(r"^(s[íi]|yes|true|1)$", re.I)


def _other_language(language: str) -> str:
    return "en" if language == "es" else "es"


class FieldExtractor:
    def __init__(self, min_field_confidence: float = 0.5):
        self.min_field_confidence = min_field_confidence

    # =========================================================================
    # SCHEMA-DRIVEN EXTRACTION
    # =========================================================================

    def extract_fields(self, text: str, target_kind: str, language: Language = "es") -> List[ExtractedField]:
        schema = SCHEMAS.get(target_kind)
        if schema is None or not text:
            return []

        results: Dict[str, ExtractedField] = {}
        for field in schema.fields:
            extracted = self._extract_schema_field(text, field, language)
            if extracted is not None:
                results[field.name] = extracted

        # Generic heuristics only fill what the schema pass missed.
        if schema.get_field("name") and "name" not in results:
            name = self.extract_name(text, language)
            if name is not None:
                results["name"] = name
        if schema.get_field("description") and "description" not in results:
            description = self.extract_description(text, language)
            if description is not None:
                results["description"] = description
        if schema.get_field("theme") and "theme" not in results:
            theme = self.extract_theme(text, language)
            if theme is not None:
                results["theme"] = theme

        # Keep schema order
        return [results[f.name] for f in schema.fields if f.name in results]

    def _extract_schema_field(
        self, text: str, field: FormFieldSchema, language: Language
    ) -> Optional[ExtractedField]:
        if field.type in (FieldType.SELECT, FieldType.MULTISELECT) and field.options:
            return self._match_option(text, field)

        if any("quoted" in hint.lower() for hint in field.ai_extraction_hints):
            quoted = re.search(QUOTED_PATTERN, text)
            if quoted:
                value = self.clean_value(quoted.group(1), field)
                if value not in (None, ""):
                    return self._make_field(field.name, value, "explicit", quoted.group(0))

        keywords = field.ai_keywords.get(language) or field.ai_keywords.get("es") or []
        for keyword in keywords:
            pattern = rf"(?<!\w){re.escape(fold(keyword))}\s*[:\s]\s*[\"']?([^\"'\n,]+)[\"']?"
            raw = search_folded(pattern, text)
            if raw is None:
                continue
            value = self.clean_value(raw, field)
            if value in (None, ""):
                continue
            return self._make_field(field.name, value, "explicit", raw)
        return None

    def _match_option(self, text: str, field: FormFieldSchema) -> Optional[ExtractedField]:
        folded = fold(text)
        for option in field.options:
            candidates = [str(option.value)] + list(option.label.values())
            for candidate in candidates:
                if re.search(rf"(?<!\w){re.escape(fold(candidate))}(?!\w)", folded):
                    return self._make_field(field.name, option.value, "explicit", candidate)
        return None

    def _make_field(self, name: str, value: Any, source: str, source_text: Optional[str] = None) -> ExtractedField:
        return ExtractedField(
            field_name=name,
            value=value,
            confidence=self.get_field_confidence(value, source),
            source=source,
            source_text=source_text,
        )

    def clean_value(self, raw: str, field: Optional[FormFieldSchema] = None) -> Any:
        value = raw.strip().rstrip(".!?;:").strip()
        value = _LEADING_CONNECTORS.sub("", value).strip()
        if field is None:
            return value
        if field.type == FieldType.NUMBER:
            try:
                number = float(value.replace(",", "."))
            except ValueError:
                return value
            return int(number) if number.is_integer() else number
        if field.type == FieldType.BOOLEAN:
            return bool(_TRUE_PATTERN.match(value))
        if field.type == FieldType.ARRAY:
            return self._split_list(value)
        return value

    @staticmethod
    def _split_list(value: str) -> List[str]:
        parts = re.split(r"\s*(?:,|;|&|\by\b|\band\b)\s*", value)
        return [p.strip() for p in parts if p and p.strip()]

    @staticmethod
    def get_field_confidence(value: Any, source: str) -> float:
        confidence = 0.5
        if source == "explicit":
            confidence += 0.3
        elif source == "inferred":
            confidence += 0.1
        if isinstance(value, str) and len(value) > 10:
            confidence += 0.1
        return min(round(confidence, 2), 1.0)

    # =========================================================================
    # GENERIC HEURISTICS
    # =========================================================================

    def extract_name(self, text: str, language: Language = "es") -> Optional[ExtractedField]:
        raw = search_folded(NAME_PATTERNS[language], text)
        if raw is None:
            quoted = re.search(QUOTED_PATTERN, text)
            raw = quoted.group(1) if quoted else None
        if raw is None:
            return None
        value = self.clean_value(raw)
        if not value:
            return None
        return ExtractedField(field_name="name", value=value, confidence=0.85, source="explicit", source_text=raw)

    def extract_description(self, text: str, language: Language = "es") -> Optional[ExtractedField]:
        for pattern in DESCRIPTION_PATTERNS[language]:
            raw = search_folded(pattern, text)
            if raw is not None and len(raw.strip()) > 10:
                return ExtractedField(
                    field_name="description",
                    value=raw.strip(),
                    confidence=0.7,
                    source="inferred",
                    source_text=raw,
                )
        return None

    def find_theme(self, text: str, language: Language = "es") -> Optional[str]:
        folded = fold(text)
        for lang in (language, _other_language(language)):
            for theme, patterns in THEME_PATTERNS.items():
                if re.search(rf"\b(?:{patterns[lang]})\b", folded):
                    return theme
        return None

    def extract_theme(self, text: str, language: Language = "es") -> Optional[ExtractedField]:
        theme = self.find_theme(text, language)
        if theme is None:
            return None
        return ExtractedField(field_name="theme", value=theme, confidence=0.9, source="explicit")

    # =========================================================================
    # BULK EXTRACTION
    # =========================================================================

    def extract_all(self, text: str, target_kind: str, language: Language = "es") -> BulkExtraction:
        """Run every extractable field of a creation mode over one message."""
        table = get_extractable_fields(target_kind)
        fields: Dict[str, ExtractedField] = {}

        for field_def in table:
            if field_def.context_only:
                continue
            extracted = self._extract_bulk_value(text, field_def, language)
            if extracted is not None:
                fields[field_def.key] = extracted

        filled = list(fields.keys())
        completeness = self.calculate_completeness(target_kind, filled)
        missing_required = [f.key for f in table if f.required and f.key not in fields]
        missing_optional = [f.key for f in table if not f.required and f.key not in fields]

        question = None
        if missing_required:
            question = self.question_for_field(self._by_key(table, missing_required[0]), language)
        elif completeness < 70 and missing_optional:
            candidates = [f for f in table if f.key in missing_optional]
            heaviest = sorted(candidates, key=lambda f: f.weight, reverse=True)[0]
            question = self.question_for_field(heaviest, language)

        return BulkExtraction(
            fields=fields,
            completeness=completeness,
            missing_required=missing_required,
            missing_optional=missing_optional,
            suggested_question=question,
        )

    @staticmethod
    def calculate_completeness(mode: str, filled_fields: List[str]) -> int:
        table = get_extractable_fields(mode)
        total = sum(f.weight for f in table)
        if total == 0:
            return 0
        filled = sum(f.weight for f in table if f.key in filled_fields)
        return int(round(filled / total * 100))

    @staticmethod
    def _by_key(table: List[ExtractableField], key: str) -> ExtractableField:
        return next(f for f in table if f.key == key)

    def _extract_bulk_value(
        self, text: str, field_def: ExtractableField, language: Language
    ) -> Optional[ExtractedField]:
        value: Any = None
        source = "explicit"

        if field_def.strategy == "theme":
            value = self.find_theme(text, language)
        elif field_def.strategy == "stat_list":
            value = self.extract_stats_list(text, language) or None
        elif field_def.strategy == "rank_system":
            value = self.extract_rank_system(text)
        else:
            for pattern in field_def.patterns:
                match = pattern.search(text)
                if match:
                    value = (match.group(1) if match.groups() and match.group(1) else match.group(0)).strip()
                    break
            if value is None:
                value = self._value_after_keyword(text, field_def, language)
                source = "inferred"
            if value is not None and field_def.strategy == "int":
                try:
                    value = int(value)
                except ValueError:
                    value = None

        if value is None or value == "":
            return None
        return ExtractedField(field_name=field_def.key, value=value, confidence=0.8, source=source)

    @staticmethod
    def _value_after_keyword(text: str, field_def: ExtractableField, language: Language) -> Optional[str]:
        keywords = field_def.keywords.get(language) or field_def.keywords.get("es") or []
        folded = fold(text)
        for keyword in keywords:
            idx = folded.find(fold(keyword))
            if idx < 0:
                continue
            after = text[idx + len(keyword):]
            match = re.match(r"^\s*[\"']?([^\"'\n,]{2,50})[\"']?", after)
            if match:
                return match.group(1).strip()
        return None

    @staticmethod
    def question_for_field(field_def: ExtractableField, language: Language = "es") -> str:
        if field_def.question:
            return field_def.question.get(language) or field_def.question["es"]
        name = field_def.name.get(language, field_def.key).lower()
        return f"¿Cuál es {name}?" if language == "es" else f"What is the {name}?"

    # =========================================================================
    # SPECIALISED EXTRACTORS
    # =========================================================================

    @staticmethod
    def detect_target_from_input(text: str, language: Language = "es") -> str:
        folded = fold(text)
        scores = {}
        for target, keywords in TARGET_KEYWORDS.items():
            scores[target] = sum(1 for k in keywords[language] if fold(k) in folded)
        if scores["universe"] > scores["character"]:
            return "universe"
        if scores["character"] > scores["universe"]:
            return "character"
        return "unknown"

    @staticmethod
    def extract_stats_list(text: str, language: Language = "es") -> List[str]:
        """Stat names in order of appearance, e.g. 'fuerza, agilidad y magia'."""
        folded = fold(text)
        found = []
        for keyword in STAT_KEYWORDS[language]:
            match = re.search(rf"\b{re.escape(fold(keyword))}\b", folded)
            if match:
                found.append((match.start(), keyword))
        return [keyword for _, keyword in sorted(found)]

    def extract_rank_system(self, text: str) -> Optional[Dict[str, Any]]:
        folded = fold(text)
        if "solo leveling" in folded or re.search(r"\bE\b.*\bSSS?\b", text):
            return {"type": "solo-leveling", "levels": list(SOLO_LEVELING_RANKS)}

        letters = re.search(
            r"(?:rangos?|ranks?)\s*(?:de|desde|from|:)?\s*\b([a-z])\s*(?:a|hasta|to|-)\s*([a-z]{1,3})\b",
            folded,
        )
        if letters:
            return {
                "type": "letters",
                "levels": self.generate_letter_range(letters.group(1).upper(), letters.group(2).upper()),
            }

        numeric = re.search(r"(?:niveles?|levels?)\s*(?:del?|from)?\s*(\d+)\s*(?:a|hasta|to|-)\s*(\d+)", folded)
        if numeric:
            start, end = int(numeric.group(1)), int(numeric.group(2))
            if start > end:
                start, end = end, start
            return {"type": "numeric", "levels": [str(n) for n in range(start, end + 1)]}
        return None

    @staticmethod
    def generate_letter_range(start: str, end: str) -> List[str]:
        alphabet = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
        start_index = alphabet.find(start)
        end_index = alphabet.find(end[:1])
        if start_index == -1 or end_index == -1 or not end:
            return list(DEFAULT_LETTER_RANKS)

        if start_index <= end_index:
            levels = list(alphabet[start_index:end_index + 1])
        else:
            levels = list(reversed(alphabet[end_index:start_index + 1]))

        # "E to SSS" also yields the doubled ranks
        if len(end) > 1 and set(end) == {end[0]}:
            for n in range(2, len(end) + 1):
                levels.append(end[0] * n)
        return levels

    # =========================================================================
    # CONTRADICTIONS
    # =========================================================================

    @staticmethod
    def values_contradict(old: Any, new: Any) -> bool:
        if old is None or new is None:
            return False
        if old == new:
            return False
        if isinstance(old, str) and isinstance(new, str):
            o, n = old.lower().strip(), new.lower().strip()
            if not o or not n:
                return False
            # New value elaborates the old one
            if o in n:
                return False
            return o != n
        return True

    def detect_contradictions(
        self,
        text: str,
        existing_data: Dict[str, Any],
        language: Language = "es",
        target_kind: str = "universe",
    ) -> ContradictionResult:
        contradicting = []
        for extracted in self.extract_fields(text, target_kind, language):
            existing = existing_data.get(extracted.field_name)
            if existing in (None, ""):
                continue
            if self.values_contradict(existing, extracted.value):
                contradicting.append(
                    ContradictingField(
                        field=extracted.field_name,
                        existing_value=existing,
                        new_value=extracted.value,
                        severity="medium",
                    )
                )

        if not contradicting:
            return ContradictionResult(has_contradictions=False, resolution="use_new")

        names = ", ".join(c.field for c in contradicting)
        explanation = (
            f"Los nuevos valores contradicen lo ya indicado en: {names}"
            if language == "es"
            else f"The new values contradict what was already said for: {names}"
        )
        logger.debug(f"Contradictions detected in fields: {names}")
        return ContradictionResult(
            has_contradictions=True,
            contradicting_fields=contradicting,
            resolution="ask_user",
            explanation=explanation,
        )
