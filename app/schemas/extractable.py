"""
Extractable Fields
==================
The one weight table per creation mode. Bulk extraction and the phase engine
both compute completeness from it.

Each entry carries:
- patterns: regexes tried in order (group 1, else whole match)
- keywords: per-language anchors; the text right after one is taken as value
- strategy: name of a dedicated extractor that replaces pattern matching
  ("theme", "stat_list", "rank_system", "int", "list"); None means raw string
- context_only: never read from text, only set by the session (universeId)
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern


@dataclass(frozen=True)
class ExtractableField:
    key: str
    name: Dict[str, str]
    weight: float = 1.0
    required: bool = False
    type: str = "string"
    patterns: List[Pattern] = field(default_factory=list)
    keywords: Dict[str, List[str]] = field(default_factory=dict)
    strategy: Optional[str] = None
    default_value: object = None
    context_only: bool = False
    question: Optional[Dict[str, str]] = None


_NAME_PATTERN = re.compile(r"(?:llama(?:do|rá|r)?|nombre(?:d)?|call(?:ed)?)\s*[\"']?([^\"'\n,]+)[\"']?", re.I)
_QUOTED_CAPITALIZED = re.compile(r"[\"']([A-Z][^\"']+)[\"']")


UNIVERSE_EXTRACTABLE_FIELDS: List[ExtractableField] = [
    ExtractableField(
        key="name",
        name={"es": "Nombre", "en": "Name"},
        weight=2,
        required=True,
        patterns=[
            _NAME_PATTERN,
            _QUOTED_CAPITALIZED,
            re.compile(r"universo\s+(?:de\s+)?[\"']([^\"'\n,]+)[\"']", re.I),
        ],
        keywords={
            "es": ["nombre", "llamado", "llamar", "llamará", "titulado"],
            "en": ["name", "called", "named", "titled"],
        },
        question={"es": "¿Cómo se llama?", "en": "What is the name?"},
    ),
    ExtractableField(
        key="theme",
        name={"es": "Tema", "en": "Theme"},
        weight=1.5,
        required=True,
        strategy="theme",
        question={
            "es": "¿Qué tipo de mundo es? (fantasía, sci-fi, etc.)",
            "en": "What type of world is it? (fantasy, sci-fi, etc.)",
        },
    ),
    ExtractableField(
        key="statCount",
        name={"es": "Número de stats", "en": "Stat count"},
        type="number",
        strategy="int",
        patterns=[
            re.compile(r"(\d+)\s*(?:stats?|estad[ií]sticas?|atributos?)", re.I),
            re.compile(r"(?:stats?|estad[ií]sticas?|atributos?)\s*(?::|son|hay|tendr[áa])?\s*(\d+)", re.I),
        ],
        question={"es": "¿Cuántas estadísticas tendrá?", "en": "How many stats will it have?"},
    ),
    ExtractableField(
        key="statNames",
        name={"es": "Nombres de stats", "en": "Stat names"},
        weight=2,
        type="array",
        strategy="stat_list",
        question={"es": "¿Qué estadísticas tendrá?", "en": "What stats will it have?"},
    ),
    ExtractableField(
        key="rankSystem",
        name={"es": "Sistema de rangos", "en": "Rank system"},
        weight=1.5,
        type="object",
        strategy="rank_system",
        question={"es": "¿Qué sistema de rangos usará?", "en": "What ranking system will it use?"},
    ),
    ExtractableField(
        key="initialPoints",
        name={"es": "Puntos iniciales", "en": "Initial points"},
        weight=0.5,
        type="number",
        strategy="int",
        patterns=[
            re.compile(r"(\d+)\s*puntos?\s*(?:iniciales?|para\s+repartir|base)", re.I),
            re.compile(r"(?:puntos?\s+iniciales?|starting\s+points?|initial\s+points?)\s*(?::|de|son|of)?\s*(\d+)", re.I),
        ],
        default_value=60,
    ),
    ExtractableField(
        key="description",
        name={"es": "Descripción", "en": "Description"},
        patterns=[
            re.compile(r"(?:descripci[oó]n|trata\s+de|es\s+sobre|about)\s*(?::|es)?\s*[\"']?(.{20,}?)[\"']?$", re.I),
        ],
        question={"es": "¿Puedes describirlo brevemente?", "en": "Can you describe it briefly?"},
    ),
]


CHARACTER_EXTRACTABLE_FIELDS: List[ExtractableField] = [
    ExtractableField(
        key="universeId",
        name={"es": "Universo", "en": "Universe"},
        weight=2,
        required=True,
        context_only=True,
        question={
            "es": "¿En qué universo quieres crear el personaje?",
            "en": "In which universe do you want to create the character?",
        },
    ),
    ExtractableField(
        key="name",
        name={"es": "Nombre", "en": "Name"},
        weight=2,
        required=True,
        patterns=[
            _NAME_PATTERN,
            _QUOTED_CAPITALIZED,
            re.compile(r"personaje\s+(?:llamado\s+)?[\"']([^\"'\n,]+)[\"']", re.I),
        ],
        keywords={"es": ["nombre", "llamado", "llamar"], "en": ["name", "called", "named"]},
        question={"es": "¿Cómo se llama?", "en": "What is the name?"},
    ),
    ExtractableField(
        key="class",
        name={"es": "Clase/Rol", "en": "Class/Role"},
        weight=1.5,
        patterns=[
            re.compile(r"\b(guerrero|mago|arquero|asesino|tanque|sanador|palad[ií]n|nigromante|cazador|druida)\b", re.I),
            re.compile(r"\b(warrior|mage|archer|assassin|tank|healer|paladin|necromancer|hunter|druid)\b", re.I),
            re.compile(r"\b(?:clase|rol|class|role)\s*[:\s]\s*[\"']?(\w+)[\"']?", re.I),
        ],
        question={"es": "¿Qué tipo de personaje es?", "en": "What type of character is it?"},
    ),
    ExtractableField(
        key="backstory",
        name={"es": "Historia", "en": "Backstory"},
        patterns=[
            re.compile(r"(?:historia|trasfondo|backstory|pasado)\s*(?::|es)?\s*[\"']?(.{30,}?)[\"']?$", re.I),
        ],
        question={"es": "¿Cuál es su historia?", "en": "What is their story?"},
    ),
    ExtractableField(
        key="specialty",
        name={"es": "Especialidad", "en": "Specialty"},
        patterns=[
            re.compile(r"(?:especializa(?:do|da)?|destaca|enfoca(?:do|da)?|specialty|specializes)\s*(?:en|in|:)?\s*[\"']?(\w+)[\"']?", re.I),
            re.compile(r"\b(combate|magia|sigilo|liderazgo|curaci[oó]n|tanqueo)\b", re.I),
        ],
    ),
    ExtractableField(
        key="startingLevel",
        name={"es": "Nivel inicial", "en": "Starting level"},
        weight=0.5,
        patterns=[
            re.compile(r"(?:nivel|level)\s*(?:inicial|starting)?\s*(?::|es|de)?\s*(\d+)", re.I),
            re.compile(r"\b(novato|principiante|veterano|experto|maestro|leyenda|novice|beginner|veteran|expert|master)\b", re.I),
        ],
    ),
]


EXTRACTABLE_FIELDS: Dict[str, List[ExtractableField]] = {
    "universe": UNIVERSE_EXTRACTABLE_FIELDS,
    "character": CHARACTER_EXTRACTABLE_FIELDS,
}


def get_extractable_fields(mode: str) -> List[ExtractableField]:
    return EXTRACTABLE_FIELDS.get(mode, [])
