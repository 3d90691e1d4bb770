"""
Phase Engine
============
Conversational phases of a creation flow and how far along a session is.

Each mode has an ordered phase list. A phase names the extractable fields it
is about, a weight, and whether it may be skipped (optionally only once some
field is already filled). Completeness comes from the extractable-field weight
table, the same one bulk extraction scores against.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from app.core.field_extractor import FieldExtractor
from app.models.form_schema import Language

logger = logging.getLogger(__name__)

REVIEW_THRESHOLD = 70
SKIP_THRESHOLD = 50
MAX_SUGGESTIONS = 4


@dataclass
class DynamicPhase:
    id: str
    name: Dict[str, str]
    description: Dict[str, str]
    required_fields: List[str] = field(default_factory=list)
    optional_fields: List[str] = field(default_factory=list)
    weight: float = 1.0
    can_skip: bool = True
    skip_condition: Optional[Callable[[List[str]], bool]] = None

    def is_satisfied_by(self, filled_fields: List[str]) -> bool:
        return self.can_skip and self.skip_condition is not None and self.skip_condition(filled_fields)


@dataclass
class PhaseSuggestion:
    phase_id: str
    phase_index: int
    reason: str


@dataclass
class DynamicPhaseState:
    current_phase_id: str
    current_phase_index: int
    total_phases: int
    completeness: int
    filled_fields: List[str]
    pending_fields: List[str]
    can_skip_to_confirmation: bool
    suggested_next_phase: Optional[str]
    skippable_phases: List[str]


@dataclass
class GenerationReadiness:
    can_generate: bool
    missing_fields: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _t(es: str, en: str) -> Dict[str, str]:
    return {"es": es, "en": en}


# =============================================================================
# PHASE TABLES
# =============================================================================

UNIVERSE_DYNAMIC_PHASES = [
    DynamicPhase(
        "concept", _t("Concepto", "Concept"), _t("Nombre y temática del universo", "Universe name and theme"),
        required_fields=["name", "theme"], optional_fields=["description"], weight=2, can_skip=False,
    ),
    DynamicPhase(
        "statistics", _t("Estadísticas", "Statistics"), _t("Stats y sistema de atributos", "Stats and attribute system"),
        optional_fields=["statCount", "statNames"], weight=2,
        skip_condition=lambda filled: "statNames" in filled or "statCount" in filled,
    ),
    DynamicPhase(
        "ranks", _t("Rangos", "Ranks"), _t("Sistema de rangos y progresión", "Rank and progression system"),
        optional_fields=["rankSystem", "initialPoints"], weight=1.5,
        skip_condition=lambda filled: "rankSystem" in filled,
    ),
    DynamicPhase(
        "rules", _t("Reglas", "Rules"), _t("Reglas de progresión", "Progression rules"),
        optional_fields=["progressionRules"], weight=1,
    ),
    DynamicPhase(
        "appearance", _t("Apariencia", "Appearance"), _t("Imágenes y estilo visual", "Images and visual style"),
        optional_fields=["coverImage", "locations"], weight=0.5,
    ),
    DynamicPhase("review", _t("Revisión", "Review"), _t("Confirmar y guardar", "Confirm and save"), weight=0, can_skip=False),
]

CHARACTER_DYNAMIC_PHASES = [
    DynamicPhase(
        "universe_selection", _t("Universo", "Universe"), _t("Seleccionar universo", "Choose a universe"),
        required_fields=["universeId"], weight=2, can_skip=False,
    ),
    DynamicPhase(
        "identity", _t("Identidad", "Identity"), _t("Nombre y concepto", "Name and concept"),
        required_fields=["name"], optional_fields=["class", "description"], weight=2, can_skip=False,
    ),
    DynamicPhase(
        "backstory", _t("Historia", "Backstory"), _t("Trasfondo del personaje", "Character background"),
        optional_fields=["backstory"], weight=1,
    ),
    DynamicPhase(
        "stats", _t("Estadísticas", "Statistics"), _t("Distribución de stats", "Stat distribution"),
        optional_fields=["specialty", "statDistribution"], weight=1.5,
        skip_condition=lambda filled: "specialty" in filled,
    ),
    DynamicPhase(
        "level", _t("Nivel", "Level"), _t("Nivel y rango inicial", "Starting level and rank"),
        optional_fields=["startingLevel"], weight=0.5,
    ),
    DynamicPhase(
        "appearance", _t("Apariencia", "Appearance"), _t("Avatar y estilo", "Avatar and style"),
        optional_fields=["avatar"], weight=0.5,
    ),
    DynamicPhase("review", _t("Revisión", "Review"), _t("Confirmar y guardar", "Confirm and save"), weight=0, can_skip=False),
]

DYNAMIC_PHASES = {
    "universe": UNIVERSE_DYNAMIC_PHASES,
    "character": CHARACTER_DYNAMIC_PHASES,
}

# Quick-reply chips per (mode, phase); the flag names the field that silences them.
_PHASE_SUGGESTIONS = {
    ("universe", "concept"): ("theme", ["Fantasía", "Ciencia Ficción", "Cyberpunk", "Medieval"]),
    ("universe", "statistics"): (None, ["6 stats clásicos", "4 stats simples", "Personalizar stats"]),
    ("universe", "ranks"): (None, ["Estilo Solo Leveling (E-SSS)", "Niveles 1-100", "Sin rangos"]),
    ("character", "identity"): ("class", ["Guerrero", "Mago", "Arquero", "Asesino"]),
    ("character", "level"): (None, ["Novato (nivel 1)", "Experimentado", "Veterano"]),
}


class PhaseEngine:
    def __init__(self, extractor: Optional[FieldExtractor] = None):
        self.extractor = extractor or FieldExtractor()

    @staticmethod
    def get_phases(mode: str) -> List[DynamicPhase]:
        return DYNAMIC_PHASES.get(mode, [])

    def calculate_completeness(self, mode: str, filled_fields: List[str]) -> int:
        return self.extractor.calculate_completeness(mode, filled_fields)

    def calculate_phase_state(
        self, mode: str, filled_fields: List[str], current_phase_index: int = 0
    ) -> DynamicPhaseState:
        phases = self.get_phases(mode)
        current = phases[current_phase_index] if 0 <= current_phase_index < len(phases) else None
        completeness = self.calculate_completeness(mode, filled_fields)

        pending_required = [f for p in phases for f in p.required_fields if f not in filled_fields]
        pending_optional = [f for p in phases for f in p.optional_fields if f not in filled_fields]

        skippable = [
            p.id
            for i, p in enumerate(phases)
            if i > current_phase_index and p.can_skip and (p.skip_condition is None or p.skip_condition(filled_fields))
        ]

        suggested = None
        if current_phase_index < len(phases) - 1:
            if completeness >= REVIEW_THRESHOLD:
                suggested = "review"
            else:
                for phase in phases[current_phase_index + 1:]:
                    missing = [f for f in phase.required_fields if f not in filled_fields]
                    if missing or phase.id == "review":
                        suggested = phase.id
                        break

        return DynamicPhaseState(
            current_phase_id=current.id if current else "",
            current_phase_index=current_phase_index,
            total_phases=len(phases),
            completeness=completeness,
            filled_fields=list(filled_fields),
            pending_fields=pending_required + pending_optional,
            can_skip_to_confirmation=completeness >= REVIEW_THRESHOLD and not pending_required,
            suggested_next_phase=suggested,
            skippable_phases=skippable,
        )

    def suggest_next_phase(
        self, mode: str, current_phase_index: int, filled_fields: List[str], language: Language = "es"
    ) -> Optional[PhaseSuggestion]:
        phases = self.get_phases(mode)
        completeness = self.calculate_completeness(mode, filled_fields)

        if completeness >= REVIEW_THRESHOLD:
            review_index = next((i for i, p in enumerate(phases) if p.id == "review"), -1)
            if review_index > current_phase_index:
                reason = (
                    f"Tienes {completeness}% completo. Puedes ir directo a la revisión."
                    if language == "es"
                    else f"You are {completeness}% complete. You can go straight to review."
                )
                return PhaseSuggestion("review", review_index, reason)

        for i in range(current_phase_index + 1, len(phases)):
            phase = phases[i]
            if phase.is_satisfied_by(filled_fields):
                continue
            missing = [f for f in phase.required_fields if f not in filled_fields]
            if missing or not phase.can_skip:
                return PhaseSuggestion(phase.id, i, phase.description.get(language, phase.description["es"]))
        return None

    def can_generate(self, mode: str, filled_fields: List[str]) -> GenerationReadiness:
        phases = self.get_phases(mode)
        missing = [f for p in phases for f in p.required_fields if f not in filled_fields]
        warnings = []

        if "name" not in filled_fields and "name" not in missing:
            missing.append("name")
        if mode == "universe":
            if "theme" not in filled_fields and "description" not in filled_fields:
                warnings.append("Sin tema ni descripción, se generará un universo genérico")
        elif "universeId" not in filled_fields and "universeId" not in missing:
            missing.append("universeId")

        return GenerationReadiness(can_generate=not missing, missing_fields=missing, warnings=warnings)

    def get_smart_suggestions(self, mode: str, current_phase_id: str, filled_fields: List[str]) -> List[str]:
        phase = next((p for p in self.get_phases(mode) if p.id == current_phase_id), None)
        if phase is None:
            return []

        suggestions: List[str] = []
        entry = _PHASE_SUGGESTIONS.get((mode, current_phase_id))
        if entry is not None:
            silenced_by, chips = entry
            if silenced_by is None or silenced_by not in filled_fields:
                suggestions.extend(chips)

        completeness = self.calculate_completeness(mode, filled_fields)
        if completeness >= REVIEW_THRESHOLD:
            suggestions.append("Ver preview")
        if completeness >= SKIP_THRESHOLD and phase.can_skip:
            suggestions.append("Saltar esta fase")
        return suggestions[:MAX_SUGGESTIONS]
