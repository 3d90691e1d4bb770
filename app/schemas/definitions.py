"""
Entity Form Schemas
===================
Field catalogs for every entity kind: universe, character, stat, race, skill, rule.

Field names are the document keys used by the persistence layer (camelCase),
so they stay exactly as stored.
"""

from typing import Any, Dict, List, Optional

from app.models.form_schema import (
    CrossFieldValidation,
    DynamicOptionsConfig,
    EntityFormSchema,
    FieldDependency,
    FieldGroup,
    FieldType,
    FieldValidation,
    FormFieldOption,
    FormFieldSchema,
    PhaseFieldMapping,
    ValidationContext,
)
from app.utils.formula import referenced_names, validate_formula


def _label(en: str, es: str) -> Dict[str, str]:
    return {"en": en, "es": es}


def _options(*items) -> List[FormFieldOption]:
    return [FormFieldOption(value=v, label=_label(en, es)) for v, en, es in items]


def _field(
    name: str,
    type: FieldType,
    en: str,
    es: str,
    order: int,
    validation: Optional[FieldValidation] = None,
    keywords_es: Optional[List[str]] = None,
    keywords_en: Optional[List[str]] = None,
    hints: Optional[List[str]] = None,
    default: Any = None,
    **extra,
) -> FormFieldSchema:
    keywords = {}
    if keywords_es or keywords_en:
        keywords = {"es": keywords_es or [], "en": keywords_en or []}
    return FormFieldSchema(
        name=name,
        type=type,
        label=_label(en, es),
        order=order,
        validation=validation or FieldValidation(),
        ai_keywords=keywords,
        ai_extraction_hints=hints or [],
        default_value=default,
        **extra,
    )


# =============================================================================
# UNIVERSE
# =============================================================================

UNIVERSE_SCHEMA = EntityFormSchema(
    entity_type="universe",
    fields=[
        _field(
            "name", FieldType.STRING, "Universe Name", "Nombre del Universo", 1,
            FieldValidation(required=True, min_length=2, max_length=100),
            keywords_es=["nombre", "llamar", "llamarse", "título"],
            keywords_en=["name", "called", "titled"],
            hints=['Look for quoted text or phrases after "llamar", "nombre", "called", "named"'],
            group="basic",
        ),
        _field(
            "description", FieldType.STRING, "Description", "Descripción", 2,
            FieldValidation(required=True, min_length=10, max_length=1000),
            keywords_es=["descripción", "trata de", "es sobre"],
            keywords_en=["description", "about", "is about"],
            hints=["Summary of the world, its tone and main conflict"],
            group="basic",
        ),
        _field(
            "theme", FieldType.SELECT, "Theme", "Temática", 3,
            keywords_es=["fantasía", "ciencia ficción", "moderno", "terror", "cyberpunk"],
            keywords_en=["fantasy", "sci-fi", "modern", "horror"],
            options=_options(
                ("fantasy", "Fantasy", "Fantasía"),
                ("scifi", "Science Fiction", "Ciencia Ficción"),
                ("modern", "Modern", "Moderno"),
                ("postapocalyptic", "Post-apocalyptic", "Post-apocalíptico"),
                ("horror", "Horror", "Terror"),
                ("steampunk", "Steampunk", "Steampunk"),
                ("cyberpunk", "Cyberpunk", "Cyberpunk"),
                ("custom", "Custom", "Personalizado"),
            ),
            group="basic",
        ),
        _field(
            "inspiration", FieldType.STRING, "Inspiration", "Inspiración", 4,
            FieldValidation(max_length=500),
            keywords_es=["como", "similar", "inspirado", "estilo"],
            keywords_en=["like", "similar", "inspired", "style"],
            group="basic",
        ),
        _field("coverImage", FieldType.IMAGE, "Cover Image", "Imagen de Portada", 5, group="appearance"),
        _field("isPublic", FieldType.BOOLEAN, "Public", "Público", 6, default=False, group="basic"),
        _field(
            "initialPoints", FieldType.NUMBER, "Initial Points", "Puntos Iniciales", 7,
            FieldValidation(min=0, max=1000),
            keywords_es=["puntos", "puntos iniciales"],
            keywords_en=["points", "initial points"],
            default=100,
            group="stats",
        ),
        _field(
            "statDefinitions", FieldType.OBJECT, "Statistics", "Estadísticas", 8,
            FieldValidation(required=True), group="stats",
        ),
        _field(
            "progressionRules", FieldType.ARRAY, "Progression Rules", "Reglas de Progresión", 9,
            FieldValidation(required=True), group="progression",
        ),
        _field(
            "awakeningSystemEnabled", FieldType.BOOLEAN, "Awakening System", "Sistema de Despertar", 10,
            default=True, group="progression",
        ),
        _field(
            "raceSystemEnabled", FieldType.BOOLEAN, "Race System", "Sistema de Razas", 11,
            default=False, group="races",
        ),
    ],
    groups=[
        FieldGroup(id="basic", label=_label("Basics", "Básico"), order=1),
        FieldGroup(id="races", label=_label("Races", "Razas"), order=2, collapsible=True),
        FieldGroup(id="stats", label=_label("Statistics", "Estadísticas"), order=3),
        FieldGroup(id="progression", label=_label("Progression", "Progresión"), order=4),
        FieldGroup(id="appearance", label=_label("Appearance", "Apariencia"), order=5, collapsible=True),
    ],
    phases={
        "concept": PhaseFieldMapping(required=["name", "description"], optional=["theme", "inspiration"]),
        "races": PhaseFieldMapping(optional=["raceSystemEnabled", "races"]),
        "statistics": PhaseFieldMapping(required=["statDefinitions"], optional=["initialPoints"]),
        "progression": PhaseFieldMapping(
            required=["progressionRules"],
            optional=["awakeningSystemEnabled", "awakeningLevels", "awakeningThresholds"],
        ),
        "appearance": PhaseFieldMapping(optional=["coverImage", "locations"]),
        "review": PhaseFieldMapping(required=["name", "description", "statDefinitions", "progressionRules"]),
    },
)


# =============================================================================
# CHARACTER
# =============================================================================

CHARACTER_SCHEMA = EntityFormSchema(
    entity_type="character",
    fields=[
        _field(
            "universeId", FieldType.SELECT, "Universe", "Universo", 1,
            FieldValidation(required=True),
            keywords_es=["universo", "mundo"],
            keywords_en=["universe", "world"],
            dynamic_options=DynamicOptionsConfig(source="custom"),
        ),
        _field(
            "name", FieldType.STRING, "Character Name", "Nombre del Personaje", 2,
            FieldValidation(required=True, min_length=1, max_length=100),
            keywords_es=["nombre", "llamar", "personaje"],
            keywords_en=["name", "called", "character"],
            hints=["Look for quoted text or the words after the name keywords"],
        ),
        _field(
            "raceId", FieldType.SELECT, "Race", "Raza", 3,
            keywords_es=["raza", "especie"],
            keywords_en=["race", "species"],
            dynamic_options=DynamicOptionsConfig(source="parent.races"),
        ),
        _field("description", FieldType.STRING, "Description", "Descripción", 4, FieldValidation(max_length=500)),
        _field(
            "backstory", FieldType.STRING, "Backstory", "Historia", 5,
            FieldValidation(max_length=2000),
            keywords_es=["historia", "pasado", "origen"],
            keywords_en=["backstory", "history", "origin"],
        ),
        _field("stats", FieldType.OBJECT, "Statistics", "Estadísticas", 6, FieldValidation(required=True)),
        _field("bonusStats", FieldType.OBJECT, "Bonus Stats", "Estadísticas Bonus", 7),
        _field("avatarUrl", FieldType.IMAGE, "Avatar", "Avatar", 8),
        _field(
            "avatarBackgroundColor", FieldType.COLOR, "Avatar Background", "Fondo del Avatar", 9,
            default="#1a1a2e",
        ),
        _field(
            "personalityTraits", FieldType.ARRAY, "Personality", "Personalidad", 10,
            keywords_es=["personalidad", "carácter", "actitud"],
            keywords_en=["personality", "traits", "character"],
        ),
        _field(
            "title", FieldType.STRING, "Title", "Título", 11,
            FieldValidation(max_length=100),
            keywords_es=["título", "apodo", "conocido como"],
            keywords_en=["title", "nickname", "known as"],
        ),
    ],
    phases={
        "universe_selection": PhaseFieldMapping(required=["universeId"]),
        "identity": PhaseFieldMapping(required=["name"], optional=["raceId", "description"]),
        "backstory": PhaseFieldMapping(optional=["backstory", "origin", "motivation"]),
        "statistics": PhaseFieldMapping(required=["stats"], optional=["bonusStats"]),
        "appearance": PhaseFieldMapping(optional=["avatarUrl", "avatarBackgroundColor", "physicalDescription"]),
        "personality": PhaseFieldMapping(optional=["personalityTraits", "title"]),
        "review": PhaseFieldMapping(required=["name", "universeId", "stats"]),
    },
)


# =============================================================================
# SUB-ENTITIES
# =============================================================================

STAT_ICONS = [
    "barbell-outline", "flash-outline", "heart-outline", "bulb-outline", "eye-outline",
    "pulse-outline", "shield-outline", "flame-outline", "snow-outline", "leaf-outline",
    "water-outline", "planet-outline", "skull-outline", "star-outline", "diamond-outline",
]

def _min_not_above_max(entity: Dict[str, Any], context: ValidationContext) -> bool:
    low, high = entity.get("minValue"), entity.get("maxValue")
    if not isinstance(low, (int, float)) or not isinstance(high, (int, float)):
        return True
    return low <= high


def _derived_has_valid_formula(entity: Dict[str, Any], context: ValidationContext) -> bool:
    if not entity.get("isDerived"):
        return True
    formula = entity.get("formula")
    if not formula:
        return False
    universe = context.universe or {}
    stat_keys = list((universe.get("statDefinitions") or {}).keys()) or referenced_names(formula)
    return validate_formula(formula, stat_keys) is None


STAT_SCHEMA = EntityFormSchema(
    entity_type="stat",
    fields=[
        _field("name", FieldType.STRING, "Name", "Nombre", 1, FieldValidation(required=True, min_length=1, max_length=50)),
        _field(
            "abbreviation", FieldType.STRING, "Abbreviation", "Abreviatura", 2,
            FieldValidation(required=True, min_length=1, max_length=5),
        ),
        _field(
            "icon", FieldType.ICON, "Icon", "Icono", 3, FieldValidation(required=True),
            options=[FormFieldOption(value=i, label=_label(i, i), icon=i) for i in STAT_ICONS],
        ),
        _field("color", FieldType.COLOR, "Color", "Color", 4, FieldValidation(required=True)),
        _field("minValue", FieldType.NUMBER, "Minimum", "Mínimo", 5, FieldValidation(required=True, min=0), default=0),
        _field("maxValue", FieldType.NUMBER, "Maximum", "Máximo", 6, FieldValidation(required=True, min=1), default=999),
        _field(
            "category", FieldType.SELECT, "Category", "Categoría", 7,
            options=_options(
                ("primary", "Primary", "Primaria"),
                ("secondary", "Secondary", "Secundaria"),
                ("derived", "Derived", "Derivada"),
            ),
            default="primary",
        ),
        _field("isDerived", FieldType.BOOLEAN, "Derived", "Derivada", 8, default=False),
        _field(
            "formula", FieldType.STRING, "Formula", "Fórmula", 9,
            depends_on=[FieldDependency(field="isDerived", condition="equals", value=True, action="show")],
        ),
    ],
    cross_field_validations=[
        CrossFieldValidation(
            fields=["minValue", "maxValue"],
            validate_fn=_min_not_above_max,
            error_code="MIN_ABOVE_MAX",
            message=_label("Minimum cannot be greater than maximum", "El mínimo no puede ser mayor que el máximo"),
        ),
        CrossFieldValidation(
            fields=["isDerived", "formula"],
            validate_fn=_derived_has_valid_formula,
            error_code="INVALID_FORMULA",
            message=_label("Derived stats need a valid formula", "Las estadísticas derivadas necesitan una fórmula válida"),
        ),
    ],
)

RACE_SCHEMA = EntityFormSchema(
    entity_type="race",
    fields=[
        _field("name", FieldType.STRING, "Name", "Nombre", 1, FieldValidation(required=True, min_length=1, max_length=50)),
        _field("description", FieldType.STRING, "Description", "Descripción", 2, FieldValidation(max_length=500)),
        _field("image", FieldType.IMAGE, "Image", "Imagen", 3),
        _field("baseStats", FieldType.OBJECT, "Base Stats", "Estadísticas Base", 4, FieldValidation(required=True)),
        _field(
            "freePoints", FieldType.NUMBER, "Free Points", "Puntos Libres", 5,
            FieldValidation(required=True, min=0), default=50,
        ),
    ],
)

SKILL_SCHEMA = EntityFormSchema(
    entity_type="skill",
    fields=[
        _field("name", FieldType.STRING, "Name", "Nombre", 1, FieldValidation(required=True, min_length=1, max_length=100)),
        _field("subtitle", FieldType.STRING, "Subtitle", "Subtítulo", 2, FieldValidation(max_length=100)),
        _field("icon", FieldType.ICON, "Icon", "Icono", 3),
        _field(
            "description", FieldType.STRING, "Description", "Descripción", 4,
            FieldValidation(required=True, max_length=1000),
        ),
        _field(
            "category", FieldType.SELECT, "Category", "Categoría", 5, FieldValidation(required=True),
            options=_options(
                ("combat", "Combat", "Combate"),
                ("magic", "Magic", "Magia"),
                ("utility", "Utility", "Utilidad"),
                ("passive", "Passive", "Pasiva"),
                ("special", "Special", "Especial"),
            ),
        ),
        _field("level", FieldType.NUMBER, "Level", "Nivel", 6, FieldValidation(required=True, min=1, max=100), default=1),
    ],
)

RULE_SCHEMA = EntityFormSchema(
    entity_type="rule",
    fields=[
        _field(
            "description", FieldType.STRING, "Description", "Descripción", 1,
            FieldValidation(required=True, min_length=1, max_length=200),
        ),
        _field("keywords", FieldType.ARRAY, "Keywords", "Palabras clave", 2, FieldValidation(required=True)),
        _field(
            "affectedStats", FieldType.MULTISELECT, "Affected Stats", "Estadísticas Afectadas", 3,
            FieldValidation(required=True),
            dynamic_options=DynamicOptionsConfig(source="parent.stats"),
        ),
        _field(
            "maxChangePerAction", FieldType.NUMBER, "Max Change per Action", "Cambio Máximo por Acción", 4,
            FieldValidation(required=True, min=1, max=100), default=3,
        ),
    ],
)

ALL_SCHEMAS = [UNIVERSE_SCHEMA, CHARACTER_SCHEMA, STAT_SCHEMA, RACE_SCHEMA, SKILL_SCHEMA, RULE_SCHEMA]
