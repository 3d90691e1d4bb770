"""
Schema Registry
===============
Lookup layer over the static schema catalog.

Usage:
    schema = get_schema("universe")
    fields = get_fields_for_phase("universe", "concept")
    options = resolve_options(schema.get_field("raceId"), context)
"""

import logging
from typing import Any, Dict, List, Optional

from app.core.exceptions import SchemaNotFound
from app.models.form_schema import (
    EntityFormSchema,
    FieldDependency,
    FieldType,
    FormFieldOption,
    FormFieldSchema,
    ValidationContext,
)
from app.schemas.definitions import ALL_SCHEMAS

logger = logging.getLogger(__name__)

SCHEMAS: Dict[str, EntityFormSchema] = {s.entity_type: s for s in ALL_SCHEMAS}


def get_schema(kind: str) -> EntityFormSchema:
    schema = SCHEMAS.get(kind)
    if schema is None:
        logger.error(f"Schema lookup failed for entity type '{kind}'")
        raise SchemaNotFound(kind)
    return schema


def list_schemas() -> List[str]:
    return list(SCHEMAS.keys())


def get_field(kind: str, name: str) -> Optional[FormFieldSchema]:
    return get_schema(kind).get_field(name)


def get_phase_ids(kind: str) -> List[str]:
    return list(get_schema(kind).phases.keys())


def get_fields_for_phase(kind: str, phase_id: str) -> List[FormFieldSchema]:
    """
    Required + optional fields mapped to a phase, in mapping order.
    Mapping entries with no schema field (e.g. "races", "locations") are skipped.
    """
    schema = get_schema(kind)
    mapping = schema.phases.get(phase_id)
    if mapping is None:
        return []
    result = []
    for name in mapping.all_fields:
        f = schema.get_field(name)
        if f is not None:
            result.append(f)
    return result


# =============================================================================
# OPTIONS
# =============================================================================

def _options_from_parent(source: str, context: ValidationContext) -> List[FormFieldOption]:
    universe = context.universe or {}

    if source == "parent.races":
        races = (universe.get("raceSystem") or {}).get("races") or []
        return [
            FormFieldOption(value=r.get("id"), label={"en": r.get("name", ""), "es": r.get("name", "")})
            for r in races
        ]

    if source == "parent.stats":
        stat_defs = universe.get("statDefinitions") or {}
        return [
            FormFieldOption(
                value=key,
                label={"en": d.get("name", key), "es": d.get("name", key)},
                icon=d.get("icon"),
                color=d.get("color"),
            )
            for key, d in stat_defs.items()
        ]

    if source == "parent.awakeningLevels":
        levels = (universe.get("awakeningSystem") or {}).get("levels") or []
        return [FormFieldOption(value=lvl, label={"en": f"Rank {lvl}", "es": f"Rango {lvl}"}) for lvl in levels]

    if source == "parent.rules":
        rules = universe.get("progressionRules") or []
        return [
            FormFieldOption(value=r.get("id"), label={"en": r.get("description", ""), "es": r.get("description", "")})
            for r in rules
        ]

    return []


def resolve_options(field: FormFieldSchema, context: Optional[ValidationContext] = None) -> List[FormFieldOption]:
    """Static options pass through; dynamic ones come from the parent universe or a resolver."""
    if field.dynamic_options is None:
        return list(field.options or [])

    context = context or ValidationContext()
    config = field.dynamic_options
    if config.source == "custom":
        options = config.custom_resolver(context) if config.custom_resolver else []
    else:
        options = _options_from_parent(config.source, context)

    if config.filter is not None:
        options = [o for o in options if config.filter(o, context)]
    return options


# =============================================================================
# DEPENDENCIES
# =============================================================================

def condition_met(dep: FieldDependency, value: Any) -> bool:
    cond = dep.condition
    if cond == "equals":
        return value == dep.value
    if cond == "notEquals":
        return value != dep.value
    if cond == "exists":
        return value is not None and value != ""
    if cond == "notExists":
        return value is None or value == ""
    if cond == "contains":
        if isinstance(value, (list, str)):
            return dep.value in value
        return False
    if cond in ("greaterThan", "lessThan"):
        try:
            left, right = float(value), float(dep.value)
        except (TypeError, ValueError):
            return False
        return left > right if cond == "greaterThan" else left < right
    return False


def get_dependent_fields(schema: EntityFormSchema, field_name: str, value: Any) -> List[FormFieldSchema]:
    """Fields whose dependency on `field_name` is satisfied by `value`."""
    result = []
    for f in schema.fields:
        for dep in f.depends_on or []:
            if dep.field == field_name and condition_met(dep, value):
                result.append(f)
                break
    return result


# =============================================================================
# HELPERS FOR VALIDATION AND PROMPTS
# =============================================================================

def _is_empty(value: Any) -> bool:
    # An empty list or object is a deliberate answer ("no rules yet")
    return value is None or value == ""


def get_missing_required_fields(
    schema: EntityFormSchema, data: Dict[str, Any], phase_id: Optional[str] = None
) -> List[str]:
    if phase_id is not None:
        mapping = schema.phases.get(phase_id)
        names = mapping.required if mapping else []
    else:
        names = [f.name for f in schema.required_fields]
    return [name for name in names if _is_empty(data.get(name))]


def get_extraction_hints(field: FormFieldSchema, language: str = "es") -> str:
    lines = list(field.ai_extraction_hints)
    keywords = field.ai_keywords.get(language) or []
    if keywords:
        lines.append(f"Keywords: {', '.join(keywords)}")
    lines.append(f"Type: {field.type.value}")
    if field.type == FieldType.NUMBER and field.validation.min is not None and field.validation.max is not None:
        lines.append(f"Range: {field.validation.min:g} to {field.validation.max:g}")
    return "\n".join(lines)
