"""
Schemas Package
===============
Static catalog of entity form schemas, the phase -> field mapping, and the
extractable-field weight table shared by bulk extraction and the phase engine.
"""

from app.schemas.registry import (
    SCHEMAS,
    get_schema,
    list_schemas,
    get_field,
    get_phase_ids,
    get_fields_for_phase,
    resolve_options,
    get_dependent_fields,
    get_missing_required_fields,
    get_extraction_hints,
)
from app.schemas.extractable import (
    ExtractableField,
    EXTRACTABLE_FIELDS,
    get_extractable_fields,
)

__all__ = [
    "SCHEMAS",
    "get_schema",
    "list_schemas",
    "get_field",
    "get_phase_ids",
    "get_fields_for_phase",
    "resolve_options",
    "get_dependent_fields",
    "get_missing_required_fields",
    "get_extraction_hints",
    "ExtractableField",
    "EXTRACTABLE_FIELDS",
    "get_extractable_fields",
]
