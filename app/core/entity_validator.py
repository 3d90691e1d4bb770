"""
Entity Validator
================
Validation layers for a (possibly partial) entity document.

1. Schema:           per-field rules + cross-field validators
2. Cross-references: race ids and stat keys resolve against the parent universe
3. Consistency:      schema-independent sanity (duplicates, orphans, negatives)
4. Size:             serialized byte size vs the storage document limit

auto_fix() applies the mechanical remedies (truncate, clamp, default) and
hands back whatever it could not fix.
"""

import copy
import json
import logging
import re
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from app.models.form_schema import (
    DOC_SIZE_LIMIT,
    RECOMMENDED_DOC_SIZE,
    ErrorCode,
    FormFieldSchema,
    SizeValidationResult,
    ValidationContext,
    ValidationError,
    ValidationResult,
    ValidationWarning,
)
from app.schemas.registry import condition_met, get_fields_for_phase, get_schema
from app.utils.paths import get_path, set_path

logger = logging.getLogger(__name__)

# Inline images bigger than this are called out in size recommendations.
LARGE_INLINE_VALUE = 100 * 1024


class MissingReference(BaseModel):
    field: str
    referenced_type: str
    referenced_id: str
    message: str


class CrossReferenceResult(BaseModel):
    valid: bool = True
    errors: List[ValidationError] = Field(default_factory=list)
    warnings: List[ValidationWarning] = Field(default_factory=list)
    missing_references: List[MissingReference] = Field(default_factory=list)


class ConsistencyIssue(BaseModel):
    type: Literal["duplicate", "orphan", "imbalance", "conflict"]
    severity: Literal["error", "warning"]
    message: str
    message_es: str
    fields: List[str] = Field(default_factory=list)


class ConsistencyResult(BaseModel):
    consistent: bool = True
    issues: List[ConsistencyIssue] = Field(default_factory=list)


class AppliedFix(BaseModel):
    field: str
    code: str
    old_value: Any = None
    new_value: Any = None
    reason: str


class AutoFixResult(BaseModel):
    fixed_entity: Dict[str, Any]
    applied_fixes: List[AppliedFix] = Field(default_factory=list)
    remaining_errors: List[ValidationError] = Field(default_factory=list)


class CompleteValidation(BaseModel):
    valid: bool
    schema_result: ValidationResult
    cross_references: CrossReferenceResult
    consistency: ConsistencyResult
    size: SizeValidationResult


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _fmt(n: float) -> str:
    return f"{n:g}"


class EntityValidator:

    # =========================================================================
    # SCHEMA VALIDATION
    # =========================================================================

    def validate(
        self, entity: Dict[str, Any], kind: str, context: Optional[ValidationContext] = None
    ) -> ValidationResult:
        schema = get_schema(kind)
        return self._validate_fields(entity, schema.fields, kind, context, run_cross_field=True)

    def validate_for_phase(
        self,
        entity: Dict[str, Any],
        kind: str,
        phase_id: str,
        context: Optional[ValidationContext] = None,
    ) -> ValidationResult:
        fields = get_fields_for_phase(kind, phase_id)
        return self._validate_fields(entity, fields, kind, context, run_cross_field=False)

    def _validate_fields(
        self,
        entity: Dict[str, Any],
        fields: List[FormFieldSchema],
        kind: str,
        context: Optional[ValidationContext],
        run_cross_field: bool,
    ) -> ValidationResult:
        context = context or ValidationContext()
        result = ValidationResult()

        for field in fields:
            visible, required = self._apply_dependencies(field, entity)
            if not visible:
                continue
            field_result = self.validate_field(field, entity.get(field.name), context, required)
            result.errors.extend(field_result.errors)
            result.warnings.extend(field_result.warnings)

        if run_cross_field:
            schema = get_schema(kind)
            for rule in schema.cross_field_validations:
                if not rule.validate_fn(entity, context):
                    result.errors.append(
                        ValidationError(
                            field=",".join(rule.fields),
                            code=rule.error_code,
                            message=rule.message.get("en", ""),
                            message_es=rule.message.get("es"),
                        )
                    )

        result.valid = not result.errors
        return result

    @staticmethod
    def _apply_dependencies(field: FormFieldSchema, entity: Dict[str, Any]):
        visible, required = True, field.validation.required
        for dep in field.depends_on or []:
            met = condition_met(dep, entity.get(dep.field))
            if dep.action == "show" and not met:
                visible = False
            elif dep.action == "hide" and met:
                visible = False
            elif dep.action == "require" and met:
                required = True
            elif dep.action == "unrequire" and met:
                required = False
        return visible, required

    def validate_field(
        self,
        field: FormFieldSchema,
        value: Any,
        context: Optional[ValidationContext] = None,
        required: Optional[bool] = None,
    ) -> ValidationResult:
        rules = field.validation
        required = rules.required if required is None else required
        en, es = field.label.get("en", field.name), field.label.get("es", field.name)
        errors: List[ValidationError] = []
        warnings: List[ValidationWarning] = []

        def fail(code: ErrorCode, message: str, message_es: str):
            errors.append(
                ValidationError(field=field.name, code=code.value, message=message, message_es=message_es, value=value)
            )

        if required and (value is None or value == ""):
            fail(ErrorCode.REQUIRED, f"{en} is required", f"{es} es requerido")
            return ValidationResult(valid=False, errors=errors)
        if value is None:
            return ValidationResult()

        if isinstance(value, str):
            if rules.min_length is not None and len(value) < rules.min_length:
                fail(
                    ErrorCode.MIN_LENGTH,
                    f"{en} must be at least {rules.min_length} characters",
                    f"{es} debe tener al menos {rules.min_length} caracteres",
                )
            if rules.max_length is not None and len(value) > rules.max_length:
                fail(
                    ErrorCode.MAX_LENGTH,
                    f"{en} must be at most {rules.max_length} characters",
                    f"{es} debe tener como máximo {rules.max_length} caracteres",
                )
            if rules.pattern and not re.search(rules.pattern, value):
                custom = rules.pattern_message or {}
                fail(
                    ErrorCode.PATTERN,
                    custom.get("en", f"{en} has an invalid format"),
                    custom.get("es", f"{es} tiene un formato inválido"),
                )

        if _is_number(value):
            if rules.min is not None and value < rules.min:
                fail(ErrorCode.MIN_VALUE, f"{en} must be at least {_fmt(rules.min)}", f"{es} debe ser al menos {_fmt(rules.min)}")
            if rules.max is not None and value > rules.max:
                fail(ErrorCode.MAX_VALUE, f"{en} must be at most {_fmt(rules.max)}", f"{es} debe ser como máximo {_fmt(rules.max)}")

        if rules.one_of is not None and value not in rules.one_of:
            allowed = ", ".join(str(v) for v in rules.one_of)
            fail(ErrorCode.ONE_OF, f"{en} must be one of: {allowed}", f"{es} debe ser uno de: {allowed}")

        if rules.custom is not None:
            custom_result = rules.custom(value, context or ValidationContext())
            errors.extend(custom_result.errors)
            warnings.extend(custom_result.warnings)

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    # =========================================================================
    # CROSS REFERENCES
    # =========================================================================

    def validate_cross_references(
        self, entity: Dict[str, Any], context: Optional[ValidationContext] = None
    ) -> CrossReferenceResult:
        result = CrossReferenceResult()
        universe = context.universe if context else None

        if universe and entity.get("universeId"):
            race_system = universe.get("raceSystem") or {}
            race_id = entity.get("raceId")
            if race_id and race_system.get("enabled"):
                race_ids = [r.get("id") for r in race_system.get("races") or []]
                if race_id not in race_ids:
                    result.errors.append(
                        ValidationError(
                            field="raceId",
                            code=ErrorCode.INVALID_REFERENCE.value,
                            message=f'Race "{race_id}" not found in universe',
                            message_es=f'Raza "{race_id}" no encontrada en el universo',
                            value=race_id,
                        )
                    )
                    result.missing_references.append(
                        MissingReference(
                            field="raceId",
                            referenced_type="race",
                            referenced_id=str(race_id),
                            message=f'Race "{race_id}" not found in universe',
                        )
                    )

            stat_defs = universe.get("statDefinitions") or {}
            if stat_defs:
                for key in (entity.get("stats") or {}):
                    if key not in stat_defs:
                        result.warnings.append(
                            ValidationWarning(
                                field=f"stats.{key}",
                                code="UNKNOWN_STAT",
                                message=f'Stat "{key}" is not defined in universe',
                                message_es=f'La estadística "{key}" no está definida en el universo',
                                suggestion="This stat will be ignored during gameplay",
                            )
                        )

        own_defs = entity.get("statDefinitions")
        if isinstance(own_defs, dict) and entity.get("progressionRules"):
            for rule in entity["progressionRules"]:
                for stat in rule.get("affectedStats") or []:
                    if stat in own_defs:
                        continue
                    rule_id = rule.get("id", "?")
                    result.warnings.append(
                        ValidationWarning(
                            field=f"progressionRules.{rule_id}",
                            code="RULE_REFERENCES_UNKNOWN_STAT",
                            message=f'Rule "{rule_id}" references unknown stat "{stat}"',
                            message_es=f'La regla "{rule_id}" usa la estadística desconocida "{stat}"',
                        )
                    )
                    result.missing_references.append(
                        MissingReference(
                            field=f"progressionRules.{rule_id}",
                            referenced_type="stat",
                            referenced_id=str(stat),
                            message=f'Stat "{stat}" is not defined',
                        )
                    )

        result.valid = not result.errors
        return result

    # =========================================================================
    # CONSISTENCY
    # =========================================================================

    def validate_consistency(self, entity: Dict[str, Any]) -> ConsistencyResult:
        issues: List[ConsistencyIssue] = []

        for key, value in (entity.get("stats") or {}).items():
            if _is_number(value) and value < 0:
                issues.append(
                    ConsistencyIssue(
                        type="imbalance",
                        severity="error",
                        message=f'Stat "{key}" has a negative value',
                        message_es=f'La estadística "{key}" tiene un valor negativo',
                        fields=[f"stats.{key}"],
                    )
                )

        race_system = entity.get("raceSystem") or {}
        races = race_system.get("races") or []
        for dup in self._duplicate_ids(races):
            issues.append(
                ConsistencyIssue(
                    type="duplicate",
                    severity="error",
                    message=f'Duplicate race id "{dup}"',
                    message_es=f'Id de raza duplicado "{dup}"',
                    fields=["raceSystem.races"],
                )
            )
        if race_system.get("enabled") and not races:
            issues.append(
                ConsistencyIssue(
                    type="imbalance",
                    severity="warning",
                    message="Race system is enabled but has no races",
                    message_es="El sistema de razas está activado pero no tiene razas",
                    fields=["raceSystem"],
                )
            )

        for dup in self._duplicate_ids(entity.get("progressionRules") or []):
            issues.append(
                ConsistencyIssue(
                    type="duplicate",
                    severity="error",
                    message=f'Duplicate progression rule id "{dup}"',
                    message_es=f'Id de regla de progresión duplicado "{dup}"',
                    fields=["progressionRules"],
                )
            )

        awakening = entity.get("awakeningSystem") or {}
        if awakening.get("enabled"):
            levels = awakening.get("levels") or []
            thresholds = awakening.get("thresholds") or []
            if len(thresholds) < len(levels):
                issues.append(
                    ConsistencyIssue(
                        type="orphan",
                        severity="error",
                        message=f"{len(levels) - len(thresholds)} awakening level(s) have no threshold",
                        message_es=f"{len(levels) - len(thresholds)} nivel(es) de despertar sin umbral",
                        fields=["awakeningSystem.levels", "awakeningSystem.thresholds"],
                    )
                )

        consistent = not any(i.severity == "error" for i in issues)
        return ConsistencyResult(consistent=consistent, issues=issues)

    @staticmethod
    def _duplicate_ids(items: List[Any]) -> List[Any]:
        seen, dups = set(), []
        for item in items:
            if not isinstance(item, dict) or item.get("id") is None:
                continue
            item_id = item["id"]
            if item_id in seen and item_id not in dups:
                dups.append(item_id)
            seen.add(item_id)
        return dups

    # =========================================================================
    # SIZE
    # =========================================================================

    def validate_size(self, entity: Dict[str, Any]) -> SizeValidationResult:
        size = len(json.dumps(entity, ensure_ascii=False, default=str).encode("utf-8"))
        recommendations = []

        if size > DOC_SIZE_LIMIT:
            recommendations.append(
                "Document exceeds the 1 MiB storage limit. Remove large images or reduce content."
            )
        elif size > RECOMMENDED_DOC_SIZE:
            recommendations.append("Document is large. Consider optimizing images or reducing description length.")

        if size > RECOMMENDED_DOC_SIZE:
            for path in self._large_values(entity):
                recommendations.append(f"Field '{path}' is very large; store it as a separate file and keep only its URL.")

        return SizeValidationResult(size_bytes=size, within_limit=size <= DOC_SIZE_LIMIT, recommendations=recommendations)

    def _large_values(self, data: Any, prefix: str = "") -> List[str]:
        found = []
        if isinstance(data, dict):
            for key, value in data.items():
                found.extend(self._large_values(value, f"{prefix}.{key}" if prefix else key))
        elif isinstance(data, list):
            for i, value in enumerate(data):
                found.extend(self._large_values(value, f"{prefix}.{i}"))
        elif isinstance(data, str) and len(data) > LARGE_INLINE_VALUE:
            found.append(prefix)
        return found

    # =========================================================================
    # AUTO FIX
    # =========================================================================

    def auto_fix(
        self,
        entity: Dict[str, Any],
        errors: List[Union[ValidationError, Dict[str, Any]]],
        kind: str,
    ) -> AutoFixResult:
        schema = get_schema(kind)
        fixed = copy.deepcopy(entity)
        applied: List[AppliedFix] = []
        remaining: List[ValidationError] = []

        for raw_error in errors:
            error = raw_error if isinstance(raw_error, ValidationError) else ValidationError(**raw_error)
            field = schema.get_field(error.field)
            current = get_path(fixed, error.field)
            fix = self._fix_for(error, field, current) if field else None
            if fix is None:
                remaining.append(error)
                continue
            new_value, reason = fix
            set_path(fixed, error.field, new_value)
            applied.append(
                AppliedFix(field=error.field, code=error.code, old_value=current, new_value=new_value, reason=reason)
            )

        if applied:
            logger.info(f"Auto-fixed {len(applied)} field(s) on {kind}: {[f.field for f in applied]}")
        return AutoFixResult(fixed_entity=fixed, applied_fixes=applied, remaining_errors=remaining)

    @staticmethod
    def _fix_for(error: ValidationError, field: FormFieldSchema, current: Any):
        rules = field.validation
        code = error.code
        if code == ErrorCode.MAX_LENGTH.value and isinstance(current, str) and rules.max_length is not None:
            return current[: rules.max_length], f"Truncated to {rules.max_length} characters"
        if code == ErrorCode.MIN_VALUE.value and _is_number(current) and rules.min is not None:
            return rules.min, f"Raised to minimum {_fmt(rules.min)}"
        if code == ErrorCode.MAX_VALUE.value and _is_number(current) and rules.max is not None:
            return rules.max, f"Lowered to maximum {_fmt(rules.max)}"
        if code == ErrorCode.REQUIRED.value and field.default_value is not None:
            return copy.deepcopy(field.default_value), "Applied default value"
        return None

    # =========================================================================
    # EVERYTHING
    # =========================================================================

    def validate_complete(
        self, entity: Dict[str, Any], kind: str, context: Optional[ValidationContext] = None
    ) -> CompleteValidation:
        schema_result = self.validate(entity, kind, context)
        cross = self.validate_cross_references(entity, context)
        consistency = self.validate_consistency(entity)
        size = self.validate_size(entity)
        valid = schema_result.valid and cross.valid and consistency.consistent and size.within_limit
        if not valid:
            logger.debug(
                f"{kind} failed validation: schema={schema_result.valid} refs={cross.valid} "
                f"consistency={consistency.consistent} size={size.within_limit}"
            )
        return CompleteValidation(
            valid=valid,
            schema_result=schema_result,
            cross_references=cross,
            consistency=consistency,
            size=size,
        )
