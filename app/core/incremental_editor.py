"""
Incremental Editor
==================
Applies field-level changes to an entity dict and keeps a linear undo/redo log.

Entities are never mutated in place: every operation deep-copies its input
and returns the new version. The changeset stored in history is the
*effective* one, rewritten at apply time so it can always be inverted:
- "add" on a path that already holds a value is recorded as "update"
- writes through a missing/non-dict intermediate are recorded at that
  intermediate with the value nested below it
- "delete" of a missing path is dropped
- "move" is recorded as delete + add
"""

import copy
import logging
from typing import Any, Dict, List, Optional

from app.core.field_extractor import FieldExtractor
from app.models.edit import (
    ChangeDetectionRequest,
    ChangeDetectionResult,
    DiffSummary,
    EditHistory,
    EntityChangeset,
    EntityDiff,
    FieldChange,
    IncrementalEditConfig,
)
from app.utils.paths import (
    MISSING,
    delete_path,
    get_path,
    has_path,
    nest_value,
    set_path,
    shallowest_unwritable_prefix,
)

logger = logging.getLogger(__name__)

_OPERATIONS = ("add", "update", "delete", "move")

# Top-level keys whose edits ripple into dependent data.
SECONDARY_EFFECTS = {
    "statDefinitions": "progressionRules",
    "raceSystem": "characters (race selections)",
    "awakeningSystem": "character awakening levels",
}


class IncrementalEditor:
    def __init__(
        self,
        entity_type: str = "universe",
        config: Optional[IncrementalEditConfig] = None,
        extractor: Optional[FieldExtractor] = None,
    ):
        self.entity_type = entity_type
        self.config = config or IncrementalEditConfig()
        self.extractor = extractor or FieldExtractor()
        self.history = EditHistory(max_size=self.config.max_history_size)

    # =========================================================================
    # APPLY
    # =========================================================================

    def apply_changes(
        self,
        entity: Dict[str, Any],
        changes: List[FieldChange],
        source: str = "user",
        description: Optional[str] = None,
        user_message: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Apply `changes` in order to a copy of `entity` and record one changeset.
        An empty change list still records a no-op changeset.
        """
        working = copy.deepcopy(entity)
        effective: List[FieldChange] = []

        for change in changes:
            if self.config.validate_before_apply and not self._is_well_formed(change):
                logger.warning(f"Skipping malformed change: {change}")
                continue
            for recorded in self._effective_changes(working, change):
                self._apply_in_place(working, recorded)
                effective.append(recorded)

        changeset = self.create_changeset(
            effective,
            source=source,
            description=description or self.describe_changes(changes),
            user_message=user_message,
            entity_id=working.get("id"),
        )
        changeset.applied = True
        self._record(changeset)
        logger.debug(f"Applied changeset {changeset.id} ({len(effective)} change(s))")
        return working

    def apply_field_change(self, entity: Dict[str, Any], change: FieldChange) -> Dict[str, Any]:
        """Apply a single change to a copy. History is not touched."""
        working = copy.deepcopy(entity)
        for recorded in self._effective_changes(working, change):
            self._apply_in_place(working, recorded)
        return working

    @staticmethod
    def _is_well_formed(change: FieldChange) -> bool:
        if not change.path or change.operation not in _OPERATIONS:
            return False
        return change.operation != "move" or bool(change.new_path)

    def _effective_changes(self, working: Dict[str, Any], change: FieldChange) -> List[FieldChange]:
        if change.operation == "delete":
            if not has_path(working, change.path):
                return []
            old = copy.deepcopy(get_path(working, change.path))
            return [FieldChange(change.path, "delete", old_value=old, reason=change.reason, confidence=change.confidence)]

        if change.operation == "move":
            if not has_path(working, change.path):
                return []
            value = copy.deepcopy(get_path(working, change.path))
            removal = FieldChange(change.path, "delete", old_value=value, reason=change.reason)
            # The write target is computed against the state after the removal.
            scratch = copy.deepcopy(working)
            delete_path(scratch, change.path)
            return [removal, self._effective_write(scratch, change.new_path, value, change)]

        return [self._effective_write(working, change.path, change.new_value, change)]

    @staticmethod
    def _effective_write(working: Dict[str, Any], path: str, value: Any, change: FieldChange) -> FieldChange:
        value = copy.deepcopy(value)
        if has_path(working, path):
            old = copy.deepcopy(get_path(working, path))
            return FieldChange(path, "update", old, value, change.reason, change.confidence)

        prefix = shallowest_unwritable_prefix(working, path)
        if prefix != path:
            value = nest_value(path, prefix, value)
        old = get_path(working, prefix, MISSING)
        if old is MISSING:
            return FieldChange(prefix, "add", None, value, change.reason, change.confidence)
        return FieldChange(prefix, "update", copy.deepcopy(old), value, change.reason, change.confidence)

    @staticmethod
    def _apply_in_place(working: Dict[str, Any], change: FieldChange):
        if change.operation == "delete":
            delete_path(working, change.path)
        else:
            set_path(working, change.path, copy.deepcopy(change.new_value))

    @staticmethod
    def _invert_in_place(working: Dict[str, Any], change: FieldChange):
        if change.operation == "add":
            delete_path(working, change.path)
        else:
            set_path(working, change.path, copy.deepcopy(change.old_value))

    # =========================================================================
    # HISTORY
    # =========================================================================

    def _record(self, changeset: EntityChangeset):
        history = self.history
        # A new change discards the redo tail
        del history.changesets[history.current_index + 1:]
        history.changesets.append(changeset)
        overflow = len(history.changesets) - history.max_size
        if overflow > 0:
            del history.changesets[:overflow]
        history.current_index = len(history.changesets) - 1

    def undo(self, entity: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not self.can_undo():
            return None
        changeset = self.history.changesets[self.history.current_index]
        working = copy.deepcopy(entity)
        for change in reversed(changeset.changes):
            self._invert_in_place(working, change)
        self.history.current_index -= 1
        logger.debug(f"Undid changeset {changeset.id}")
        return working

    def redo(self, entity: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not self.can_redo():
            return None
        changeset = self.history.changesets[self.history.current_index + 1]
        working = copy.deepcopy(entity)
        for change in changeset.changes:
            self._apply_in_place(working, change)
        self.history.current_index += 1
        logger.debug(f"Redid changeset {changeset.id}")
        return working

    def can_undo(self) -> bool:
        return self.history.can_undo()

    def can_redo(self) -> bool:
        return self.history.can_redo()

    def get_history(self) -> EditHistory:
        return self.history

    def get_changeset(self, changeset_id: str) -> Optional[EntityChangeset]:
        for changeset in self.history.changesets:
            if changeset.id == changeset_id:
                return changeset
        return None

    def clear_history(self):
        self.history = EditHistory(max_size=self.config.max_history_size)

    def create_changeset(
        self,
        changes: List[FieldChange],
        source: str = "user",
        description: Optional[str] = None,
        user_message: Optional[str] = None,
        entity_id: Optional[str] = None,
    ) -> EntityChangeset:
        return EntityChangeset(
            entity_type=self.entity_type,
            entity_id=entity_id,
            changes=list(changes),
            source=source,
            description=description or self.describe_changes(changes),
            user_message=user_message,
        )

    # =========================================================================
    # DIFF
    # =========================================================================

    def generate_diff(self, old: Dict[str, Any], new: Dict[str, Any]) -> EntityDiff:
        changes: List[FieldChange] = []
        self._diff_into(old or {}, new or {}, "", changes)

        summary = DiffSummary()
        for change in changes:
            if change.operation == "add":
                summary.added += 1
            elif change.operation == "update":
                summary.updated += 1
            elif change.operation == "delete":
                summary.deleted += 1
            top = change.path.split(".")[0]
            if top not in summary.affected_keys:
                summary.affected_keys.append(top)
        return EntityDiff(has_changes=bool(changes), changes=changes, summary=summary)

    def _diff_into(self, old: Dict[str, Any], new: Dict[str, Any], prefix: str, out: List[FieldChange]):
        for key, new_value in new.items():
            path = f"{prefix}{key}"
            if key not in old:
                out.append(FieldChange(path, "add", None, copy.deepcopy(new_value)))
                continue
            old_value = old[key]
            if isinstance(old_value, dict) and isinstance(new_value, dict):
                self._diff_into(old_value, new_value, f"{path}.", out)
            elif old_value != new_value:
                # Lists are compared as a whole
                out.append(FieldChange(path, "update", copy.deepcopy(old_value), copy.deepcopy(new_value)))
        for key, old_value in old.items():
            if key not in new:
                out.append(FieldChange(f"{prefix}{key}", "delete", copy.deepcopy(old_value), None))

    # =========================================================================
    # CHANGE DETECTION
    # =========================================================================

    def detect_changes(self, request: ChangeDetectionRequest) -> ChangeDetectionResult:
        """Turn a free-text edit request into concrete field changes against the current entity."""
        language = (request.context or {}).get("language", "es")
        extracted = self.extractor.extract_fields(request.user_message, request.entity_type, language)

        changes: List[FieldChange] = []
        for field in extracted:
            old = get_path(request.current_entity, field.field_name)
            if old == field.value:
                continue
            changes.append(
                FieldChange(
                    path=field.field_name,
                    operation="add" if old is None else "update",
                    old_value=old,
                    new_value=field.value,
                    reason=f"Extracted from user input: {field.source_text or field.value}",
                    confidence=field.confidence,
                )
            )

        confidence = sum(c.confidence for c in changes) / len(changes) if changes else 0.0
        affected, warnings = [], []
        if self.config.detect_secondary_effects:
            affected, warnings = self.secondary_effects([c.path for c in changes])

        return ChangeDetectionResult(
            changes=changes,
            confidence=round(confidence, 2),
            has_secondary_effects=bool(affected),
            affected_fields=affected,
            warnings=warnings,
        )

    @staticmethod
    def secondary_effects(paths: List[str]):
        """Dependent data touched by edits on `paths`, plus a warning per cascade."""
        affected, warnings = [], []
        for path in paths:
            top = path.split(".")[0]
            target = SECONDARY_EFFECTS.get(top)
            if target and target not in affected:
                affected.append(target)
                warnings.append(f"Changing {top} may affect {target}")
        return affected, warnings

    @staticmethod
    def describe_changes(changes: List[FieldChange]) -> str:
        if not changes:
            return "No changes"
        if len(changes) == 1:
            change = changes[0]
            if change.operation == "add":
                return f"Added {change.path}"
            if change.operation == "delete":
                return f"Removed {change.path}"
            if change.operation == "move":
                return f"Moved {change.path} to {change.new_path}"
            return f"Updated {change.path}"
        return f"{len(changes)} changes: {', '.join(c.path for c in changes)}"
