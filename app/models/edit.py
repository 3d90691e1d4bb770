"""
Incremental Edit Structures
===========================
Dataclasses for field-level changes, changesets and the undo/redo history.
"""

import random
import string
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

ChangeOperation = Literal["add", "update", "delete", "move"]
ChangeSource = Literal["user", "ai", "system", "validation"]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _rand_suffix(length: int = 9) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


@dataclass
class FieldChange:
    path: str
    operation: ChangeOperation
    old_value: Any = None
    new_value: Any = None
    reason: Optional[str] = None
    confidence: Optional[float] = None
    new_path: Optional[str] = None  # move target

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "path": self.path,
            "operation": self.operation,
            "old_value": self.old_value,
            "new_value": self.new_value,
        }
        if self.reason:
            result["reason"] = self.reason
        if self.confidence is not None:
            result["confidence"] = self.confidence
        if self.new_path:
            result["new_path"] = self.new_path
        return result


@dataclass
class EntityChangeset:
    entity_type: str
    changes: List[FieldChange]
    source: ChangeSource
    description: str
    entity_id: Optional[str] = None
    applied: bool = False
    user_message: Optional[str] = None
    timestamp: int = field(default_factory=_now_ms)
    id: str = ""

    def __post_init__(self):
        if not self.id:
            self.id = f"cs_{self.timestamp}_{_rand_suffix()}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "timestamp": self.timestamp,
            "changes": [c.to_dict() for c in self.changes],
            "source": self.source,
            "description": self.description,
            "applied": self.applied,
            "user_message": self.user_message,
        }


@dataclass
class EditHistory:
    """
    Linear undo/redo log.

    Invariant: -1 <= current_index < len(changesets).
    """
    changesets: List[EntityChangeset] = field(default_factory=list)
    current_index: int = -1
    max_size: int = 50

    def can_undo(self) -> bool:
        return self.current_index >= 0

    def can_redo(self) -> bool:
        return self.current_index < len(self.changesets) - 1


@dataclass
class DiffSummary:
    added: int = 0
    updated: int = 0
    deleted: int = 0
    affected_keys: List[str] = field(default_factory=list)


@dataclass
class EntityDiff:
    has_changes: bool
    changes: List[FieldChange]
    summary: DiffSummary


@dataclass
class ChangeDetectionRequest:
    user_message: str
    current_entity: Dict[str, Any]
    entity_type: str
    context: Optional[Dict[str, Any]] = None


@dataclass
class ChangeDetectionResult:
    changes: List[FieldChange]
    confidence: float
    has_secondary_effects: bool = False
    affected_fields: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class IncrementalEditConfig:
    max_history_size: int = 50
    detect_secondary_effects: bool = True
    validate_before_apply: bool = True
