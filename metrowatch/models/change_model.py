from enum import Enum
from typing import Any, Dict, Optional

from bson import ObjectId as _ObjectId
from pydantic import BaseModel, field_validator, model_validator


class ChangeKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


# realtime eventType / MongoDB operationType -> ChangeKind
_KIND_ALIASES = {
    "insert": ChangeKind.INSERT,
    "update": ChangeKind.UPDATE,
    "replace": ChangeKind.UPDATE,
    "delete": ChangeKind.DELETE,
}


def _row_id(row: Optional[Dict[str, Any]]) -> Optional[str]:
    if not row:
        return None
    for key in ("report_id", "id", "_id"):
        value = row.get(key)
        if value not in (None, ""):
            return str(value) if isinstance(value, (_ObjectId, int)) else value
    return None


class ChangeEvent(BaseModel):
    """One insert/update/delete notification for a single report."""

    kind: ChangeKind
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None

    @field_validator("kind", mode="before")
    @classmethod
    def coerce_kind(cls, value):
        if isinstance(value, ChangeKind):
            return value
        kind = _KIND_ALIASES.get(str(value or "").strip().lower())
        if kind is None:
            raise ValueError(f"Unknown change kind: {value!r}")
        return kind

    @model_validator(mode="after")
    def require_target(self):
        if not isinstance(self.report_id, str) or not self.report_id:
            raise ValueError(f"{self.kind.value} event has no report id")
        return self

    @property
    def report_id(self) -> Optional[str]:
        if self.kind == ChangeKind.DELETE:
            return _row_id(self.old)
        return _row_id(self.new)

    @classmethod
    def from_payload(cls, payload: Any) -> "ChangeEvent":
        """Build an event from any of the shapes the transports deliver.

        Accepted: ``{kind, new, old}``, the realtime shape
        ``{eventType, new, old}``, and a MongoDB change-stream document
        (``operationType``, ``fullDocument``, ``documentKey``).
        """
        if isinstance(payload, ChangeEvent):
            return payload
        if not isinstance(payload, dict):
            raise ValueError("Change payload must be a mapping")
        if "operationType" in payload:
            return cls.model_validate(
                {
                    "kind": payload.get("operationType"),
                    "new": payload.get("fullDocument"),
                    "old": payload.get("documentKey"),
                }
            )
        if "eventType" in payload:
            return cls.model_validate(
                {
                    "kind": payload.get("eventType"),
                    "new": payload.get("new") or None,
                    "old": payload.get("old") or None,
                }
            )
        return cls.model_validate(payload)
