"""Domain dataclasses for PlodLog.

Every entity converts to and from its document form. Documents carry enum members as
their textual names and timestamps as ``datetime`` instants; the document store decides
how instants are encoded on disk.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .enums import OperationalRole, ShiftType

SENTINEL_PIN = "00000"
PIN_LENGTH = 5


def _as_utc(value: Any) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if not isinstance(value, datetime):
        raise TypeError(f"expected an instant, got {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class User:
    id: str
    name: str
    role: OperationalRole
    permitted_activity_type_ids: Tuple[str, ...] = ()
    pin: str = SENTINEL_PIN
    signature: Optional[str] = None  # base64 PNG

    @property
    def must_rotate_pin(self) -> bool:
        return self.pin == SENTINEL_PIN

    def with_id(self, new_id: str) -> "User":
        return replace(self, id=new_id)

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "operationalRole": self.role.value,
            "permittedActivityTypeIds": list(self.permitted_activity_type_ids),
            "pin": self.pin,
            "signature": self.signature,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "User":
        return cls(
            id=doc["id"],
            name=doc.get("name", ""),
            role=OperationalRole.from_name(doc.get("operationalRole")),
            permitted_activity_type_ids=tuple(doc.get("permittedActivityTypeIds") or ()),
            pin=str(doc.get("pin", SENTINEL_PIN)),
            signature=doc.get("signature"),
        )

    def as_public_dict(self) -> Dict[str, Any]:
        """JSON view without the PIN."""
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role.value,
            "role_display": self.role.display,
            "permitted_activity_type_ids": list(self.permitted_activity_type_ids),
            "has_signature": bool(self.signature),
            "pin_reset_pending": self.must_rotate_pin,
        }


@dataclass(frozen=True)
class ActivityType:
    id: str
    name: str

    def with_id(self, new_id: str) -> "ActivityType":
        return replace(self, id=new_id)

    def to_document(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ActivityType":
        return cls(id=doc["id"], name=doc.get("name", ""))

    def as_dict(self) -> Dict[str, Any]:
        return self.to_document()


@dataclass(frozen=True)
class MetricDefinition:
    id: str
    name: str
    unit: str
    linked_activity_type_ids: Tuple[str, ...] = ()

    def applies_to(self, activity_type_id: str) -> bool:
        return activity_type_id in self.linked_activity_type_ids

    def with_id(self, new_id: str) -> "MetricDefinition":
        return replace(self, id=new_id)

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "unit": self.unit,
            "linkedActivityTypeIds": list(self.linked_activity_type_ids),
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "MetricDefinition":
        return cls(
            id=doc["id"],
            name=doc.get("name", ""),
            unit=doc.get("unit", ""),
            linked_activity_type_ids=tuple(doc.get("linkedActivityTypeIds") or ()),
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "unit": self.unit,
            "linked_activity_type_ids": list(self.linked_activity_type_ids),
        }


@dataclass(frozen=True)
class LoggedMetric:
    definition_id: str
    name: str
    value: str
    unit: str

    @classmethod
    def capture(cls, definition: MetricDefinition, value: str) -> "LoggedMetric":
        return cls(definition_id=definition.id, name=definition.name, value=value, unit=definition.unit)

    def to_document(self) -> Dict[str, Any]:
        return {"definitionId": self.definition_id, "name": self.name, "value": self.value, "unit": self.unit}

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "LoggedMetric":
        return cls(
            definition_id=doc["definitionId"],
            name=doc.get("name", ""),
            value=str(doc.get("value", "")),
            unit=doc.get("unit", ""),
        )


@dataclass(frozen=True)
class LogEntry:
    id: str
    activity_type_id: str
    activity_name: str
    user_id: str
    user_name: str
    role: OperationalRole
    start_time: datetime
    end_time: datetime
    duration_seconds: int
    shift: ShiftType
    metrics: Tuple[LoggedMetric, ...] = field(default_factory=tuple)
    coworker_ids: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def build(
        cls,
        *,
        activity: ActivityType,
        user: User,
        start_time: datetime,
        end_time: datetime,
        shift: ShiftType,
        metrics: List[LoggedMetric] | Tuple[LoggedMetric, ...] = (),
        coworker_ids: List[str] | Tuple[str, ...] = (),
    ) -> "LogEntry":
        start = _as_utc(start_time)
        end = _as_utc(end_time)
        if end < start:
            raise ValueError("End time cannot be before start time.")
        return cls(
            id="",
            activity_type_id=activity.id,
            activity_name=activity.name,
            user_id=user.id,
            user_name=user.name,
            role=user.role,
            start_time=start,
            end_time=end,
            duration_seconds=int((end - start).total_seconds()),
            shift=shift,
            metrics=tuple(metrics),
            coworker_ids=tuple(coworker_ids),
        )

    def with_id(self, new_id: str) -> "LogEntry":
        return replace(self, id=new_id)

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "activityTypeId": self.activity_type_id,
            "activityName": self.activity_name,
            "userId": self.user_id,
            "userName": self.user_name,
            "operationalRole": self.role.value,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration_seconds,
            "shift": self.shift.value,
            "metrics": [metric.to_document() for metric in self.metrics],
            "coworkerIds": list(self.coworker_ids),
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "LogEntry":
        return cls(
            id=doc["id"],
            activity_type_id=doc["activityTypeId"],
            activity_name=doc.get("activityName", ""),
            user_id=doc["userId"],
            user_name=doc.get("userName", ""),
            role=OperationalRole.from_name(doc.get("operationalRole")),
            start_time=_as_utc(doc["startTime"]),
            end_time=_as_utc(doc["endTime"]),
            duration_seconds=int(doc.get("duration", 0)),
            shift=ShiftType.from_name(doc.get("shift")),
            metrics=tuple(LoggedMetric.from_document(item) for item in doc.get("metrics") or ()),
            coworker_ids=tuple(doc.get("coworkerIds") or ()),
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "activity_type_id": self.activity_type_id,
            "activity_name": self.activity_name,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "role": self.role.value,
            "role_display": self.role.display,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "duration_seconds": self.duration_seconds,
            "shift": self.shift.value,
            "shift_display": self.shift.display,
            "metrics": [
                {"definition_id": m.definition_id, "name": m.name, "value": m.value, "unit": m.unit}
                for m in self.metrics
            ],
            "coworker_ids": list(self.coworker_ids),
        }
