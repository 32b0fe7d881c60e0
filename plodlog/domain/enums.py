"""Operational role and shift enumerations."""
from __future__ import annotations

from enum import Enum
from typing import Optional, Type, TypeVar

__all__ = [
    "OperationalRole",
    "ShiftType",
    "parse_enum",
]

E = TypeVar("E", bound="_NamedEnum")


class _NamedEnum(str, Enum):
    """String enum serialised by its textual name."""

    @property
    def display(self) -> str:
        return _DISPLAY.get(self, self.value)

    @classmethod
    def from_name(cls: Type[E], text: Optional[str]) -> E:
        return parse_enum(cls, text)


class OperationalRole(_NamedEnum):
    OPERATOR = "Operator"
    SUPERVISOR = "Supervisor"
    TRAINEE = "Trainee"
    ADMIN = "Admin"
    OTHER = "Other"


class ShiftType(_NamedEnum):
    DAY = "Day"
    NIGHT = "Night"
    AFTERNOON = "Afternoon"
    OTHER = "Other"


_DISPLAY = {
    ShiftType.DAY: "Day Shift",
    ShiftType.NIGHT: "Night Shift",
    ShiftType.AFTERNOON: "Afternoon Shift",
}


def parse_enum(enum_cls: Type[E], text: Optional[str]) -> E:
    """Return the member of *enum_cls* named *text*.

    Matching is case-insensitive and tolerates a ``ClassName.`` prefix. Anything that
    does not match falls back to ``OTHER`` so that documents written by newer clients
    still load.
    """

    if isinstance(text, enum_cls):
        return text
    normalized = (text or "").strip()
    if "." in normalized:
        normalized = normalized.rsplit(".", 1)[1]
    for member in enum_cls:
        if member.value.lower() == normalized.lower() or member.name.lower() == normalized.lower():
            return member
    return enum_cls.OTHER  # type: ignore[attr-defined]
