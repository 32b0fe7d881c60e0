"""Domain objects for PlodLog."""

from .enums import OperationalRole, ShiftType
from .models import (
    PIN_LENGTH,
    SENTINEL_PIN,
    ActivityType,
    LogEntry,
    LoggedMetric,
    MetricDefinition,
    User,
)

__all__ = [
    "ActivityType",
    "LogEntry",
    "LoggedMetric",
    "MetricDefinition",
    "OperationalRole",
    "PIN_LENGTH",
    "SENTINEL_PIN",
    "ShiftType",
    "User",
]
