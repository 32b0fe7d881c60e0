"""Filter, search and sort over the in-memory log collection."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from ..domain import LogEntry


class SortKey(str, Enum):
    START_TIME = "start_time"
    ACTIVITY_NAME = "activity_name"
    USER_NAME = "user_name"
    DURATION = "duration"


_SORT_FIELDS: Dict[SortKey, Callable[[LogEntry], object]] = {
    SortKey.START_TIME: lambda log: log.start_time,
    SortKey.ACTIVITY_NAME: lambda log: log.activity_name,
    SortKey.USER_NAME: lambda log: log.user_name,
    SortKey.DURATION: lambda log: log.duration_seconds,
}


@dataclass
class LogFilters:
    range_start: Optional[datetime] = None
    range_end: Optional[datetime] = None
    activity_type_id: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def active(self) -> bool:
        return any(
            value is not None
            for value in (self.range_start, self.range_end, self.activity_type_id, self.user_id)
        )

    def matches(self, log: LogEntry) -> bool:
        if self.range_start is not None and not log.start_time > self.range_start:
            return False
        if self.range_end is not None and not log.start_time < self.range_end:
            return False
        if self.activity_type_id is not None and log.activity_type_id != self.activity_type_id:
            return False
        if self.user_id is not None and log.user_id != self.user_id:
            return False
        return True


def matches_search(log: LogEntry, query: str) -> bool:
    needle = query.lower()
    if needle in log.activity_name.lower() or needle in log.user_name.lower():
        return True
    if needle in log.role.display.lower():
        return True
    return any(needle in m.name.lower() or needle in m.value.lower() for m in log.metrics)


@dataclass
class LogQuery:
    """Query state for one log screen. Applying it never mutates the logs."""

    filters: LogFilters = field(default_factory=LogFilters)
    search: str = ""
    sort_key: SortKey = SortKey.START_TIME
    ascending: bool = False

    def select_sort(self, key: SortKey) -> None:
        if key is self.sort_key:
            self.ascending = not self.ascending
        else:
            self.sort_key = key
            self.ascending = True

    def clear_filters(self) -> None:
        self.filters = LogFilters()

    def apply(self, logs: Iterable[LogEntry]) -> List[LogEntry]:
        result = [log for log in logs if self.filters.matches(log)]
        query = self.search.strip()
        if query:
            result = [log for log in result if matches_search(log, query)]
        result.sort(key=_SORT_FIELDS[self.sort_key], reverse=not self.ascending)
        return result

    def as_dict(self) -> Dict[str, object]:
        f = self.filters
        return {
            "filters": {
                "range_start": f.range_start.isoformat() if f.range_start else None,
                "range_end": f.range_end.isoformat() if f.range_end else None,
                "activity_type_id": f.activity_type_id,
                "user_id": f.user_id,
            },
            "search": self.search,
            "sort_key": self.sort_key.value,
            "ascending": self.ascending,
        }
