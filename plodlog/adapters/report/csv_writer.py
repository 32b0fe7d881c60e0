"""CSV export of log entries."""
from __future__ import annotations

import csv
from typing import IO, Iterable, List

from ...domain import LogEntry

HEADER = [
    "ID",
    "Activity Name",
    "User Name",
    "Role",
    "Start Time",
    "End Time",
    "Duration (s)",
    "Shift",
    "Co-workers (IDs)",
    "Logged Data",
]
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M"


def log_row(log: LogEntry) -> List[object]:
    return [
        log.id,
        log.activity_name,
        log.user_name,
        log.role.display,
        log.start_time.strftime(TIMESTAMP_FORMAT),
        log.end_time.strftime(TIMESTAMP_FORMAT),
        log.duration_seconds,
        log.shift.display,
        ";".join(log.coworker_ids),
        ";".join(f"{metric.name}:{metric.value}" for metric in log.metrics),
    ]


def write_logs(handle: IO[str], logs: Iterable[LogEntry]) -> None:
    writer = csv.writer(handle)
    writer.writerow(HEADER)
    for log in logs:
        writer.writerow(log_row(log))
