"""Standalone printable HTML report."""
from __future__ import annotations

from datetime import datetime
from typing import Mapping, Sequence

from jinja2 import Environment, PackageLoader, select_autoescape

from ...domain import LogEntry

_env = Environment(
    loader=PackageLoader("plodlog", "templates"),
    autoescape=select_autoescape(["html"]),
)


def render_logs(logs: Sequence[LogEntry], user_names: Mapping[str, str], *, generated_at: datetime) -> str:
    rows = [
        {
            "activity": log.activity_name,
            "user": log.user_name,
            "start": log.start_time.strftime("%Y-%m-%d %H:%M"),
            "minutes": log.duration_seconds // 60,
            "metrics": [f"{m.name}: {m.value} {m.unit}".rstrip() for m in log.metrics],
            "coworkers": ", ".join(user_names.get(uid, uid) for uid in log.coworker_ids),
        }
        for log in logs
    ]
    template = _env.get_template("reports/logs.html")
    return template.render(rows=rows, generated_at=generated_at.strftime("%Y-%m-%d %H:%M"))
