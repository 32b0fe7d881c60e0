from __future__ import annotations

from datetime import datetime
from io import BytesIO, StringIO
from typing import Mapping, Sequence, Tuple

from ..adapters.report import csv_writer, html_writer, xlsx_writer
from ..domain import LogEntry


def _stamp(generated_at: datetime) -> str:
    return generated_at.strftime("%Y%m%d")


def export_logs_csv(logs: Sequence[LogEntry], *, generated_at: datetime) -> Tuple[StringIO, str]:
    buffer = StringIO()
    csv_writer.write_logs(buffer, logs)
    buffer.seek(0)
    filename = f"plodlog_logs_{_stamp(generated_at)}.csv"
    return buffer, filename


def export_logs_xlsx(
    logs: Sequence[LogEntry],
    user_names: Mapping[str, str],
    *,
    generated_at: datetime,
    blocks_per_page: int = 4,
) -> Tuple[BytesIO, str]:
    wb = xlsx_writer.build_workbook(
        logs, user_names, generated_at=generated_at, blocks_per_page=blocks_per_page
    )
    stream = BytesIO()
    wb.save(stream)
    stream.seek(0)
    filename = f"plodlog_report_{_stamp(generated_at)}.xlsx"
    return stream, filename


def render_logs_html(
    logs: Sequence[LogEntry], user_names: Mapping[str, str], *, generated_at: datetime
) -> str:
    return html_writer.render_logs(logs, user_names, generated_at=generated_at)
