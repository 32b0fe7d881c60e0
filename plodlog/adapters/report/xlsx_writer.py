"""Paginated Excel report: one block per log entry, printable on A4."""
from __future__ import annotations

from datetime import datetime
from typing import Mapping, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.worksheet.pagebreak import Break
from openpyxl.worksheet.worksheet import Worksheet

from ...domain import LogEntry

TITLE = "PlodLog - Plod Log Report"

TITLE_FONT = Font(bold=True, size=16)
BLOCK_FONT = Font(bold=True, size=13)
HEADER_FONT = Font(bold=True)
LEFT = Alignment(horizontal="left", vertical="center")
FILL_HEADER = PatternFill("solid", fgColor="DDDDDD")
B_THIN = Border(
    left=Side(style="thin", color="999999"),
    right=Side(style="thin", color="999999"),
    top=Side(style="thin", color="999999"),
    bottom=Side(style="thin", color="999999"),
)


def _coworker_names(log: LogEntry, user_names: Mapping[str, str]) -> str:
    return ", ".join(user_names.get(uid, uid) for uid in log.coworker_ids)


def _label(ws: Worksheet, row: int, label: str, value: object) -> None:
    ws.cell(row=row, column=1, value=label).font = HEADER_FONT
    ws.cell(row=row, column=2, value=value).alignment = LEFT


def _write_block(ws: Worksheet, row: int, log: LogEntry, user_names: Mapping[str, str]) -> int:
    """Write one log block starting at *row*; return the first free row after it."""
    ws.cell(row=row, column=1, value=f"{log.activity_name} by {log.user_name}").font = BLOCK_FONT
    row += 1
    span = f"{log.start_time:%Y-%m-%d %H:%M} to {log.end_time:%H:%M}"
    _label(ws, row, "Time", span)
    row += 1
    _label(ws, row, "Duration", f"{log.duration_seconds // 60} minutes")
    row += 1
    _label(ws, row, "Shift", log.shift.display)
    row += 1
    if log.coworker_ids:
        _label(ws, row, "Co-workers", _coworker_names(log, user_names))
        row += 1
    if log.metrics:
        ws.cell(row=row, column=1, value="Logged Data").font = HEADER_FONT
        row += 1
        for col, heading in enumerate(("Item", "Value", "Unit"), start=1):
            cell = ws.cell(row=row, column=col, value=heading)
            cell.font = HEADER_FONT
            cell.fill = FILL_HEADER
            cell.border = B_THIN
        row += 1
        for metric in log.metrics:
            for col, value in enumerate((metric.name, metric.value, metric.unit), start=1):
                ws.cell(row=row, column=col, value=value).border = B_THIN
            row += 1
    return row + 1


def build_workbook(
    logs: Sequence[LogEntry],
    user_names: Mapping[str, str],
    *,
    generated_at: datetime,
    blocks_per_page: int = 4,
) -> Workbook:
    wb = Workbook()
    ws = wb.active
    ws.title = "Logs"

    ws.page_setup.paperSize = ws.PAPERSIZE_A4
    ws.page_setup.orientation = ws.ORIENTATION_PORTRAIT
    ws.print_options.horizontalCentered = True
    ws.oddFooter.center.text = "Page &P of &N"
    ws.column_dimensions["A"].width = 28
    ws.column_dimensions["B"].width = 32
    ws.column_dimensions["C"].width = 12

    ws.cell(row=1, column=1, value=TITLE).font = TITLE_FONT
    ws.cell(row=1, column=3, value=generated_at.strftime("%Y-%m-%d"))
    row = 3

    per_page = max(1, int(blocks_per_page))
    for index, log in enumerate(logs, start=1):
        row = _write_block(ws, row, log, user_names)
        if index % per_page == 0 and index < len(logs):
            ws.row_breaks.append(Break(id=row - 1))

    if not logs:
        ws.cell(row=row, column=1, value="No logs match the current filters.")
    return wb
