from __future__ import annotations

from flask import Blueprint, Response, current_app, jsonify, send_file

from ...services import reports_service
from ...services.log_query import LogFilters, SortKey
from ...services.sessions import ClientContext
from ...services.tracker import utc_now
from ...services.validation import ValidationError, ensure_known, parse_optional_instant
from ..context import current_context, payload, require_login

bp = Blueprint("logs", __name__, url_prefix="/api/logs")


def _now():
    return (current_app.config.get("CLOCK") or utc_now)()


def _results(context: ClientContext):
    return context.query.apply(context.state.logs)


def _listing(context: ClientContext):
    logs = _results(context)
    return {
        "query": context.query.as_dict(),
        "count": len(logs),
        "logs": [log.as_dict() for log in logs],
    }


@bp.get("")
@require_login
def list_logs():
    return jsonify(_listing(current_context()))


@bp.put("/filters")
@require_login
def set_filters():
    context = current_context()
    data = payload()
    activity_type_id = data.get("activity_type_id") or None
    user_id = data.get("user_id") or None
    if activity_type_id:
        ensure_known([activity_type_id], (a.id for a in context.state.activity_types), "plod")
    if user_id:
        ensure_known([user_id], (u.id for u in context.state.users), "user")
    context.query.filters = LogFilters(
        range_start=parse_optional_instant(data.get("range_start"), "range_start"),
        range_end=parse_optional_instant(data.get("range_end"), "range_end"),
        activity_type_id=activity_type_id,
        user_id=user_id,
    )
    return jsonify(_listing(context))


@bp.delete("/filters")
@require_login
def clear_filters():
    context = current_context()
    context.query.clear_filters()
    return jsonify(_listing(context))


@bp.put("/search")
@require_login
def set_search():
    context = current_context()
    context.query.search = str(payload().get("search") or "")
    return jsonify(_listing(context))


@bp.post("/sort")
@require_login
def select_sort():
    context = current_context()
    try:
        key = SortKey(payload().get("key"))
    except ValueError as exc:
        raise ValidationError(f"Unknown sort key. Use one of: {', '.join(k.value for k in SortKey)}") from exc
    context.query.select_sort(key)
    return jsonify(_listing(context))


@bp.get("/<log_id>")
@require_login
def log_detail(log_id: str):
    state = current_context().state
    log = state.find_log(log_id)
    if log is None:
        return jsonify({"error": "Log not found."}), 404
    names = state.user_names()
    detail = log.as_dict()
    detail["coworkers"] = [{"id": uid, "name": names.get(uid, uid)} for uid in log.coworker_ids]
    return jsonify(detail)


@bp.get("/export.csv")
@require_login
def export_csv():
    context = current_context()
    buffer, filename = reports_service.export_logs_csv(_results(context), generated_at=_now())
    return Response(
        buffer.getvalue(),
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@bp.get("/export.xlsx")
@require_login
def export_xlsx():
    context = current_context()
    stream, filename = reports_service.export_logs_xlsx(
        _results(context),
        context.state.user_names(),
        generated_at=_now(),
        blocks_per_page=current_app.config["REPORT_BLOCKS_PER_PAGE"],
    )
    return send_file(
        stream,
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        as_attachment=True,
        download_name=filename,
    )


@bp.get("/report.html")
@require_login
def report_html():
    context = current_context()
    html = reports_service.render_logs_html(_results(context), context.state.user_names(), generated_at=_now())
    return Response(html, mimetype="text/html")
