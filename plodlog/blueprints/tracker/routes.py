from __future__ import annotations

from flask import Blueprint, jsonify

from ...services.sessions import ClientContext
from ...services.tracker import TrackerError
from ...services.validation import ValidationError, parse_id_list, parse_instant, parse_shift
from ..context import current_context, payload, require_login

bp = Blueprint("tracker", __name__, url_prefix="/api/tracker")


def _tracker_view(context: ClientContext):
    tracker = context.tracker
    tracker.tick()
    state = context.state
    user = state.current_user
    view = tracker.as_dict()
    view["activities"] = [a.as_dict() for a in state.permitted_activity_types(user)] if user else []
    view["definitions"] = (
        [d.as_dict() for d in state.definitions_for(tracker.activity_type_id)]
        if tracker.activity_type_id
        else []
    )
    view["coworker_candidates"] = [
        {"id": u.id, "name": u.name} for u in state.users if user is None or u.id != user.id
    ]
    return view


@bp.get("")
@require_login
def tracker_state():
    return jsonify(_tracker_view(current_context()))


@bp.post("/select")
@require_login
def select_activity():
    context = current_context()
    context.tracker.select(payload().get("activity_type_id"))
    return jsonify(_tracker_view(context))


@bp.post("/start")
@require_login
def start():
    context = current_context()
    data = payload()
    shift = parse_shift(data["shift"]) if data.get("shift") else None
    context.tracker.start(shift)
    return jsonify(_tracker_view(context))


@bp.put("/shift")
@require_login
def set_shift():
    context = current_context()
    context.tracker.set_shift(parse_shift(payload().get("shift")))
    return jsonify(_tracker_view(context))


@bp.put("/metrics")
@require_login
def set_metrics():
    context = current_context()
    values = payload().get("values") or {}
    if not isinstance(values, dict):
        raise ValidationError("values must map definition ids to values.")
    context.tracker.set_metrics(values)
    return jsonify(_tracker_view(context))


@bp.put("/coworkers")
@require_login
def set_coworkers():
    context = current_context()
    context.tracker.set_coworkers(parse_id_list(payload().get("user_ids"), "user_ids"))
    return jsonify(_tracker_view(context))


@bp.post("/stop")
@require_login
def stop():
    context = current_context()
    context.tracker.stop()
    return jsonify(_tracker_view(context))


@bp.post("/confirm")
@require_login
def confirm():
    context = current_context()
    tracker = context.tracker
    if tracker.candidate is None:
        raise TrackerError("Stop the plod before confirming it.")
    data = payload()
    proposed_start, proposed_end = tracker.candidate
    start = parse_instant(data["start_time"], "start_time") if data.get("start_time") else proposed_start
    end = parse_instant(data["end_time"], "end_time") if data.get("end_time") else proposed_end
    entry = tracker.confirm(start, end)
    return jsonify({"log": entry.as_dict(), "tracker": _tracker_view(context)}), 201


@bp.post("/cancel")
@require_login
def cancel():
    context = current_context()
    context.tracker.cancel()
    return jsonify(_tracker_view(context))
