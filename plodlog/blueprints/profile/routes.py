from __future__ import annotations

from flask import Blueprint, jsonify

from ...services.login_flow import change_pin
from ..context import current_context, payload, require_login

bp = Blueprint("profile", __name__, url_prefix="/api/profile")


@bp.get("")
@require_login
def profile():
    state = current_context().state
    user = state.current_user
    view = user.as_public_dict()
    view["assigned_activities"] = [a.name for a in state.permitted_activity_types(user)]
    return jsonify(view)


@bp.post("/pin")
@require_login
def update_pin():
    data = payload()
    change_pin(
        current_context().state,
        data.get("current_pin", ""),
        data.get("new_pin", ""),
        data.get("confirm_pin", ""),
    )
    return jsonify({"message": "PIN changed successfully."})


@bp.post("/sync")
@require_login
def sync():
    current_context().state.sync_all()
    return jsonify({"message": "All data synced."})
