"""Admin management of users, plods and data definitions."""
from __future__ import annotations

from dataclasses import replace

from flask import Blueprint, jsonify, request

from ...domain import SENTINEL_PIN, ActivityType, MetricDefinition, User
from ...services.app_state import AppState
from ...services.validation import ensure_known, parse_id_list, parse_role, require_text
from ..context import current_context, payload, require_admin

bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _search() -> str:
    return (request.args.get("search") or "").strip().lower()


def _not_found(kind: str):
    return jsonify({"error": f"{kind} not found."}), 404


def _activity_ids(state: AppState, value, field: str):
    ids = parse_id_list(value, field)
    ensure_known(ids, (a.id for a in state.activity_types), "plods")
    return tuple(ids)


# -- users --------------------------------------------------------------------------
@bp.get("/users")
@require_admin
def list_users():
    needle = _search()
    users = [
        u for u in current_context().state.users
        if not needle or needle in u.name.lower() or needle in u.id.lower()
    ]
    return jsonify({"users": [u.as_public_dict() for u in users]})


@bp.post("/users")
@require_admin
def create_user():
    state = current_context().state
    data = payload()
    user = User(
        id="",
        name=require_text(data.get("name"), "Name"),
        role=parse_role(data.get("role")),
        permitted_activity_type_ids=_activity_ids(state, data.get("permitted_activity_type_ids"), "permitted_activity_type_ids"),
        pin=SENTINEL_PIN,
    )
    stored = state.add_user(user)
    return jsonify({"id": stored.id}), 201


@bp.put("/users/<user_id>")
@require_admin
def update_user(user_id: str):
    state = current_context().state
    existing = state.find_user(user_id)
    if existing is None:
        return _not_found("User")
    data = payload()
    updated = replace(
        existing,
        name=require_text(data.get("name", existing.name), "Name"),
        role=parse_role(data["role"]) if "role" in data else existing.role,
        permitted_activity_type_ids=(
            _activity_ids(state, data["permitted_activity_type_ids"], "permitted_activity_type_ids")
            if "permitted_activity_type_ids" in data
            else existing.permitted_activity_type_ids
        ),
    )
    state.update_user(updated)
    return jsonify({"updated": True})


@bp.delete("/users/<user_id>")
@require_admin
def delete_user(user_id: str):
    state = current_context().state
    if state.find_user(user_id) is None:
        return _not_found("User")
    state.delete_user(user_id)
    return jsonify({"deleted": True})


# -- activity types -----------------------------------------------------------------
@bp.get("/activity-types")
@require_admin
def list_activity_types():
    needle = _search()
    activities = [a for a in current_context().state.activity_types if needle in a.name.lower()]
    return jsonify({"activity_types": [a.as_dict() for a in activities]})


@bp.post("/activity-types")
@require_admin
def create_activity_type():
    state = current_context().state
    stored = state.add_activity_type(ActivityType(id="", name=require_text(payload().get("name"), "Name")))
    return jsonify({"id": stored.id}), 201


@bp.put("/activity-types/<activity_type_id>")
@require_admin
def update_activity_type(activity_type_id: str):
    state = current_context().state
    existing = state.find_activity_type(activity_type_id)
    if existing is None:
        return _not_found("Plod")
    state.update_activity_type(replace(existing, name=require_text(payload().get("name"), "Name")))
    return jsonify({"updated": True})


@bp.delete("/activity-types/<activity_type_id>")
@require_admin
def delete_activity_type(activity_type_id: str):
    state = current_context().state
    if state.find_activity_type(activity_type_id) is None:
        return _not_found("Plod")
    state.delete_activity_type(activity_type_id)
    return jsonify({"deleted": True})


# -- metric definitions -------------------------------------------------------------
@bp.get("/definitions")
@require_admin
def list_definitions():
    needle = _search()
    definitions = [d for d in current_context().state.metric_definitions if needle in d.name.lower()]
    return jsonify({"definitions": [d.as_dict() for d in definitions]})


@bp.post("/definitions")
@require_admin
def create_definition():
    state = current_context().state
    data = payload()
    definition = MetricDefinition(
        id="",
        name=require_text(data.get("name"), "Name"),
        unit=str(data.get("unit") or "").strip(),
        linked_activity_type_ids=_activity_ids(state, data.get("linked_activity_type_ids"), "linked_activity_type_ids"),
    )
    stored = state.add_metric_definition(definition)
    return jsonify({"id": stored.id}), 201


@bp.put("/definitions/<definition_id>")
@require_admin
def update_definition(definition_id: str):
    state = current_context().state
    existing = next((d for d in state.metric_definitions if d.id == definition_id), None)
    if existing is None:
        return _not_found("Definition")
    data = payload()
    updated = replace(
        existing,
        name=require_text(data.get("name", existing.name), "Name"),
        unit=str(data.get("unit", existing.unit) or "").strip(),
        linked_activity_type_ids=(
            _activity_ids(state, data["linked_activity_type_ids"], "linked_activity_type_ids")
            if "linked_activity_type_ids" in data
            else existing.linked_activity_type_ids
        ),
    )
    state.update_metric_definition(updated)
    return jsonify({"updated": True})


@bp.delete("/definitions/<definition_id>")
@require_admin
def delete_definition(definition_id: str):
    state = current_context().state
    if not any(d.id == definition_id for d in state.metric_definitions):
        return _not_found("Definition")
    state.delete_metric_definition(definition_id)
    return jsonify({"deleted": True})
