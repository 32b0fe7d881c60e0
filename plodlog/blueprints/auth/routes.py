from __future__ import annotations

from flask import Blueprint, jsonify

from ...services.login_flow import AuthenticationError, InvalidTransition, LoginState
from ...services.sessions import ClientContext
from ...services.validation import ValidationError
from ..context import current_context, end_context, existing_context, logged_in_user, payload

bp = Blueprint("auth", __name__, url_prefix="/api/auth")

LOGGED_OUT = {"state": LoginState.LOGGED_OUT.value, "user": None, "is_loading": False}


def _state_payload(context: ClientContext):
    user = context.state.current_user
    return {
        "state": context.login.state.value,
        "user": user.as_public_dict() if user else None,
        "is_loading": context.state.is_loading,
    }


def _pending_context() -> ClientContext:
    context = existing_context()
    if context is None:
        raise InvalidTransition("No login in progress.")
    return context


@bp.get("/state")
def session_state():
    context = existing_context()
    if context is None:
        return jsonify(LOGGED_OUT)
    logged_in_user(context)
    return jsonify(_state_payload(context))


@bp.post("/login")
def login():
    opened = existing_context() is None
    context = current_context()
    data = payload()
    try:
        context.login.submit_credentials(data.get("user_id", ""), data.get("pin", ""))
    except (AuthenticationError, ValidationError):
        if opened:
            end_context()
        raise
    return jsonify(_state_payload(context))


@bp.post("/rotate-pin")
def rotate_pin():
    context = _pending_context()
    data = payload()
    context.login.provide_pin(data.get("new_pin", ""), data.get("confirm_pin", ""))
    return jsonify(_state_payload(context))


@bp.post("/signature")
def signature():
    context = _pending_context()
    context.login.provide_signature(payload().get("signature"))
    return jsonify(_state_payload(context))


@bp.post("/cancel")
def cancel():
    _pending_context().login.cancel()
    # cancel() always raises LoginCancelled; the app turns it into a response.
    return jsonify({"state": "logged_out"})


@bp.post("/logout")
def logout():
    context = existing_context()
    if context is not None:
        context.tracker.reset()
        context.login.logout()
    end_context()
    return jsonify({"state": "logged_out"})
