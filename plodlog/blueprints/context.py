"""Request helpers resolving the caller's :class:`ClientContext`."""
from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Dict, TypeVar

from flask import abort, jsonify, make_response, request, session

from ..config import ConfigurationError
from ..dao.db import get_runtime
from ..domain import OperationalRole, User
from ..services.login_flow import LoginState
from ..services.sessions import ClientContext, SessionRegistry

CLIENT_KEY = "client_id"

F = TypeVar("F", bound=Callable[..., Any])


def _sessions() -> SessionRegistry:
    runtime = get_runtime()
    if runtime is None:
        raise ConfigurationError("Backend configuration not found. Please set it up.")
    return runtime.sessions


def existing_context() -> ClientContext | None:
    """Return this browser session's open context, or ``None`` without creating one."""
    context = _sessions().get(session.get(CLIENT_KEY))
    if context is None or context.state.closed:
        return None
    return context


def current_context() -> ClientContext:
    """Return this browser session's context, opening one on first use.

    Only login opens contexts; read-only and logged-out requests use
    :func:`existing_context`.
    """
    context = existing_context()
    if context is None:
        context = _sessions().open()
        session[CLIENT_KEY] = context.client_id
    return context


def end_context() -> None:
    runtime = get_runtime()
    client_id = session.pop(CLIENT_KEY, None)
    if runtime is not None:
        runtime.sessions.discard(client_id)


def logged_in_user(context: ClientContext) -> User | None:
    user = context.state.current_user
    if context.login.state is LoginState.LOGGED_IN and user is None:
        # Deleted while logged in.
        context.tracker.reset()
        context.login.logout()
    if context.login.state is not LoginState.LOGGED_IN:
        return None
    return user


def _deny(status: int, message: str):
    abort(make_response(jsonify({"error": message}), status))


def require_login(view: F) -> F:
    @wraps(view)
    def wrapped(*args, **kwargs):
        context = existing_context()
        if context is None or logged_in_user(context) is None:
            _deny(401, "Login required.")
        return view(*args, **kwargs)

    return wrapped  # type: ignore[return-value]


def require_admin(view: F) -> F:
    @wraps(view)
    def wrapped(*args, **kwargs):
        context = existing_context()
        user = logged_in_user(context) if context is not None else None
        if user is None:
            _deny(401, "Login required.")
        if user.role is not OperationalRole.ADMIN:
            _deny(403, "Admin access required.")
        return view(*args, **kwargs)

    return wrapped  # type: ignore[return-value]


def payload() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
