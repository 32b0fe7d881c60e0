from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from ...config import REQUIRED_KEYS, persist_backend_config
from ...dao.db import get_runtime, start_runtime
from ..context import payload

bp = Blueprint("setup", __name__, url_prefix="/api/setup")


@bp.get("")
def setup_status():
    runtime = get_runtime()
    return jsonify(
        {
            "configured": runtime is not None,
            "project_id": runtime.backend.project_id if runtime else None,
            "required": list(REQUIRED_KEYS),
        }
    )


@bp.post("")
def submit_setup():
    app = current_app._get_current_object()  # type: ignore[attr-defined]
    # Only reachable in setup mode; a running backend is never replaced over HTTP.
    if get_runtime(app) is not None:
        return jsonify({"error": "Backend is already configured."}), 409
    backend = persist_backend_config(payload(), app.config, app.instance_path)
    start_runtime(app, backend)
    return jsonify({"configured": True, "project_id": backend.project_id}), 201
