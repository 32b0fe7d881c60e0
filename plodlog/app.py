"""Application factory for the PlodLog web service."""

from __future__ import annotations

from typing import Any

from flask import Flask, jsonify, request
from flask.typing import ResponseReturnValue

from .config import DEFAULT_CONFIG, ConfigurationError, load_backend_config
from .dao import db as db_module
from .dao.document_store import RemoteWriteError, StoreError
from .services.login_flow import AuthenticationError, InvalidTransition, LoginCancelled
from .services.tracker import TimeAdjustmentError, TrackerError
from .services.validation import ValidationError

BLUEPRINTS = [
    ("plodlog.blueprints.setup.routes", "bp"),
    ("plodlog.blueprints.auth.routes", "bp"),
    ("plodlog.blueprints.tracker.routes", "bp"),
    ("plodlog.blueprints.logs.routes", "bp"),
    ("plodlog.blueprints.admin.routes", "bp"),
    ("plodlog.blueprints.profile.routes", "bp"),
]

# Reachable without a backend configuration.
SETUP_ENDPOINTS = {"setup.setup_status", "setup.submit_setup", "healthcheck", "index", "static"}


def _error(message: str, status: int, **extra: Any) -> ResponseReturnValue:
    body = {"error": message}
    body.update(extra)
    return jsonify(body), status


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ValidationError)
    def handle_validation(exc: ValidationError) -> ResponseReturnValue:
        return _error(str(exc), 400)

    @app.errorhandler(AuthenticationError)
    def handle_authentication(exc: AuthenticationError) -> ResponseReturnValue:
        return _error(str(exc), 401)

    @app.errorhandler(LoginCancelled)
    def handle_cancelled(exc: LoginCancelled) -> ResponseReturnValue:
        return jsonify({"state": "logged_out", "message": str(exc)})

    @app.errorhandler(InvalidTransition)
    @app.errorhandler(TrackerError)
    def handle_conflict(exc: Exception) -> ResponseReturnValue:
        return _error(str(exc), 409)

    @app.errorhandler(TimeAdjustmentError)
    def handle_time_adjustment(exc: TimeAdjustmentError) -> ResponseReturnValue:
        return _error(str(exc), 422)

    @app.errorhandler(RemoteWriteError)
    def handle_remote_write(exc: RemoteWriteError) -> ResponseReturnValue:
        app.logger.warning("Store write failed: %s", exc)
        return _error(str(exc), 503)

    @app.errorhandler(StoreError)
    def handle_store(exc: StoreError) -> ResponseReturnValue:
        app.logger.error("Store read failed: %s", exc)
        return _error(str(exc), 503)

    @app.errorhandler(ConfigurationError)
    def handle_configuration(exc: ConfigurationError) -> ResponseReturnValue:
        if request.endpoint == "setup.submit_setup":
            return _error(str(exc), 400)
        return _error(str(exc), 503, setup_required=True)


def create_app(test_config: dict[str, Any] | None = None) -> Flask:
    """Create and configure the Flask application.

    Without a usable backend configuration the app starts in setup mode: only the setup
    endpoints and ``/healthz`` answer until a valid configuration is submitted.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_mapping(DEFAULT_CONFIG)

    if test_config:
        app.config.update(test_config)

    db_module.init_app(app)

    for import_path, attr in BLUEPRINTS:
        module = __import__(import_path, fromlist=[attr])
        blueprint = getattr(module, attr)
        app.register_blueprint(blueprint)

    register_error_handlers(app)

    try:
        backend = load_backend_config(app.config, app.instance_path)
    except ConfigurationError as exc:
        app.logger.warning("Starting in setup mode: %s", exc)
    else:
        db_module.start_runtime(app, backend)

    @app.before_request
    def require_setup() -> ResponseReturnValue | None:
        if db_module.get_runtime(app) is None and request.endpoint not in SETUP_ENDPOINTS:
            return _error("Backend configuration not found. Please set it up.", 503, setup_required=True)
        return None

    @app.get("/")
    def index() -> ResponseReturnValue:
        runtime = db_module.get_runtime(app)
        return jsonify({"app": "plodlog", "configured": runtime is not None})

    @app.get("/healthz")
    def healthcheck() -> tuple[str, int]:
        return "OK", 200

    return app
