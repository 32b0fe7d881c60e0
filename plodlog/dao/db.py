"""Document store lifecycle for the web application."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import click
from flask import Flask, current_app
from flask.cli import with_appcontext

from ..config import BackendConfig, ConfigurationError, load_backend_config
from ..services.remote_store import RemoteStoreAdapter
from ..services.sessions import SessionRegistry
from ..services.tracker import RepeatingTimer, utc_now
from .document_store import DocumentStore

EXTENSION_KEY = "plodlog"


@dataclass
class Runtime:
    """Everything that depends on a valid backend configuration."""

    backend: BackendConfig
    store: DocumentStore
    sessions: SessionRegistry

    def close(self) -> None:
        self.sessions.close_all()


def database_path(app: Flask, backend: BackendConfig) -> str:
    configured = app.config.get("DATABASE")
    if configured:
        return str(configured)
    return str(Path(app.instance_path) / backend.database_filename())


def start_runtime(app: Flask, backend: BackendConfig) -> Runtime:
    """(Re)build the store and session registry for *backend*, replacing any previous one."""
    stop_runtime(app)
    store = DocumentStore(database_path(app, backend))
    sessions = SessionRegistry(
        store,
        tenant_id=app.config["TENANT_ID"],
        owner_id=backend.owner_id,
        clock=app.config.get("CLOCK") or utc_now,
        ticker_factory=app.config.get("TICKER_FACTORY") or RepeatingTimer,
        tick_seconds=float(app.config["TRACKER_TICK_SECONDS"]),
        idle_seconds=app.config.get("SESSION_IDLE_SECONDS"),
    )
    runtime = Runtime(backend=backend, store=store, sessions=sessions)
    app.extensions[EXTENSION_KEY] = runtime
    app.logger.info("Backend ready for project %s", backend.project_id)
    return runtime


def stop_runtime(app: Flask) -> None:
    runtime = app.extensions.pop(EXTENSION_KEY, None)
    if runtime is not None:
        runtime.close()


def get_runtime(app: Optional[Flask] = None) -> Optional[Runtime]:
    """Return the active runtime, or ``None`` while the app waits for setup."""
    app = app or current_app
    return app.extensions.get(EXTENSION_KEY)


def get_store() -> DocumentStore:
    runtime = get_runtime()
    if runtime is None:
        raise ConfigurationError("Backend configuration not found. Please set it up.")
    return runtime.store


def init_app(app: Flask) -> None:
    """Attach CLI commands to the app."""
    app.cli.add_command(init_store_command)


@click.command("init-store")
@click.option("--force", is_flag=True, help="Drop every stored document first.")
@click.option("--seed/--no-seed", default=True, help="Write the default plods, definitions and users.")
@with_appcontext
def init_store_command(force: bool, seed: bool) -> None:
    """Create the document store and optionally load the default data."""
    app = current_app._get_current_object()  # type: ignore[attr-defined]
    try:
        backend = load_backend_config(app.config, app.instance_path)
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc
    store = DocumentStore(database_path(app, backend))
    if force:
        store.reset()
    if seed:
        adapter = RemoteStoreAdapter(store, app.config["TENANT_ID"], backend.owner_id)
        if adapter.seed_defaults():
            click.echo("Default data written.")
        else:
            click.echo("Users already present; defaults skipped.")
    click.echo(f"Document store ready at {store.path}.")
