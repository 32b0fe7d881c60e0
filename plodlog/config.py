"""Application defaults and backend bootstrap configuration.

The backend block (apiKey/appId/messagingSenderId/projectId, optional storageBucket)
comes from the ``PLODLOG_BACKEND_CONFIG`` environment variable (a JSON object) or from
the settings file persisted by the setup flow. The owner id scoping the collections is
generated once and saved alongside it.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from uuid import uuid4

from .adapters.config_loader import load_config, save_config

logger = logging.getLogger(__name__)

ENV_BACKEND_CONFIG = "PLODLOG_BACKEND_CONFIG"
ENV_OWNER_ID = "PLODLOG_OWNER_ID"
SETTINGS_FILENAME = "backend_config.json"

DEFAULT_CONFIG: Dict[str, Any] = {
    "SECRET_KEY": "dev",
    "JSON_SORT_KEYS": False,
    # Tenant namespace for the collections (the app id in the hosted deployment).
    "TENANT_ID": "default_plodlog_app",
    # SQLite file for the document store; defaults to <instance>/<projectId>.sqlite
    "DATABASE": None,
    # Where the setup flow persists the backend block; defaults to <instance>/backend_config.json
    "BACKEND_SETTINGS_PATH": None,
    # Inline backend block, mainly for tests; wins over env and file.
    "BACKEND_CONFIG": None,
    "TRACKER_TICK_SECONDS": 1.0,
    "REPORT_BLOCKS_PER_PAGE": 4,
    # Client contexts unused this long are closed, unless an activity is being tracked.
    "SESSION_IDLE_SECONDS": 8 * 3600,
    # Injection points for the tracker (callable returning an aware datetime / ticker factory).
    "CLOCK": None,
    "TICKER_FACTORY": None,
}

REQUIRED_KEYS = ("apiKey", "appId", "messagingSenderId", "projectId")


class ConfigurationError(RuntimeError):
    """Backend configuration is missing or incomplete."""


@dataclass(frozen=True)
class BackendConfig:
    api_key: str
    app_id: str
    messaging_sender_id: str
    project_id: str
    storage_bucket: Optional[str] = None
    owner_id: str = "anonymous"

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "BackendConfig":
        if not isinstance(payload, Mapping):
            raise ConfigurationError("Backend configuration must be an object.")
        missing = [key for key in REQUIRED_KEYS if not str(payload.get(key) or "").strip()]
        if missing:
            raise ConfigurationError(f"Incomplete backend configuration: missing {', '.join(missing)}")
        bucket = str(payload.get("storageBucket") or "").strip() or None
        return cls(
            api_key=str(payload["apiKey"]).strip(),
            app_id=str(payload["appId"]).strip(),
            messaging_sender_id=str(payload["messagingSenderId"]).strip(),
            project_id=str(payload["projectId"]).strip(),
            storage_bucket=bucket,
            owner_id=str(payload.get("ownerId") or "").strip() or "anonymous",
        )

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "apiKey": self.api_key,
            "appId": self.app_id,
            "messagingSenderId": self.messaging_sender_id,
            "projectId": self.project_id,
            "storageBucket": self.storage_bucket,
            "ownerId": self.owner_id,
        }

    def database_filename(self) -> str:
        safe = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in self.project_id)
        return f"{safe or 'plodlog'}.sqlite"


def settings_path(config: Mapping[str, Any], instance_path: str | Path) -> Path:
    explicit = config.get("BACKEND_SETTINGS_PATH")
    return Path(explicit) if explicit else Path(instance_path) / SETTINGS_FILENAME


def load_backend_config(config: Mapping[str, Any], instance_path: str | Path) -> BackendConfig:
    """Resolve the backend block: inline config, then environment, then settings file."""
    inline = config.get("BACKEND_CONFIG")
    if inline:
        return BackendConfig.from_mapping(inline)

    raw_env = os.environ.get(ENV_BACKEND_CONFIG, "").strip()
    if raw_env:
        try:
            payload = json.loads(raw_env)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"{ENV_BACKEND_CONFIG} is not valid JSON: {exc}") from exc
        if isinstance(payload, dict) and not payload.get("ownerId") and os.environ.get(ENV_OWNER_ID):
            payload["ownerId"] = os.environ[ENV_OWNER_ID]
        return BackendConfig.from_mapping(payload)

    path = settings_path(config, instance_path)
    try:
        payload = load_config(path)
    except FileNotFoundError as exc:
        raise ConfigurationError("Backend configuration not found. Please set it up.") from exc
    except ValueError as exc:
        raise ConfigurationError(f"Unreadable backend configuration: {exc}") from exc
    return BackendConfig.from_mapping(payload)


def persist_backend_config(
    payload: Mapping[str, Any],
    config: Mapping[str, Any],
    instance_path: str | Path,
) -> BackendConfig:
    """Validate *payload* and write it to the settings file, keeping an existing owner id."""
    path = settings_path(config, instance_path)
    owner_id = None
    if path.exists():
        try:
            owner_id = load_config(path).get("ownerId")
        except ValueError:
            owner_id = None
    data = dict(payload)
    data["ownerId"] = owner_id or data.get("ownerId") or uuid4().hex
    backend = BackendConfig.from_mapping(data)
    save_config(path, backend.to_mapping())
    logger.info("Saved backend configuration for project %s", backend.project_id)
    return backend
