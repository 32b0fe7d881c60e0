from __future__ import annotations

import json

import pytest
import yaml

from plodlog.config import (
    ENV_BACKEND_CONFIG,
    BackendConfig,
    ConfigurationError,
    load_backend_config,
    persist_backend_config,
)

VALID = {
    "apiKey": "k",
    "appId": "a",
    "messagingSenderId": "m",
    "projectId": "demo-project",
}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv(ENV_BACKEND_CONFIG, raising=False)


def test_missing_config_raises(tmp_path):
    with pytest.raises(ConfigurationError):
        load_backend_config({}, tmp_path)


def test_incomplete_config_names_missing_keys():
    with pytest.raises(ConfigurationError, match="projectId"):
        BackendConfig.from_mapping({"apiKey": "k", "appId": "a", "messagingSenderId": "m"})


def test_storage_bucket_is_optional():
    backend = BackendConfig.from_mapping(VALID)
    assert backend.storage_bucket is None
    assert backend.database_filename() == "demo-project.sqlite"


def test_environment_variable_wins_over_file(tmp_path, monkeypatch):
    (tmp_path / "backend_config.json").write_text(json.dumps(dict(VALID, projectId="from-file")))
    monkeypatch.setenv(ENV_BACKEND_CONFIG, json.dumps(dict(VALID, projectId="from-env")))
    assert load_backend_config({}, tmp_path).project_id == "from-env"


def test_invalid_environment_json(tmp_path, monkeypatch):
    monkeypatch.setenv(ENV_BACKEND_CONFIG, "{not json")
    with pytest.raises(ConfigurationError):
        load_backend_config({}, tmp_path)


def test_yaml_settings_file(tmp_path):
    path = tmp_path / "backend.yaml"
    path.write_text(yaml.safe_dump(VALID))
    backend = load_backend_config({"BACKEND_SETTINGS_PATH": str(path)}, tmp_path)
    assert backend.project_id == "demo-project"


def test_persist_generates_owner_once(tmp_path):
    first = persist_backend_config(VALID, {}, tmp_path)
    second = persist_backend_config(dict(VALID, apiKey="rotated"), {}, tmp_path)
    assert first.owner_id and first.owner_id != "anonymous"
    assert second.owner_id == first.owner_id
    assert load_backend_config({}, tmp_path).api_key == "rotated"


def test_persist_rejects_incomplete_payload(tmp_path):
    with pytest.raises(ConfigurationError):
        persist_backend_config({"apiKey": "k"}, {}, tmp_path)
    assert not (tmp_path / "backend_config.json").exists()
