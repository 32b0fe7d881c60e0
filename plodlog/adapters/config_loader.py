"""Config file helpers (JSON or YAML)."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

import yaml

_YAML_SUFFIXES = {".yaml", ".yml"}


def load_config(path: str | Path) -> Dict[str, Any]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)
    with path.open("r", encoding="utf-8") as fh:
        if path.suffix.lower() in _YAML_SUFFIXES:
            data = yaml.safe_load(fh)
        else:
            data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a mapping")
    return data


def save_config(path: str | Path, payload: Dict[str, Any]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        if path.suffix.lower() in _YAML_SUFFIXES:
            yaml.safe_dump(payload, fh, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, fh, ensure_ascii=False, indent=2)
    return path
