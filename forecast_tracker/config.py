from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Dict

import yaml

DEFAULT_CONFIG: Dict[str, object] = {
    "db_path": "forecast.db",
    "server": {
        "host": "127.0.0.1",
        "port": 8000,
    },
    "default_currency": "USD",
    "log_level": "INFO",
}

CONFIG_PATH = Path("config.yaml")

_ENV_OVERRIDES = {
    "FORECAST_DB_PATH": "db_path",
    "FORECAST_LOG_LEVEL": "log_level",
}


def _merge_defaults(current: Dict[str, object], defaults: Dict[str, object]) -> Dict[str, object]:
    """Merge missing default keys into the current config recursively."""
    merged = dict(current)
    for key, value in defaults.items():
        if key not in merged:
            merged[key] = copy.deepcopy(value)
        elif isinstance(value, dict) and isinstance(merged[key], dict):
            merged[key] = _merge_defaults(merged[key], value)
    return merged


def _resolve_path(path: Path | str | None) -> Path:
    if path:
        return Path(path)
    explicit = os.environ.get("FORECAST_CONFIG")
    return Path(explicit) if explicit else CONFIG_PATH


def load_config(path: Path | str | None = None) -> Dict[str, object]:
    """Read the YAML config, fill in defaults, then apply environment overrides."""
    target = _resolve_path(path)
    data: Dict[str, object] = {}
    if target.exists():
        with target.open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {target} must contain a mapping")
    config = _merge_defaults(data, DEFAULT_CONFIG)
    for env_name, key in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            config[key] = value
    return config


def save_config(config: Dict[str, object], path: Path | str | None = None) -> Path:
    target = _resolve_path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as fp:
        yaml.safe_dump(config, fp, sort_keys=False)
    return target


def configure_logging(level: str | int = "INFO") -> None:
    if isinstance(level, str):
        level = level.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
