"""
Configuration Loader (``collection_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into a ``LedgerConfig``.
This is internal tooling; the single public entry point for runtime config
is ``collection_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Mapping

import yaml

from collection_config.schema import LedgerConfig

ENV_DATABASE_URL = "COLLECTION_DATABASE_URL"
ENV_LOG_LEVEL = "COLLECTION_LOG_LEVEL"
ENV_BACKUP_DIR = "COLLECTION_BACKUP_DIR"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def parse_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
        return value.strip().lower() in _TRUE
    raise ValueError(f"{key}: expected a boolean, got {value!r}")


def apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Return a copy of ``data`` with environment overrides applied."""
    merged = {**data, "database": dict(data.get("database") or {}),
              "logging": dict(data.get("logging") or {}),
              "backup": dict(data.get("backup") or {})}
    if environ.get(ENV_DATABASE_URL):
        merged["database"]["url"] = environ[ENV_DATABASE_URL]
    if environ.get(ENV_LOG_LEVEL):
        merged["logging"]["level"] = environ[ENV_LOG_LEVEL]
    if environ.get(ENV_BACKUP_DIR):
        merged["backup"]["directory"] = environ[ENV_BACKUP_DIR]
    return merged


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 over the parsed configuration."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    """
    Parse a ``LedgerConfig`` from a dict.

    Expected shape::

        app_version: "1.0.0"
        database: {url: ..., echo: false}
        logging: {level: INFO}
        backup: {directory: backups, safety_backup: true}
    """
    database = data["database"]
    backup = data["backup"]
    return LedgerConfig(
        database_url=str(database["url"]),
        echo=parse_bool(database.get("echo", False), "database.echo"),
        log_level=str(data["logging"]["level"]).upper(),
        app_version=str(data["app_version"]),
        backup_directory=Path(backup["directory"]).expanduser(),
        safety_backup=parse_bool(backup.get("safety_backup", True), "backup.safety_backup"),
        checksum=compute_checksum(data),
    )
