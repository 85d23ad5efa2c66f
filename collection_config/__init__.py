"""
collection_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Scripts and the service layer never read the
    YAML file or the ``COLLECTION_*`` environment variables themselves.

Architecture position:
    Configuration.  Sits above ``collection_kernel`` and below
    ``collection_services`` / ``scripts``.  The kernel MUST NEVER import from
    ``collection_config``; it receives plain values (a database URL, a log
    level) from whoever holds the config.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``KeyError`` -- a required key is missing.
    - ``ValueError`` -- a value is invalid (unknown log level, bad boolean).

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``COLLECTION_CONFIG_TRACE`` log entry with the version, database
    dialect, log level and checksum of the effective configuration.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from collection_config.loader import apply_env_overrides, load_yaml_file, parse_config
from collection_config.schema import LedgerConfig

_logger = logging.getLogger("collection_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to the packaged
            ``defaults.yaml``.
        environ: Environment mapping used for overrides.  Defaults to
            ``os.environ``.

    Returns:
        Frozen ``LedgerConfig``.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    env = os.environ if environ is None else environ

    data = apply_env_overrides(load_yaml_file(path), env)
    config = parse_config(data)

    _logger.info(
        "COLLECTION_CONFIG_TRACE",
        extra={
            "trace_type": "COLLECTION_CONFIG_TRACE",
            "config_path": str(path),
            "app_version": config.app_version,
            "database_dialect": config.database_url.split(":", 1)[0],
            "log_level": config.log_level,
            "checksum": config.checksum,
        },
    )
    return config


__all__ = ["LedgerConfig", "get_active_config"]
