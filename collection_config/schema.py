"""
LedgerConfig schema.

The runtime configuration of the collection ledger: where the database
lives, how loudly to log, and where backups are written.  YAML files are
parsed into this type by the loader; callers obtain it only through
``collection_config.get_active_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class LedgerConfig:
    """Frozen runtime configuration."""

    database_url: str
    log_level: str
    app_version: str
    backup_directory: Path
    echo: bool = False
    safety_backup: bool = True
    checksum: str = ""

    def __post_init__(self) -> None:
        if not self.database_url:
            raise ValueError("database_url must not be empty")
        if self.log_level not in LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {', '.join(LOG_LEVELS)}, got {self.log_level!r}"
            )
