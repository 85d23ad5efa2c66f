"""
collection_services.runtime -- wire a ledger from configuration.

Turns a ``LedgerConfig`` into a ready ``Database`` (tables created), a
``CollectionLedger`` and a ``BackupService`` that share it.  Scripts and
application start-up go through ``open_runtime``; tests build the pieces
directly with an in-memory database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from collection_config import LedgerConfig
from collection_kernel.db.engine import Database
from collection_kernel.domain.clock import Clock, SystemClock
from collection_kernel.logging_config import configure_logging
from collection_services.backup_service import BackupService
from collection_services.ledger import CollectionLedger


@dataclass(frozen=True)
class LedgerRuntime:
    config: LedgerConfig
    database: Database
    ledger: CollectionLedger
    backup: BackupService

    def close(self) -> None:
        self.database.dispose()


def open_runtime(config: LedgerConfig, clock: Clock | None = None) -> LedgerRuntime:
    """Configure logging, open the database and build the services."""
    configure_logging(level=getattr(logging, config.log_level))
    clock = clock or SystemClock()

    database = Database(config.database_url, echo=config.echo)
    database.create_tables()

    return LedgerRuntime(
        config=config,
        database=database,
        ledger=CollectionLedger(database, clock),
        backup=BackupService(database, clock, app_version=config.app_version),
    )
