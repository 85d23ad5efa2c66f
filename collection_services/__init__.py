"""
collection_services -- Package init and public API.

Responsibility:
    Transaction-owning entry points over the collection kernel: the
    ``CollectionLedger`` facade used by the presentation layer, the JSON
    backup/restore service, and runtime wiring from configuration.

Architecture position:
    Services.  May import collection_kernel and collection_config.

    Dependency direction (enforced by tests/architecture/test_kernel_boundary.py):
        collection_services/ -> collection_kernel/   (allowed)
        collection_services/ -> collection_config/   (allowed)
        collection_kernel/   -> collection_services/ (FORBIDDEN)
"""

from collection_services.backup_service import BackupService, RestoreResult
from collection_services.ledger import CollectionLedger
from collection_services.runtime import LedgerRuntime, open_runtime

__all__ = [
    "BackupService",
    "CollectionLedger",
    "LedgerRuntime",
    "RestoreResult",
    "open_runtime",
]
