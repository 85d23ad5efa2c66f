"""Services for the collection kernel (write side)."""

from collection_kernel.services.cycle_service import CycleService
from collection_kernel.services.ledger_service import LedgerService, PARTIAL_WITHDRAWAL_NOTE
from collection_kernel.services.person_service import PersonService
from collection_kernel.services.settings_service import LAST_BACKUP_DATE, SettingsService

__all__ = [
    "CycleService",
    "LAST_BACKUP_DATE",
    "LedgerService",
    "PARTIAL_WITHDRAWAL_NOTE",
    "PersonService",
    "SettingsService",
]
