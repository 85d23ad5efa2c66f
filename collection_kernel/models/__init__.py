"""ORM models for the collection kernel."""

from collection_kernel.models.collection import Collection, CollectionStatus
from collection_kernel.models.cycle import Cycle
from collection_kernel.models.person import Person, PersonFrequency
from collection_kernel.models.setting import Setting
from collection_kernel.models.withdrawal import Withdrawal, WithdrawalKind

__all__ = [
    "Person",
    "PersonFrequency",
    "Cycle",
    "Collection",
    "CollectionStatus",
    "Withdrawal",
    "WithdrawalKind",
    "Setting",
]
