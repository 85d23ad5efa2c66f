"""
DTOs -- Immutable data transfer objects returned by services.

Responsibility:
    Services and selectors hand frozen dataclasses to callers instead of ORM
    entities, so nothing outside a transaction can lazily load or mutate a
    row.  ``from_model()`` class methods are the boundary converters and are
    only invoked from the service and selector layers.

Architecture position:
    Kernel > Domain -- zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from collection_kernel.models.collection import CollectionStatus
from collection_kernel.models.person import PersonFrequency
from collection_kernel.models.withdrawal import WithdrawalKind

if TYPE_CHECKING:
    from collection_kernel.models.collection import Collection
    from collection_kernel.models.cycle import Cycle
    from collection_kernel.models.person import Person
    from collection_kernel.models.withdrawal import Withdrawal


@dataclass(frozen=True)
class PersonInfo:
    """Immutable view of a person."""

    id: UUID
    name: str
    phone: str | None
    location: str | None
    photo_path: str | None
    default_amount: Decimal
    frequency: PersonFrequency
    notes: str | None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, person: Person) -> PersonInfo:
        return cls(
            id=person.id,
            name=person.name,
            phone=person.phone,
            location=person.location,
            photo_path=person.photo_path,
            default_amount=person.default_amount,
            frequency=PersonFrequency(person.frequency),
            notes=person.notes,
            is_active=person.is_active,
            created_at=person.created_at,
            updated_at=person.updated_at,
        )


@dataclass(frozen=True)
class CycleInfo:
    """Immutable view of a cycle."""

    id: UUID
    person_id: UUID
    start_date: date
    end_date: date | None
    total_amount: Decimal
    is_active: bool
    withdrawal_date: datetime | None
    notes: str | None

    @classmethod
    def from_model(cls, cycle: Cycle) -> CycleInfo:
        return cls(
            id=cycle.id,
            person_id=cycle.person_id,
            start_date=cycle.start_date,
            end_date=cycle.end_date,
            total_amount=cycle.total_amount,
            is_active=cycle.is_active,
            withdrawal_date=cycle.withdrawal_date,
            notes=cycle.notes,
        )


@dataclass(frozen=True)
class CollectionInfo:
    """Immutable view of one collection day."""

    id: UUID
    person_id: UUID
    cycle_id: UUID
    date: date
    amount: Decimal | None
    status: CollectionStatus
    notes: str | None
    created_at: datetime

    @classmethod
    def from_model(cls, collection: Collection) -> CollectionInfo:
        return cls(
            id=collection.id,
            person_id=collection.person_id,
            cycle_id=collection.cycle_id,
            date=collection.date,
            amount=collection.amount,
            status=CollectionStatus(collection.status),
            notes=collection.notes,
            created_at=collection.created_at,
        )


@dataclass(frozen=True)
class WithdrawalInfo:
    """Immutable view of a withdrawal."""

    id: UUID
    person_id: UUID
    cycle_id: UUID
    amount: Decimal
    date: date
    kind: WithdrawalKind
    notes: str | None
    created_at: datetime
    till_date: date | None = None

    @classmethod
    def from_model(cls, withdrawal: Withdrawal) -> WithdrawalInfo:
        return cls(
            id=withdrawal.id,
            person_id=withdrawal.person_id,
            cycle_id=withdrawal.cycle_id,
            amount=withdrawal.amount,
            date=withdrawal.date,
            kind=WithdrawalKind(withdrawal.kind),
            notes=withdrawal.notes,
            created_at=withdrawal.created_at,
            till_date=withdrawal.till_date,
        )


@dataclass(frozen=True)
class CollectionResult:
    """Outcome of a record/skip/undo operation."""

    collection: CollectionInfo | None
    cycle: CycleInfo
    delta: Decimal


@dataclass(frozen=True)
class WithdrawalResult:
    """Outcome of a full or partial withdrawal."""

    withdrawal: WithdrawalInfo
    settled_cycle: CycleInfo
    active_cycle: CycleInfo
