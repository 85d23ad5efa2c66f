"""
Module: collection_kernel.selectors.collection_selector
Responsibility: Read-only history queries over collections, cycles and
    withdrawals for one person or one cycle.
Architecture position: Kernel > Selectors.

Failure modes:
    - CycleNotFoundError when a cycle-anchored query names a missing cycle.
    - InvalidDateError for malformed date arguments.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from collection_kernel.domain.dates import parse_iso_date
from collection_kernel.domain.dtos import CollectionInfo, CycleInfo, WithdrawalInfo
from collection_kernel.exceptions import CycleNotFoundError
from collection_kernel.models.collection import Collection
from collection_kernel.models.cycle import Cycle
from collection_kernel.models.withdrawal import Withdrawal
from collection_kernel.selectors.base import BaseSelector


class CollectionSelector(BaseSelector[Collection]):
    """
    Selector for ledger history.

    Guarantees:
        - Collections of a closed cycle stay queryable through
          get_collections_by_cycle.
        - Newest-first ordering for per-person and per-cycle history.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def get_collection(self, person_id: UUID, on_date: date | str) -> CollectionInfo | None:
        """The stored entry for a person on a day, or None (pending)."""
        day = parse_iso_date(on_date)
        stmt = select(Collection).where(
            Collection.person_id == person_id,
            Collection.date == day,
        )
        row = self.session.execute(stmt).scalar_one_or_none()
        return CollectionInfo.from_model(row) if row else None

    def get_collections_by_cycle(self, cycle_id: UUID) -> list[CollectionInfo]:
        """
        All entries recorded against a cycle, newest date first.

        Raises:
            CycleNotFoundError: cycle doesn't exist.
        """
        if self.session.get(Cycle, cycle_id) is None:
            raise CycleNotFoundError(str(cycle_id))
        stmt = (
            select(Collection)
            .where(Collection.cycle_id == cycle_id)
            .order_by(Collection.date.desc())
        )
        return [CollectionInfo.from_model(c) for c in self.session.execute(stmt).scalars()]

    def get_collections_by_date_range(
        self,
        start: date | str,
        end: date | str,
        person_id: UUID | None = None,
    ) -> list[CollectionInfo]:
        """Entries with ``start <= date <= end``, oldest first."""
        start_day = parse_iso_date(start, field="start")
        end_day = parse_iso_date(end, field="end")
        stmt = select(Collection).where(
            Collection.date >= start_day,
            Collection.date <= end_day,
        )
        if person_id is not None:
            stmt = stmt.where(Collection.person_id == person_id)
        stmt = stmt.order_by(Collection.date, Collection.created_at)
        return [CollectionInfo.from_model(c) for c in self.session.execute(stmt).scalars()]

    def get_all_collections_for_person(self, person_id: UUID) -> list[CollectionInfo]:
        stmt = (
            select(Collection)
            .where(Collection.person_id == person_id)
            .order_by(Collection.date.desc())
        )
        return [CollectionInfo.from_model(c) for c in self.session.execute(stmt).scalars()]

    def get_cycles_by_person(self, person_id: UUID) -> list[CycleInfo]:
        """Every cycle of a person, most recent start first (active before closed on ties)."""
        stmt = (
            select(Cycle)
            .where(Cycle.person_id == person_id)
            .order_by(Cycle.start_date.desc(), Cycle.is_active.desc())
        )
        return [CycleInfo.from_model(c) for c in self.session.execute(stmt).scalars()]

    def get_withdrawals_by_person(self, person_id: UUID) -> list[WithdrawalInfo]:
        stmt = (
            select(Withdrawal)
            .where(Withdrawal.person_id == person_id)
            .order_by(Withdrawal.date.desc(), Withdrawal.created_at.desc())
        )
        return [WithdrawalInfo.from_model(w) for w in self.session.execute(stmt).scalars()]

    def get_withdrawals_by_cycle(self, cycle_id: UUID) -> list[WithdrawalInfo]:
        stmt = (
            select(Withdrawal)
            .where(Withdrawal.cycle_id == cycle_id)
            .order_by(Withdrawal.date, Withdrawal.created_at)
        )
        return [WithdrawalInfo.from_model(w) for w in self.session.execute(stmt).scalars()]
