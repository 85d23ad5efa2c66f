"""
Module: collection_kernel.selectors.reconciliation_selector
Responsibility: Diagnostics that compare each stored cycle total with the
    total implied by its rows.

    expected = sum(collected amounts) - sum(partial withdrawals)

    Stored totals are maintained by deltas and are the live source of truth;
    this selector only reports drift (for instance after a manual
    correction) and never writes.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from collection_kernel.db.types import ZERO
from collection_kernel.exceptions import CycleNotFoundError
from collection_kernel.logging_config import get_logger
from collection_kernel.models.collection import Collection, CollectionStatus
from collection_kernel.models.cycle import Cycle
from collection_kernel.models.withdrawal import Withdrawal, WithdrawalKind
from collection_kernel.selectors.base import BaseSelector, as_money

logger = get_logger("selectors.reconciliation")


@dataclass(frozen=True)
class CycleDiscrepancy:
    """A cycle whose stored total disagrees with its rows."""

    cycle_id: UUID
    person_id: UUID
    is_active: bool
    stored_total: Decimal
    collected_total: Decimal
    partial_withdrawn: Decimal

    @property
    def expected_total(self) -> Decimal:
        return self.collected_total - self.partial_withdrawn

    @property
    def difference(self) -> Decimal:
        return self.stored_total - self.expected_total


@dataclass(frozen=True)
class ActiveCycleConflict:
    """A person with more than one active cycle."""

    person_id: UUID
    active_count: int


class ReconciliationSelector(BaseSelector[Cycle]):
    """Selector for ledger consistency checks."""

    def __init__(self, session: Session):
        super().__init__(session)

    def _collected_by_cycle(self, cycle_id: UUID | None = None) -> dict[UUID, Decimal]:
        stmt = (
            select(Collection.cycle_id, func.sum(Collection.amount))
            .where(Collection.status == CollectionStatus.COLLECTED.value)
            .group_by(Collection.cycle_id)
        )
        if cycle_id is not None:
            stmt = stmt.where(Collection.cycle_id == cycle_id)
        return {cid: as_money(total) for cid, total in self.session.execute(stmt).all()}

    def _partials_by_cycle(self, cycle_id: UUID | None = None) -> dict[UUID, Decimal]:
        stmt = (
            select(Withdrawal.cycle_id, func.sum(Withdrawal.amount))
            .where(Withdrawal.kind == WithdrawalKind.PARTIAL.value)
            .group_by(Withdrawal.cycle_id)
        )
        if cycle_id is not None:
            stmt = stmt.where(Withdrawal.cycle_id == cycle_id)
        return {cid: as_money(total) for cid, total in self.session.execute(stmt).all()}

    @staticmethod
    def _compare(
        cycle: Cycle,
        collected: dict[UUID, Decimal],
        partials: dict[UUID, Decimal],
    ) -> CycleDiscrepancy | None:
        result = CycleDiscrepancy(
            cycle_id=cycle.id,
            person_id=cycle.person_id,
            is_active=cycle.is_active,
            stored_total=as_money(cycle.total_amount),
            collected_total=collected.get(cycle.id, ZERO),
            partial_withdrawn=partials.get(cycle.id, ZERO),
        )
        if result.difference == ZERO:
            return None
        return result

    def verify_cycle(self, cycle_id: UUID) -> CycleDiscrepancy | None:
        """
        Check one cycle.

        Returns:
            CycleDiscrepancy when totals disagree, otherwise None.

        Raises:
            CycleNotFoundError: cycle doesn't exist.
        """
        cycle = self.session.get(Cycle, cycle_id)
        if cycle is None:
            raise CycleNotFoundError(str(cycle_id))
        return self._compare(
            cycle,
            self._collected_by_cycle(cycle_id),
            self._partials_by_cycle(cycle_id),
        )

    def verify_all(self) -> list[CycleDiscrepancy]:
        """Check every cycle; returns the discrepancies only."""
        collected = self._collected_by_cycle()
        partials = self._partials_by_cycle()
        stmt = select(Cycle).order_by(Cycle.person_id, Cycle.start_date)

        discrepancies = []
        checked = 0
        for cycle in self.session.execute(stmt).scalars():
            checked += 1
            found = self._compare(cycle, collected, partials)
            if found is not None:
                discrepancies.append(found)

        logger.info(
            "reconciliation_completed",
            extra={"cycles_checked": checked, "discrepancies": len(discrepancies)},
        )
        return discrepancies

    def find_active_cycle_conflicts(self) -> list[ActiveCycleConflict]:
        """People whose stored data has more than one active cycle."""
        stmt = (
            select(Cycle.person_id, func.count(Cycle.id))
            .where(Cycle.is_active.is_(True))
            .group_by(Cycle.person_id)
            .having(func.count(Cycle.id) > 1)
        )
        return [
            ActiveCycleConflict(person_id=pid, active_count=count)
            for pid, count in self.session.execute(stmt).all()
        ]
