"""
Service layer for Cycle lifecycle operations.

Owns the state machine of a person's accounting period:

    [no cycle] --(person created / lazy)--> ACTIVE(total=0)
    ACTIVE --(close)--> CLOSED (terminal)

and the single routine through which every running-total change passes
(``apply_delta``), which is where the non-negative balance rule lives.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select

from collection_kernel.db.types import ZERO
from collection_kernel.domain.amounts import require_non_negative
from collection_kernel.domain.dates import parse_iso_date
from collection_kernel.domain.dtos import CycleInfo
from collection_kernel.exceptions import (
    CycleNotFoundError,
    MultipleActiveCyclesError,
    NegativeBalanceError,
    NoActiveCycleError,
    PersonNotFoundError,
)
from collection_kernel.logging_config import get_logger
from collection_kernel.models.cycle import Cycle
from collection_kernel.models.person import Person
from collection_kernel.services.base import BaseService

logger = get_logger("services.cycle")

_UNSET: Any = object()


class CycleService(BaseService[Cycle]):
    """
    Service for creating, finding, closing and correcting cycles.

    Guarantees:
        - create_cycle never leaves two active cycles for a person.
        - apply_delta never produces a negative total.
        - Closing a cycle stamps end_date and withdrawal_date together.
    """

    def require_person(self, person_id: UUID) -> Person:
        person = self.session.get(Person, person_id)
        if person is None:
            raise PersonNotFoundError(str(person_id))
        return person

    def _get_by_id(self, cycle_id: UUID) -> Cycle:
        cycle = self.session.get(Cycle, cycle_id)
        if cycle is None:
            raise CycleNotFoundError(str(cycle_id))
        return cycle

    def find_active_model(self, person_id: UUID) -> Cycle | None:
        """
        Return the person's active cycle row, or None.

        Raises:
            MultipleActiveCyclesError: More than one row matches.
        """
        stmt = select(Cycle).where(
            Cycle.person_id == person_id,
            Cycle.is_active.is_(True),
        )
        rows = self.session.execute(stmt).scalars().all()
        if len(rows) > 1:
            logger.error(
                "multiple_active_cycles_detected",
                extra={"person_id": str(person_id), "count": len(rows)},
            )
            raise MultipleActiveCyclesError(str(person_id), len(rows))
        return rows[0] if rows else None

    def require_active_model(self, person_id: UUID) -> Cycle:
        """Return the active cycle row or raise NoActiveCycleError."""
        self.require_person(person_id)
        cycle = self.find_active_model(person_id)
        if cycle is None:
            raise NoActiveCycleError(str(person_id))
        return cycle

    def get_or_create_active_model(self, person_id: UUID) -> Cycle:
        """
        Return the active cycle, creating one first if none exists.

        Lazy creation covers people whose data arrived without a cycle
        (older imports).
        """
        self.require_person(person_id)
        cycle = self.find_active_model(person_id)
        if cycle is None:
            cycle = self.open_model(person_id)
            logger.warning(
                "cycle_created_lazily",
                extra={"person_id": str(person_id), "cycle_id": str(cycle.id)},
            )
        return cycle

    def open_model(self, person_id: UUID, start_date: date | None = None) -> Cycle:
        cycle = Cycle(
            person_id=person_id,
            start_date=start_date or self.clock.today(),
            total_amount=ZERO,
            is_active=True,
        )
        self.session.add(cycle)
        self.session.flush()
        logger.info(
            "cycle_created",
            extra={
                "person_id": str(person_id),
                "cycle_id": str(cycle.id),
                "start_date": cycle.start_date.isoformat(),
            },
        )
        return cycle

    def create_cycle(self, person_id: UUID, start_date: date | None = None) -> CycleInfo:
        """
        Open a new active cycle with total 0.

        Raises:
            PersonNotFoundError: Person doesn't exist.
            MultipleActiveCyclesError: Person already has an active cycle.
        """
        self.require_person(person_id)
        existing = self.find_active_model(person_id)
        if existing is not None:
            raise MultipleActiveCyclesError(str(person_id), 2)
        return CycleInfo.from_model(self.open_model(person_id, start_date))

    def close_model(self, cycle: Cycle) -> Cycle:
        """Mark a cycle closed as of today.  The total is kept as the settled amount."""
        cycle.is_active = False
        cycle.end_date = self.clock.today()
        cycle.withdrawal_date = self.clock.now()
        self.session.flush()
        logger.info(
            "cycle_closed",
            extra={
                "person_id": str(cycle.person_id),
                "cycle_id": str(cycle.id),
                "total_amount": cycle.total_amount,
            },
        )
        return cycle

    def apply_delta(self, cycle: Cycle, delta: Decimal) -> Cycle:
        """
        Adjust a cycle's running total by ``delta``.

        This is the only place collection, undo and partial-withdrawal
        operations change a total.  It never re-sums collections.

        Raises:
            NegativeBalanceError: The resulting total would be below zero.
        """
        if delta == ZERO:
            return cycle
        current = cycle.total_amount
        if current + delta < ZERO:
            logger.error(
                "negative_balance_blocked",
                extra={
                    "cycle_id": str(cycle.id),
                    "current_total": current,
                    "delta": delta,
                },
            )
            raise NegativeBalanceError(str(cycle.id), current, delta)
        cycle.total_amount = current + delta
        self.session.flush()
        return cycle

    def get_active_cycle(self, person_id: UUID) -> CycleInfo | None:
        """
        Get the person's active cycle.

        Returns:
            CycleInfo DTO or None when the person has no open cycle.

        Raises:
            PersonNotFoundError: Person doesn't exist.
            MultipleActiveCyclesError: Invariant broken in stored data.
        """
        self.require_person(person_id)
        cycle = self.find_active_model(person_id)
        return CycleInfo.from_model(cycle) if cycle else None

    def get_by_id(self, cycle_id: UUID) -> CycleInfo:
        """Get cycle by ID, raising CycleNotFoundError if missing."""
        return CycleInfo.from_model(self._get_by_id(cycle_id))

    def count_active(self, person_id: UUID) -> int:
        stmt = select(func.count()).select_from(Cycle).where(
            Cycle.person_id == person_id,
            Cycle.is_active.is_(True),
        )
        return self.session.execute(stmt).scalar_one()

    def update_cycle_data(
        self,
        cycle_id: UUID,
        total_amount: Any = _UNSET,
        start_date: Any = _UNSET,
    ) -> CycleInfo:
        """
        Manually correct a cycle, bypassing delta logic.

        Used when the ledger is adopted mid-relationship or an entry error
        must be fixed.  Later collections keep adding deltas on top of the
        corrected total.

        Args:
            cycle_id: Cycle to correct.
            total_amount: New total (>= 0), if provided.
            start_date: New start date (date or ISO string), if provided.

        Raises:
            CycleNotFoundError: Cycle doesn't exist.
            InvalidAmountError: total_amount is malformed or negative.
            InvalidDateError: start_date is malformed.
        """
        cycle = self._get_by_id(cycle_id)
        before = {"total_amount": cycle.total_amount, "start_date": cycle.start_date}

        if total_amount is not _UNSET and total_amount is not None:
            cycle.total_amount = require_non_negative(total_amount, field="total_amount")
        if start_date is not _UNSET and start_date is not None:
            cycle.start_date = parse_iso_date(start_date, field="start_date")

        self.session.flush()
        logger.warning(
            "cycle_manually_adjusted",
            extra={
                "cycle_id": str(cycle.id),
                "person_id": str(cycle.person_id),
                "before_total": before["total_amount"],
                "after_total": cycle.total_amount,
                "before_start_date": before["start_date"],
                "after_start_date": cycle.start_date,
            },
        )
        return CycleInfo.from_model(cycle)
