"""
LedgerService -- daily collections and withdrawals against a person's cycle.

Responsibility:
    The write path of the ledger.  Records, skips and undoes a day's
    collection and settles money out of the active cycle, keeping the
    cycle's running total in step with every change by applying deltas.

Architecture position:
    Kernel > Services -- imperative shell, owns ledger write I/O.

Invariants enforced:
    - One collection row per (person, date); re-recording replaces it and
      applies only the difference.
    - Every total change goes through ``CycleService.apply_delta`` and can
      never go negative.
    - A full withdrawal closes the cycle and opens its successor inside the
      caller's transaction, so the person always ends with exactly one
      active cycle.
    - Days that belong to a closed cycle are settled and cannot be changed.

Failure modes:
    - PersonNotFoundError: unknown person.
    - NoActiveCycleError: withdrawal with no open cycle.
    - InvalidAmountError / InvalidDateError: malformed input.
    - InsufficientBalanceError: partial withdrawal over the cycle total.
    - ClosedCycleError: the day's stored row belongs to a closed cycle.
    - NegativeBalanceError: a delta would take the total below zero.

Audit relevance:
    Each mutation emits a structured log event carrying person, cycle,
    amount and delta, so totals can be traced without the database.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select

from collection_kernel.db.types import ZERO
from collection_kernel.domain.amounts import require_non_negative, require_positive
from collection_kernel.domain.dates import parse_iso_date, to_display_date
from collection_kernel.domain.dtos import (
    CollectionInfo,
    CollectionResult,
    CycleInfo,
    WithdrawalInfo,
    WithdrawalResult,
)
from collection_kernel.exceptions import ClosedCycleError, InsufficientBalanceError
from collection_kernel.logging_config import get_logger
from collection_kernel.models.collection import Collection, CollectionStatus
from collection_kernel.models.cycle import Cycle
from collection_kernel.models.withdrawal import Withdrawal, WithdrawalKind
from collection_kernel.services.base import BaseService
from collection_kernel.services.cycle_service import CycleService

logger = get_logger("services.ledger")

PARTIAL_WITHDRAWAL_NOTE = "Partial withdrawal"


class LedgerService(BaseService[Collection]):
    """
    Service for the collection and withdrawal ledger.

    Guarantees:
        - record -> undo on the same day restores the previous total.
        - record(a) -> record(b) on the same day leaves one row of b and a
          total moved by b only.
        - process_withdrawal leaves exactly one active cycle with total 0.

    Non-goals:
        - Does NOT recompute totals from collection rows.  Drift is
          reported by ``ReconciliationSelector``, never auto-corrected.
    """

    def __init__(self, session, clock=None):
        super().__init__(session, clock)
        self._cycles = CycleService(session, self.clock)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_date(self, on_date: Any) -> date:
        if on_date is None:
            return self.clock.today()
        return parse_iso_date(on_date, field="date")

    def _find_row(self, person_id: UUID, on_date: date) -> Collection | None:
        stmt = select(Collection).where(
            Collection.person_id == person_id,
            Collection.date == on_date,
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def _guard_open(self, row: Collection | None, on_date: date) -> None:
        """Reject changes to a day that was settled by a full withdrawal."""
        if row is None:
            return
        cycle = row.cycle
        if cycle.is_closed:
            logger.warning(
                "closed_cycle_change_blocked",
                extra={
                    "person_id": str(row.person_id),
                    "cycle_id": str(cycle.id),
                    "date": on_date.isoformat(),
                },
            )
            raise ClosedCycleError(str(cycle.id), on_date.isoformat())

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def record_collection(
        self,
        person_id: UUID,
        amount: Decimal | int | str,
        on_date: date | str | None = None,
        notes: str | None = None,
    ) -> CollectionResult:
        """
        Record a collected amount for a person on a day.

        Replaces any existing row for that day.  The active cycle total moves
        by ``amount - previous collected amount``.

        Args:
            person_id: Person paying.
            amount: Amount collected (>= 0).
            on_date: Day of collection; defaults to today.
            notes: Optional free text.

        Returns:
            CollectionResult with the stored row, the updated cycle and the
            delta that was applied.
        """
        amount = require_non_negative(amount)
        day = self._resolve_date(on_date)
        cycle = self._cycles.get_or_create_active_model(person_id)

        row = self._find_row(person_id, day)
        self._guard_open(row, day)

        if amount == ZERO:
            logger.warning(
                "zero_amount_collection",
                extra={"person_id": str(person_id), "date": day.isoformat()},
            )

        existing = row.collected_amount if row is not None else ZERO
        delta = amount - existing

        if row is None:
            row = Collection(
                person_id=person_id,
                cycle_id=cycle.id,
                date=day,
            )
            self.session.add(row)
        row.cycle_id = cycle.id
        row.amount = amount
        row.status = CollectionStatus.COLLECTED
        row.notes = notes
        self.session.flush()

        self._cycles.apply_delta(cycle, delta)

        logger.info(
            "collection_recorded",
            extra={
                "person_id": str(person_id),
                "cycle_id": str(cycle.id),
                "date": day.isoformat(),
                "amount": amount,
                "delta": delta,
                "cycle_total": cycle.total_amount,
            },
        )
        return CollectionResult(
            collection=CollectionInfo.from_model(row),
            cycle=CycleInfo.from_model(cycle),
            delta=delta,
        )

    def skip_collection(
        self,
        person_id: UUID,
        on_date: date | str | None = None,
        notes: str | None = None,
    ) -> CollectionResult:
        """
        Mark a day as skipped.

        If the day already held a collected amount it is taken back out of
        the cycle total first, exactly as ``undo_collection`` would.
        """
        day = self._resolve_date(on_date)
        cycle = self._cycles.get_or_create_active_model(person_id)

        row = self._find_row(person_id, day)
        self._guard_open(row, day)

        delta = ZERO
        if row is None:
            row = Collection(person_id=person_id, cycle_id=cycle.id, date=day)
            self.session.add(row)
        else:
            delta = ZERO - row.collected_amount

        row.cycle_id = cycle.id
        row.amount = None
        row.status = CollectionStatus.SKIPPED
        row.notes = notes
        self.session.flush()

        self._cycles.apply_delta(cycle, delta)

        logger.info(
            "collection_skipped",
            extra={
                "person_id": str(person_id),
                "cycle_id": str(cycle.id),
                "date": day.isoformat(),
                "delta": delta,
                "cycle_total": cycle.total_amount,
            },
        )
        return CollectionResult(
            collection=CollectionInfo.from_model(row),
            cycle=CycleInfo.from_model(cycle),
            delta=delta,
        )

    def undo_collection(
        self,
        person_id: UUID,
        on_date: date | str | None = None,
    ) -> CollectionResult | None:
        """
        Remove the day's entry, reversing any collected amount.

        Returns:
            CollectionResult (collection is None) or None when the day had no
            entry to undo.
        """
        day = self._resolve_date(on_date)
        self._cycles.require_person(person_id)

        row = self._find_row(person_id, day)
        if row is None:
            logger.debug(
                "collection_undo_noop",
                extra={"person_id": str(person_id), "date": day.isoformat()},
            )
            return None
        self._guard_open(row, day)

        cycle = row.cycle
        delta = ZERO - row.collected_amount
        self._cycles.apply_delta(cycle, delta)

        self.session.delete(row)
        self.session.flush()

        logger.info(
            "collection_undone",
            extra={
                "person_id": str(person_id),
                "cycle_id": str(cycle.id),
                "date": day.isoformat(),
                "delta": delta,
                "cycle_total": cycle.total_amount,
            },
        )
        return CollectionResult(
            collection=None,
            cycle=CycleInfo.from_model(cycle),
            delta=delta,
        )

    # ------------------------------------------------------------------
    # Withdrawals
    # ------------------------------------------------------------------

    def process_withdrawal(
        self,
        person_id: UUID,
        notes: str | None = None,
    ) -> WithdrawalResult:
        """
        Settle the whole active cycle.

        Records a FULL withdrawal of the cycle total, closes the cycle and
        opens a new one at zero.  Collections stay attached to the closed
        cycle.

        Raises:
            PersonNotFoundError: Unknown person.
            NoActiveCycleError: Nothing to withdraw from.
        """
        cycle = self._cycles.require_active_model(person_id)
        today = self.clock.today()
        amount = cycle.total_amount

        if amount == ZERO:
            logger.warning(
                "zero_balance_withdrawal",
                extra={"person_id": str(person_id), "cycle_id": str(cycle.id)},
            )

        withdrawal = Withdrawal(
            person_id=person_id,
            cycle_id=cycle.id,
            amount=amount,
            date=today,
            kind=WithdrawalKind.FULL,
            notes=notes,
        )
        self.session.add(withdrawal)
        self.session.flush()

        self._cycles.close_model(cycle)
        successor = self._cycles.open_model(person_id, today)

        logger.info(
            "withdrawal_processed",
            extra={
                "person_id": str(person_id),
                "cycle_id": str(cycle.id),
                "new_cycle_id": str(successor.id),
                "amount": amount,
            },
        )
        return WithdrawalResult(
            withdrawal=WithdrawalInfo.from_model(withdrawal),
            settled_cycle=CycleInfo.from_model(cycle),
            active_cycle=CycleInfo.from_model(successor),
        )

    def process_partial_withdrawal(
        self,
        person_id: UUID,
        amount: Decimal | int | str,
        notes: str | None = None,
        till_date: date | None = None,
    ) -> WithdrawalResult:
        """
        Take part of the active cycle's balance out without closing it.

        Args:
            person_id: Person being paid out.
            amount: Amount to withdraw, 0 < amount <= cycle total.
            notes: Defaults to "Partial withdrawal".
            till_date: Last collection day this withdrawal settles, when it
                was priced from a date range.

        Raises:
            InvalidAmountError: amount is malformed or not positive.
            NoActiveCycleError: Person has no open cycle.
            InsufficientBalanceError: amount exceeds the cycle total.
        """
        amount = require_positive(amount)
        cycle = self._cycles.require_active_model(person_id)

        available = cycle.total_amount
        if amount > available:
            logger.warning(
                "partial_withdrawal_rejected",
                extra={
                    "person_id": str(person_id),
                    "cycle_id": str(cycle.id),
                    "requested": amount,
                    "available": available,
                },
            )
            raise InsufficientBalanceError(str(cycle.id), amount, available)

        withdrawal = Withdrawal(
            person_id=person_id,
            cycle_id=cycle.id,
            amount=amount,
            date=self.clock.today(),
            kind=WithdrawalKind.PARTIAL,
            notes=notes or PARTIAL_WITHDRAWAL_NOTE,
            till_date=till_date,
        )
        self.session.add(withdrawal)
        self.session.flush()

        self._cycles.apply_delta(cycle, -amount)

        logger.info(
            "partial_withdrawal_processed",
            extra={
                "person_id": str(person_id),
                "cycle_id": str(cycle.id),
                "amount": amount,
                "till_date": till_date,
                "cycle_total": cycle.total_amount,
            },
        )
        info = CycleInfo.from_model(cycle)
        return WithdrawalResult(
            withdrawal=WithdrawalInfo.from_model(withdrawal),
            settled_cycle=info,
            active_cycle=info,
        )

    def withdrawal_till_note(self, till_date: date) -> str:
        """Default note for a withdrawal priced up to ``till_date``."""
        return f"Withdrawal till {to_display_date(till_date)}"

    def active_cycle_model(self, person_id: UUID) -> Cycle:
        """Active cycle row for callers composing multi-step operations."""
        return self._cycles.require_active_model(person_id)
