"""
collection_services.ledger -- CollectionLedger facade.

Responsibility:
    The one object the presentation layer talks to.  Every public method
    opens exactly one transaction (``Database.session_scope()``), runs the
    kernel services and selectors inside it, and returns DTOs.  A compound
    operation therefore commits or rolls back as a unit.

Architecture position:
    Services -- composes kernel services (write side) and selectors (read
    side).  Holds no ledger state of its own.

Invariants enforced:
    - One transaction per operation.  Services below flush only.
    - Withdrawal immutability listeners are registered before first use.
    - Each operation runs under a fresh ``correlation_id`` in LogContext.

Failure modes:
    - Kernel errors propagate unchanged after rollback.
    - StorageFailureError wraps database errors.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Callable, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from collection_kernel.db.engine import Database
from collection_kernel.db.immutability import register_immutability_listeners
from collection_kernel.domain.clock import Clock, SystemClock
from collection_kernel.domain.dates import parse_boundary_date
from collection_kernel.domain.dtos import (
    CollectionInfo,
    CollectionResult,
    CycleInfo,
    PersonInfo,
    WithdrawalInfo,
    WithdrawalResult,
)
from collection_kernel.logging_config import LogContext, get_logger
from collection_kernel.models.person import PersonFrequency
from collection_kernel.selectors import (
    CollectionSelector,
    CycleDiscrepancy,
    CycleSummary,
    DashboardSelector,
    DashboardSummary,
    MonthlyPivot,
    MonthlyReport,
    PersonTodayStatus,
    ReconciliationSelector,
    ReportSelector,
)
from collection_kernel.services import (
    CycleService,
    LedgerService,
    PersonService,
    SettingsService,
)

logger = get_logger("services.collection_ledger")

T = TypeVar("T")

_UNSET: Any = object()


class CollectionLedger:
    """
    Facade over the collection kernel.

    Contract:
        Receives a ``Database`` and an optional ``Clock`` via constructor
        injection.  Tests pass an in-memory database and a
        ``DeterministicClock``.

    Guarantees:
        - Every method is atomic.
        - Returned objects are frozen DTOs, safe to hold after the session
          closes.
    """

    def __init__(self, database: Database, clock: Clock | None = None):
        self.database = database
        self.clock = clock or SystemClock()
        register_immutability_listeners()

    def _run(
        self,
        operation: str,
        work: Callable[[Session], T],
        person_id: UUID | None = None,
        cycle_id: UUID | None = None,
    ) -> T:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            operation=operation,
            person_id=str(person_id) if person_id else None,
            cycle_id=str(cycle_id) if cycle_id else None,
        ):
            with self.database.session_scope() as session:
                return work(session)

    def today(self) -> date:
        return self.clock.today()

    # ------------------------------------------------------------------
    # People
    # ------------------------------------------------------------------

    def add_person(
        self,
        name: str,
        default_amount: Decimal | int | str,
        phone: str | None = None,
        location: str | None = None,
        photo_path: str | None = None,
        frequency: PersonFrequency | str = PersonFrequency.DAILY,
        notes: str | None = None,
    ) -> PersonInfo:
        """Register a person and open their first cycle."""
        return self._run(
            "add_person",
            lambda s: PersonService(s, self.clock).add_person(
                name,
                default_amount,
                phone=phone,
                location=location,
                photo_path=photo_path,
                frequency=frequency,
                notes=notes,
            ),
        )

    def update_person(self, person_id: UUID, **changes: Any) -> PersonInfo:
        """Partial update; accepts the keyword arguments of ``add_person``."""
        return self._run(
            "update_person",
            lambda s: PersonService(s, self.clock).update_person(person_id, **changes),
            person_id=person_id,
        )

    def deactivate_person(self, person_id: UUID) -> PersonInfo:
        return self._run(
            "deactivate_person",
            lambda s: PersonService(s, self.clock).deactivate_person(person_id),
            person_id=person_id,
        )

    def reactivate_person(self, person_id: UUID) -> PersonInfo:
        return self._run(
            "reactivate_person",
            lambda s: PersonService(s, self.clock).reactivate_person(person_id),
            person_id=person_id,
        )

    def get_person(self, person_id: UUID) -> PersonInfo:
        return self._run(
            "get_person",
            lambda s: PersonService(s, self.clock).get_by_id(person_id),
            person_id=person_id,
        )

    def list_people(self, active_only: bool = True) -> list[PersonInfo]:
        return self._run(
            "list_people",
            lambda s: PersonService(s, self.clock).list_people(active_only),
        )

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
        """Record (or replace) a day's collected amount."""
        return self._run(
            "record_collection",
            lambda s: LedgerService(s, self.clock).record_collection(
                person_id, amount, on_date=on_date, notes=notes
            ),
            person_id=person_id,
        )

    def skip_collection(
        self,
        person_id: UUID,
        on_date: date | str | None = None,
        notes: str | None = None,
    ) -> CollectionResult:
        """Mark a day skipped, taking back any amount collected that day."""
        return self._run(
            "skip_collection",
            lambda s: LedgerService(s, self.clock).skip_collection(
                person_id, on_date=on_date, notes=notes
            ),
            person_id=person_id,
        )

    def undo_collection(
        self,
        person_id: UUID,
        on_date: date | str | None = None,
    ) -> CollectionResult | None:
        """Remove a day's entry.  Returns None when there was nothing to undo."""
        return self._run(
            "undo_collection",
            lambda s: LedgerService(s, self.clock).undo_collection(person_id, on_date=on_date),
            person_id=person_id,
        )

    # ------------------------------------------------------------------
    # Withdrawals and cycles
    # ------------------------------------------------------------------

    def process_withdrawal(self, person_id: UUID, notes: str | None = None) -> WithdrawalResult:
        """Withdraw the full balance, closing the cycle and opening the next."""
        return self._run(
            "process_withdrawal",
            lambda s: LedgerService(s, self.clock).process_withdrawal(person_id, notes=notes),
            person_id=person_id,
        )

    def process_partial_withdrawal(
        self,
        person_id: UUID,
        amount: Decimal | int | str,
        notes: str | None = None,
    ) -> WithdrawalResult:
        """Withdraw part of the balance; the cycle stays open."""
        return self._run(
            "process_partial_withdrawal",
            lambda s: LedgerService(s, self.clock).process_partial_withdrawal(
                person_id, amount, notes=notes
            ),
            person_id=person_id,
        )

    def process_withdrawal_till(
        self,
        person_id: UUID,
        till_date: date | str,
        notes: str | None = None,
    ) -> WithdrawalResult:
        """
        Withdraw what the active cycle collected up to ``till_date``.

        Pricing starts at the cycle start, or the day after the latest
        ``till_date`` already settled on this cycle, and counts only this
        cycle's rows.  The amount is priced and deducted in the same
        transaction.  Accepts ISO or ``DD-MM-YYYY`` dates.

        Raises:
            InvalidAmountError: nothing was collected in the range.
            InsufficientBalanceError: the priced amount exceeds the total.
        """
        till = parse_boundary_date(till_date, field="till_date")

        def work(session: Session) -> WithdrawalResult:
            ledger = LedgerService(session, self.clock)
            cycle = ledger.active_cycle_model(person_id)
            reports = ReportSelector(session)
            start = cycle.start_date
            settled_till = reports.last_till_date(cycle.id)
            if settled_till is not None and settled_till >= start:
                start = settled_till + timedelta(days=1)
            amount = reports.range_total(person_id, start, till, cycle_id=cycle.id)
            logger.info(
                "withdrawal_till_priced",
                extra={
                    "cycle_id": str(cycle.id),
                    "start_date": start,
                    "till_date": till,
                    "amount": amount,
                },
            )
            return ledger.process_partial_withdrawal(
                person_id,
                amount,
                notes=notes or ledger.withdrawal_till_note(till),
                till_date=till,
            )

        return self._run("process_withdrawal_till", work, person_id=person_id)

    def update_cycle_data(
        self,
        cycle_id: UUID,
        total_amount: Any = _UNSET,
        start_date: Any = _UNSET,
    ) -> CycleInfo:
        """Manually correct a cycle's total and/or start date."""
        kwargs: dict[str, Any] = {}
        if total_amount is not _UNSET:
            kwargs["total_amount"] = total_amount
        if start_date is not _UNSET and start_date is not None:
            kwargs["start_date"] = parse_boundary_date(start_date, field="start_date")
        return self._run(
            "update_cycle_data",
            lambda s: CycleService(s, self.clock).update_cycle_data(cycle_id, **kwargs),
            cycle_id=cycle_id,
        )

    def get_active_cycle(self, person_id: UUID) -> CycleInfo | None:
        return self._run(
            "get_active_cycle",
            lambda s: CycleService(s, self.clock).get_active_cycle(person_id),
            person_id=person_id,
        )

    def get_cycle(self, cycle_id: UUID) -> CycleInfo:
        return self._run(
            "get_cycle",
            lambda s: CycleService(s, self.clock).get_by_id(cycle_id),
            cycle_id=cycle_id,
        )

    # ------------------------------------------------------------------
    # History queries
    # ------------------------------------------------------------------

    def get_collection(self, person_id: UUID, on_date: date | str | None = None) -> CollectionInfo | None:
        day = on_date if on_date is not None else self.today()
        return self._run(
            "get_collection",
            lambda s: CollectionSelector(s).get_collection(person_id, day),
            person_id=person_id,
        )

    def get_collections_by_cycle(self, cycle_id: UUID) -> list[CollectionInfo]:
        return self._run(
            "get_collections_by_cycle",
            lambda s: CollectionSelector(s).get_collections_by_cycle(cycle_id),
            cycle_id=cycle_id,
        )

    def get_collections_by_date_range(
        self,
        start: date | str,
        end: date | str,
        person_id: UUID | None = None,
    ) -> list[CollectionInfo]:
        return self._run(
            "get_collections_by_date_range",
            lambda s: CollectionSelector(s).get_collections_by_date_range(start, end, person_id),
            person_id=person_id,
        )

    def get_all_collections_for_person(self, person_id: UUID) -> list[CollectionInfo]:
        return self._run(
            "get_all_collections_for_person",
            lambda s: CollectionSelector(s).get_all_collections_for_person(person_id),
            person_id=person_id,
        )

    def get_cycles_by_person(self, person_id: UUID) -> list[CycleInfo]:
        return self._run(
            "get_cycles_by_person",
            lambda s: CollectionSelector(s).get_cycles_by_person(person_id),
            person_id=person_id,
        )

    def get_withdrawals_by_person(self, person_id: UUID) -> list[WithdrawalInfo]:
        return self._run(
            "get_withdrawals_by_person",
            lambda s: CollectionSelector(s).get_withdrawals_by_person(person_id),
            person_id=person_id,
        )

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    def dashboard_summary(self, on_date: date | str | None = None) -> DashboardSummary:
        day = on_date if on_date is not None else self.today()
        return self._run(
            "dashboard_summary",
            lambda s: DashboardSelector(s).dashboard_summary(day),
        )

    def people_with_today_status(self, on_date: date | str | None = None) -> list[PersonTodayStatus]:
        day = on_date if on_date is not None else self.today()
        return self._run(
            "people_with_today_status",
            lambda s: DashboardSelector(s).people_with_today_status(day),
        )

    def range_total(self, person_id: UUID, start: date | str, end: date | str) -> Decimal:
        return self._run(
            "range_total",
            lambda s: ReportSelector(s).range_total(person_id, start, end),
            person_id=person_id,
        )

    def monthly_pivot(self, year: int, month: int, include_inactive: bool = False) -> MonthlyPivot:
        return self._run(
            "monthly_pivot",
            lambda s: ReportSelector(s).monthly_pivot(year, month, include_inactive),
        )

    def monthly_report(self, year: int, month: int) -> MonthlyReport:
        return self._run(
            "monthly_report",
            lambda s: ReportSelector(s).monthly_report(year, month, self.today()),
        )

    def cycle_summary(self, cycle_id: UUID) -> CycleSummary:
        return self._run(
            "cycle_summary",
            lambda s: ReportSelector(s).cycle_summary(cycle_id, self.today()),
            cycle_id=cycle_id,
        )

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def verify_cycle(self, cycle_id: UUID) -> CycleDiscrepancy | None:
        return self._run(
            "verify_cycle",
            lambda s: ReconciliationSelector(s).verify_cycle(cycle_id),
            cycle_id=cycle_id,
        )

    def verify_all(self) -> list[CycleDiscrepancy]:
        return self._run("verify_all", lambda s: ReconciliationSelector(s).verify_all())

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_setting(self, key: str, default: str | None = None) -> str | None:
        return self._run(
            "get_setting",
            lambda s: SettingsService(s, self.clock).get_setting(key, default),
        )

    def set_setting(self, key: str, value: str | None) -> str | None:
        return self._run(
            "set_setting",
            lambda s: SettingsService(s, self.clock).set_setting(key, value),
        )

    def get_all_settings(self) -> dict[str, str | None]:
        return self._run(
            "get_all_settings",
            lambda s: SettingsService(s, self.clock).get_all_settings(),
        )
