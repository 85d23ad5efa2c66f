"""
Module: collection_kernel.selectors.report_selector
Responsibility: Period reports over collection history -- inclusive range
    totals (used to price date-ranged withdrawals), the monthly date x person
    pivot, the monthly summary report and per-cycle statistics.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - All figures derive from collection and withdrawal rows at query time.
    - Ranges are inclusive at both ends.

Failure modes:
    - InvalidDateError for malformed dates or a month outside 1-12.
    - CycleNotFoundError for cycle_summary on a missing cycle.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from collection_kernel.db.types import ZERO, round_money
from collection_kernel.domain.dates import month_bounds, parse_iso_date
from collection_kernel.domain.dtos import CycleInfo, PersonInfo
from collection_kernel.exceptions import CycleNotFoundError
from collection_kernel.models.collection import Collection, CollectionStatus
from collection_kernel.models.cycle import Cycle
from collection_kernel.models.person import Person
from collection_kernel.models.withdrawal import Withdrawal
from collection_kernel.selectors.base import BaseSelector, as_money

_PERCENT = Decimal("0.1")
_COLLECTED = CollectionStatus.COLLECTED.value
_SKIPPED = CollectionStatus.SKIPPED.value


@dataclass(frozen=True)
class PivotRow:
    """One date of the monthly grid."""

    date: date
    amounts: dict[UUID, Decimal]
    total: Decimal


@dataclass(frozen=True)
class MonthlyPivot:
    """Date x person grid of collected amounts for a month."""

    year: int
    month: int
    people: list[PersonInfo]
    rows: list[PivotRow]
    person_totals: dict[UUID, Decimal]
    grand_total: Decimal


@dataclass(frozen=True)
class PersonMonthStats:
    person_id: UUID
    name: str
    collected_days: int
    skipped_days: int
    total: Decimal
    collection_rate: Decimal


@dataclass(frozen=True)
class MonthlyReport:
    """Month-level totals plus a per-person breakdown."""

    year: int
    month: int
    total_collected: Decimal
    collection_days: int
    average_per_day: Decimal
    withdrawal_count: int
    withdrawal_total: Decimal
    days_elapsed: int
    people: list[PersonMonthStats] = field(default_factory=list)


@dataclass(frozen=True)
class CycleSummary:
    """Statistics for one cycle as shown on the person detail screen."""

    cycle: CycleInfo
    collected_days: int
    skipped_days: int
    days_elapsed: int
    collected_total: Decimal
    withdrawn_total: Decimal

    @property
    def stored_total(self) -> Decimal:
        return self.cycle.total_amount


def _days_elapsed_in_month(year: int, month: int, as_of: date) -> int:
    start, end = month_bounds(year, month)
    if as_of < start:
        return 0
    if as_of > end:
        return end.day
    return as_of.day


def _rate(collected_days: int, days_elapsed: int) -> Decimal:
    if days_elapsed <= 0:
        return Decimal("0.0")
    rate = Decimal(collected_days) * 100 / Decimal(days_elapsed)
    return rate.quantize(_PERCENT, rounding=ROUND_HALF_UP)


class ReportSelector(BaseSelector[Collection]):
    """Selector for reports and withdrawal pricing."""

    def __init__(self, session: Session):
        super().__init__(session)

    def range_total(
        self,
        person_id: UUID,
        start: date | str,
        end: date | str,
        cycle_id: UUID | None = None,
    ) -> Decimal:
        """
        Sum of collected amounts for a person with ``start <= date <= end``.

        When ``cycle_id`` is given only that cycle's rows count.  Returns 0
        when the range is empty or reversed.
        """
        start_day = parse_iso_date(start, field="start")
        end_day = parse_iso_date(end, field="end")
        stmt = select(func.sum(Collection.amount)).where(
            Collection.person_id == person_id,
            Collection.status == _COLLECTED,
            Collection.date >= start_day,
            Collection.date <= end_day,
        )
        if cycle_id is not None:
            stmt = stmt.where(Collection.cycle_id == cycle_id)
        return as_money(self.session.execute(stmt).scalar())

    def last_till_date(self, cycle_id: UUID) -> date | None:
        """Latest day already settled by a date-ranged withdrawal on the cycle."""
        stmt = select(func.max(Withdrawal.till_date)).where(Withdrawal.cycle_id == cycle_id)
        return self.session.execute(stmt).scalar()

    def monthly_pivot(
        self,
        year: int,
        month: int,
        include_inactive: bool = False,
    ) -> MonthlyPivot:
        """
        Build the monthly grid.

        Columns are active people (plus inactive ones when requested), in
        name order.  Only dates with at least one collected entry for a
        listed person become rows.  Missing cells are absent from
        ``PivotRow.amounts`` rather than zero.
        """
        start, end = month_bounds(year, month)

        people_stmt = select(Person).order_by(Person.name, Person.created_at)
        if not include_inactive:
            people_stmt = people_stmt.where(Person.is_active.is_(True))
        people = [PersonInfo.from_model(p) for p in self.session.execute(people_stmt).scalars()]
        person_ids = {p.id for p in people}

        stmt = (
            select(Collection.date, Collection.person_id, Collection.amount)
            .where(
                Collection.status == _COLLECTED,
                Collection.date >= start,
                Collection.date <= end,
            )
            .order_by(Collection.date)
        )

        grid: dict[date, dict[UUID, Decimal]] = defaultdict(dict)
        person_totals: dict[UUID, Decimal] = {p.id: ZERO for p in people}
        for day, person_id, amount in self.session.execute(stmt).all():
            if person_id not in person_ids:
                continue
            value = as_money(amount)
            grid[day][person_id] = value
            person_totals[person_id] += value

        rows = [
            PivotRow(date=day, amounts=amounts, total=round_money(sum(amounts.values(), ZERO)))
            for day, amounts in sorted(grid.items())
        ]
        return MonthlyPivot(
            year=year,
            month=month,
            people=people,
            rows=rows,
            person_totals=person_totals,
            grand_total=round_money(sum(person_totals.values(), ZERO)),
        )

    def monthly_report(self, year: int, month: int, as_of: date | str) -> MonthlyReport:
        """
        Summarize a month.

        ``collection_rate`` is collected days over the days of the month
        that have elapsed as of ``as_of``, as a percentage with one decimal.
        People listed are the active ones plus anyone else with an entry in
        the month.
        """
        start, end = month_bounds(year, month)
        reference = parse_iso_date(as_of, field="as_of")
        days_elapsed = _days_elapsed_in_month(year, month, reference)

        in_month = (Collection.date >= start, Collection.date <= end)

        totals_stmt = select(
            func.sum(Collection.amount),
            func.count(func.distinct(Collection.date)),
        ).where(Collection.status == _COLLECTED, *in_month)
        total_collected, collection_days = self.session.execute(totals_stmt).one()
        total_collected = as_money(total_collected)
        collection_days = collection_days or 0

        withdrawal_stmt = select(func.count(Withdrawal.id), func.sum(Withdrawal.amount)).where(
            Withdrawal.date >= start,
            Withdrawal.date <= end,
        )
        withdrawal_count, withdrawal_total = self.session.execute(withdrawal_stmt).one()

        per_person_stmt = (
            select(
                Collection.person_id,
                Collection.status,
                func.count(Collection.id),
                func.sum(Collection.amount),
            )
            .where(*in_month)
            .group_by(Collection.person_id, Collection.status)
        )
        counts: dict[UUID, dict[str, tuple[int, Decimal]]] = defaultdict(dict)
        for person_id, status, count, amount in self.session.execute(per_person_stmt).all():
            counts[person_id][status] = (count, as_money(amount))

        people_stmt = (
            select(Person)
            .where(or_(Person.is_active.is_(True), Person.id.in_(list(counts))))
            .order_by(Person.name, Person.created_at)
        )
        stats = []
        for person in self.session.execute(people_stmt).scalars():
            collected_days, total = counts[person.id].get(_COLLECTED, (0, ZERO))
            skipped_days, _ = counts[person.id].get(_SKIPPED, (0, ZERO))
            stats.append(
                PersonMonthStats(
                    person_id=person.id,
                    name=person.name,
                    collected_days=collected_days,
                    skipped_days=skipped_days,
                    total=total,
                    collection_rate=_rate(collected_days, days_elapsed),
                )
            )

        average = round_money(total_collected / collection_days) if collection_days else ZERO
        return MonthlyReport(
            year=year,
            month=month,
            total_collected=total_collected,
            collection_days=collection_days,
            average_per_day=average,
            withdrawal_count=withdrawal_count or 0,
            withdrawal_total=as_money(withdrawal_total),
            days_elapsed=days_elapsed,
            people=stats,
        )

    def cycle_summary(self, cycle_id: UUID, as_of: date | str) -> CycleSummary:
        """
        Collected and skipped day counts and money in/out for a cycle.

        ``days_elapsed`` runs from start_date to end_date (closed cycles) or
        ``as_of`` (open ones), and is at least 1.

        Raises:
            CycleNotFoundError: cycle doesn't exist.
        """
        cycle = self.session.get(Cycle, cycle_id)
        if cycle is None:
            raise CycleNotFoundError(str(cycle_id))
        reference = cycle.end_date or parse_iso_date(as_of, field="as_of")

        stmt = (
            select(Collection.status, func.count(Collection.id), func.sum(Collection.amount))
            .where(Collection.cycle_id == cycle_id)
            .group_by(Collection.status)
        )
        by_status = {
            status: (count, as_money(amount))
            for status, count, amount in self.session.execute(stmt).all()
        }
        collected_days, collected_total = by_status.get(_COLLECTED, (0, ZERO))
        skipped_days, _ = by_status.get(_SKIPPED, (0, ZERO))

        withdrawn_stmt = select(func.sum(Withdrawal.amount)).where(
            Withdrawal.cycle_id == cycle_id
        )
        withdrawn_total = as_money(self.session.execute(withdrawn_stmt).scalar())

        return CycleSummary(
            cycle=CycleInfo.from_model(cycle),
            collected_days=collected_days,
            skipped_days=skipped_days,
            days_elapsed=max(1, (reference - cycle.start_date).days),
            collected_total=collected_total,
            withdrawn_total=withdrawn_total,
        )
