"""
Module: collection_kernel.selectors.dashboard_selector
Responsibility: Home-screen aggregates -- what came in today, who is still
    pending, and how the month compares with the last one.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - PENDING is derived here (active person, no stored row for the day) and
      never written.
    - Sums are computed from collection rows only; stored cycle totals are
      reported alongside, never rewritten.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from collection_kernel.db.types import ZERO
from collection_kernel.domain.dates import month_bounds, parse_iso_date, previous_month
from collection_kernel.domain.dtos import CycleInfo, PersonInfo
from collection_kernel.models.collection import Collection, CollectionStatus
from collection_kernel.models.cycle import Cycle
from collection_kernel.models.person import Person
from collection_kernel.selectors.base import BaseSelector, as_money

_STATUS_ORDER = {
    CollectionStatus.PENDING: 0,
    CollectionStatus.COLLECTED: 1,
    CollectionStatus.SKIPPED: 2,
}


@dataclass(frozen=True)
class DashboardSummary:
    """Totals for the dashboard header."""

    on_date: date
    today_total: Decimal
    today_count: int
    pending_count: int
    pending_amount: Decimal
    month_total: Decimal
    previous_month_total: Decimal
    active_people: int

    @property
    def month_change(self) -> Decimal:
        return self.month_total - self.previous_month_total


@dataclass(frozen=True)
class PersonTodayStatus:
    """One dashboard row: a person and what happened with them today."""

    person: PersonInfo
    status: CollectionStatus
    amount: Decimal | None
    notes: str | None
    active_cycle: CycleInfo | None

    @property
    def cycle_total(self) -> Decimal:
        return self.active_cycle.total_amount if self.active_cycle else ZERO


class DashboardSelector(BaseSelector[Collection]):
    """Selector for the dashboard screen."""

    def __init__(self, session: Session):
        super().__init__(session)

    def _collected_sum(self, start: date, end: date) -> Decimal:
        stmt = select(func.sum(Collection.amount)).where(
            Collection.status == CollectionStatus.COLLECTED.value,
            Collection.date >= start,
            Collection.date <= end,
        )
        return as_money(self.session.execute(stmt).scalar())

    def dashboard_summary(self, on_date: date | str) -> DashboardSummary:
        """
        Compute the dashboard header for ``on_date``.

        Returns:
            DashboardSummary with today's collected sum and count, the
            pending count and the sum of their default amounts, this
            month's collected sum and last month's for comparison.
        """
        day = parse_iso_date(on_date)

        today_stmt = select(func.sum(Collection.amount), func.count(Collection.id)).where(
            Collection.status == CollectionStatus.COLLECTED.value,
            Collection.date == day,
        )
        today_sum, today_count = self.session.execute(today_stmt).one()

        has_row_today = (
            select(Collection.id)
            .where(Collection.person_id == Person.id, Collection.date == day)
            .exists()
        )
        pending_stmt = select(func.count(Person.id), func.sum(Person.default_amount)).where(
            Person.is_active.is_(True),
            ~has_row_today,
        )
        pending_count, pending_sum = self.session.execute(pending_stmt).one()

        active_stmt = select(func.count(Person.id)).where(Person.is_active.is_(True))
        active_people = self.session.execute(active_stmt).scalar_one()

        month_start, month_end = month_bounds(day.year, day.month)
        prev_year, prev_month = previous_month(day.year, day.month)
        prev_start, prev_end = month_bounds(prev_year, prev_month)

        return DashboardSummary(
            on_date=day,
            today_total=as_money(today_sum),
            today_count=today_count or 0,
            pending_count=pending_count or 0,
            pending_amount=as_money(pending_sum),
            month_total=self._collected_sum(month_start, month_end),
            previous_month_total=self._collected_sum(prev_start, prev_end),
            active_people=active_people,
        )

    def people_with_today_status(self, on_date: date | str) -> list[PersonTodayStatus]:
        """
        Every active person with the day's status and active cycle.

        Ordered pending first, then collected, then skipped; by name within
        each group.
        """
        day = parse_iso_date(on_date)
        stmt = (
            select(Person, Collection, Cycle)
            .outerjoin(
                Collection,
                and_(Collection.person_id == Person.id, Collection.date == day),
            )
            .outerjoin(
                Cycle,
                and_(Cycle.person_id == Person.id, Cycle.is_active.is_(True)),
            )
            .where(Person.is_active.is_(True))
        )

        rows = []
        for person, collection, cycle in self.session.execute(stmt).all():
            if collection is None:
                status = CollectionStatus.PENDING
                amount = None
                notes = None
            else:
                status = CollectionStatus(collection.status)
                amount = collection.amount
                notes = collection.notes
            rows.append(
                PersonTodayStatus(
                    person=PersonInfo.from_model(person),
                    status=status,
                    amount=amount,
                    notes=notes,
                    active_cycle=CycleInfo.from_model(cycle) if cycle else None,
                )
            )

        rows.sort(key=lambda r: (_STATUS_ORDER[r.status], r.person.name.lower()))
        return rows
