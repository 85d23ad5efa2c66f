"""
Tests for CycleService.

Covers:
- Active cycle lookup and lazy creation
- Detection of more than one active cycle
- The partial unique index backing the one-active-cycle rule
- apply_delta non-negative guard
- Manual correction (update_cycle_data)
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from collection_kernel.exceptions import (
    CycleNotFoundError,
    InvalidAmountError,
    InvalidDateError,
    MultipleActiveCyclesError,
    NegativeBalanceError,
    NoActiveCycleError,
    PersonNotFoundError,
)
from collection_kernel.models.cycle import Cycle


def _close_active(session, cycle_service, person_id):
    cycle = cycle_service.require_active_model(person_id)
    cycle_service.close_model(cycle)
    return cycle


class TestActiveCycle:

    def test_get_active_cycle(self, cycle_service, payer):
        cycle = cycle_service.get_active_cycle(payer.id)
        assert cycle.person_id == payer.id
        assert cycle.is_active is True

    def test_unknown_person(self, cycle_service):
        with pytest.raises(PersonNotFoundError):
            cycle_service.get_active_cycle(uuid4())

    def test_none_after_close(self, session, cycle_service, payer):
        _close_active(session, cycle_service, payer.id)
        assert cycle_service.get_active_cycle(payer.id) is None

    def test_require_raises_without_active(self, session, cycle_service, payer):
        _close_active(session, cycle_service, payer.id)
        with pytest.raises(NoActiveCycleError) as exc_info:
            cycle_service.require_active_model(payer.id)
        assert exc_info.value.person_id == str(payer.id)

    def test_lazy_creation(self, session, cycle_service, payer, captured_logs):
        _close_active(session, cycle_service, payer.id)

        cycle = cycle_service.get_or_create_active_model(payer.id)

        assert cycle.is_active is True
        assert cycle.total_amount == Decimal("0")
        assert any(r["message"] == "cycle_created_lazily" for r in captured_logs())

    def test_create_cycle_refuses_second_active(self, cycle_service, payer):
        with pytest.raises(MultipleActiveCyclesError):
            cycle_service.create_cycle(payer.id)
        assert cycle_service.count_active(payer.id) == 1

    def test_unique_index_rejects_second_active_row(self, session, payer):
        session.add(Cycle(person_id=payer.id, start_date=date(2024, 3, 1), is_active=True))
        with pytest.raises(IntegrityError):
            session.flush()

    def test_detects_multiple_active_rows(self, session, cycle_service, payer):
        session.execute(text("DROP INDEX uq_cycle_one_active_per_person"))
        session.add(Cycle(person_id=payer.id, start_date=date(2024, 3, 1), is_active=True))
        session.flush()

        with pytest.raises(MultipleActiveCyclesError) as exc_info:
            cycle_service.get_active_cycle(payer.id)
        assert exc_info.value.count == 2


class TestClose:

    def test_close_stamps_dates_and_keeps_total(self, session, cycle_service, payer):
        cycle = cycle_service.require_active_model(payer.id)
        cycle.total_amount = Decimal("450.00")

        cycle_service.close_model(cycle)

        assert cycle.is_active is False
        assert cycle.end_date == date(2024, 3, 15)
        assert cycle.withdrawal_date is not None
        assert cycle.total_amount == Decimal("450.00")


class TestApplyDelta:

    def test_positive_and_negative_deltas(self, cycle_service, payer):
        cycle = cycle_service.require_active_model(payer.id)
        cycle_service.apply_delta(cycle, Decimal("300"))
        cycle_service.apply_delta(cycle, Decimal("-120"))
        assert cycle.total_amount == Decimal("180")

    def test_rejects_negative_result(self, cycle_service, payer):
        cycle = cycle_service.require_active_model(payer.id)
        cycle_service.apply_delta(cycle, Decimal("50"))

        with pytest.raises(NegativeBalanceError) as exc_info:
            cycle_service.apply_delta(cycle, Decimal("-50.01"))

        assert exc_info.value.current == Decimal("50")
        assert exc_info.value.delta == Decimal("-50.01")
        assert cycle.total_amount == Decimal("50")

    def test_balance_can_reach_exactly_zero(self, cycle_service, payer):
        cycle = cycle_service.require_active_model(payer.id)
        cycle_service.apply_delta(cycle, Decimal("75"))
        cycle_service.apply_delta(cycle, Decimal("-75"))
        assert cycle.total_amount == Decimal("0")


class TestUpdateCycleData:

    def test_overwrites_total_and_start(self, cycle_service, payer, captured_logs):
        cycle = cycle_service.get_active_cycle(payer.id)

        updated = cycle_service.update_cycle_data(
            cycle.id, total_amount="1200", start_date="2024-02-01"
        )

        assert updated.total_amount == Decimal("1200.00")
        assert updated.start_date == date(2024, 2, 1)
        record = next(r for r in captured_logs() if r["message"] == "cycle_manually_adjusted")
        assert record["level"] == "WARNING"
        assert Decimal(record["before_total"]) == Decimal("0")
        assert Decimal(record["after_total"]) == Decimal("1200")

    def test_only_total(self, cycle_service, payer):
        cycle = cycle_service.get_active_cycle(payer.id)
        updated = cycle_service.update_cycle_data(cycle.id, total_amount=10)
        assert updated.start_date == cycle.start_date

    def test_rejects_negative_total(self, cycle_service, payer):
        cycle = cycle_service.get_active_cycle(payer.id)
        with pytest.raises(InvalidAmountError):
            cycle_service.update_cycle_data(cycle.id, total_amount=-1)

    def test_rejects_bad_start_date(self, cycle_service, payer):
        cycle = cycle_service.get_active_cycle(payer.id)
        with pytest.raises(InvalidDateError):
            cycle_service.update_cycle_data(cycle.id, start_date="01/02/2024")

    def test_unknown_cycle(self, cycle_service):
        with pytest.raises(CycleNotFoundError):
            cycle_service.update_cycle_data(uuid4(), total_amount=5)
