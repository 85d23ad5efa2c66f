"""
Tests for LedgerService.

Covers:
- Idempotent re-collection (delta, not accumulation)
- Undo symmetry
- Skip over a collected day takes the amount back
- Full withdrawal closes and reopens atomically, history preserved
- Partial withdrawal keeps the cycle open
- Over-withdrawal rejected with totals unchanged
- Days of closed cycles cannot be changed
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from collection_kernel.exceptions import (
    ClosedCycleError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidDateError,
    NegativeBalanceError,
    NoActiveCycleError,
    PersonNotFoundError,
)
from collection_kernel.models.collection import Collection, CollectionStatus
from collection_kernel.models.withdrawal import WithdrawalKind

TODAY = date(2024, 3, 15)


def _total(cycle_service, person_id) -> Decimal:
    return cycle_service.get_active_cycle(person_id).total_amount


def _row_count(session, person_id) -> int:
    stmt = select(func.count()).select_from(Collection).where(Collection.person_id == person_id)
    return session.execute(stmt).scalar_one()


class TestRecordCollection:

    def test_record_adds_to_cycle(self, ledger_service, cycle_service, payer):
        result = ledger_service.record_collection(payer.id, 100)

        assert result.collection.amount == Decimal("100.00")
        assert result.collection.status == CollectionStatus.COLLECTED
        assert result.collection.date == TODAY
        assert result.delta == Decimal("100.00")
        assert result.cycle.total_amount == Decimal("100.00")
        assert _total(cycle_service, payer.id) == Decimal("100.00")

    def test_recollect_same_day_replaces(self, session, ledger_service, cycle_service, payer):
        ledger_service.record_collection(payer.id, 100)
        result = ledger_service.record_collection(payer.id, 150)

        assert result.delta == Decimal("50.00")
        assert _total(cycle_service, payer.id) == Decimal("150.00")
        assert _row_count(session, payer.id) == 1

    def test_recollect_lower_amount(self, ledger_service, cycle_service, payer):
        ledger_service.record_collection(payer.id, 200)
        ledger_service.record_collection(payer.id, 80)
        assert _total(cycle_service, payer.id) == Decimal("80.00")

    def test_different_days_accumulate(self, ledger_service, cycle_service, payer):
        ledger_service.record_collection(payer.id, 100, on_date=TODAY - timedelta(days=1))
        ledger_service.record_collection(payer.id, 100, on_date="2024-03-15")
        assert _total(cycle_service, payer.id) == Decimal("200.00")

    def test_zero_amount_is_logged(self, ledger_service, payer, captured_logs):
        result = ledger_service.record_collection(payer.id, 0)

        assert result.collection.amount == Decimal("0.00")
        record = next(r for r in captured_logs() if r["message"] == "zero_amount_collection")
        assert record["level"] == "WARNING"

    @pytest.mark.parametrize("amount", [-1, "abc", None])
    def test_rejects_invalid_amount(self, ledger_service, cycle_service, payer, amount):
        with pytest.raises(InvalidAmountError):
            ledger_service.record_collection(payer.id, amount)
        assert _total(cycle_service, payer.id) == Decimal("0")

    def test_rejects_invalid_date(self, ledger_service, payer):
        with pytest.raises(InvalidDateError):
            ledger_service.record_collection(payer.id, 100, on_date="15/03/2024")

    def test_unknown_person(self, ledger_service):
        with pytest.raises(PersonNotFoundError):
            ledger_service.record_collection(uuid4(), 100)

    def test_logs_collection_recorded(self, ledger_service, payer, captured_logs):
        ledger_service.record_collection(payer.id, 120)

        record = next(r for r in captured_logs() if r["message"] == "collection_recorded")
        assert record["person_id"] == str(payer.id)
        assert record["amount"] == "120.00"
        assert record["delta"] == "120.00"


class TestSkipCollection:

    def test_skip_on_empty_day(self, ledger_service, cycle_service, payer):
        result = ledger_service.skip_collection(payer.id, notes="shop closed")

        assert result.collection.status == CollectionStatus.SKIPPED
        assert result.collection.amount is None
        assert result.collection.notes == "shop closed"
        assert result.delta == Decimal("0")
        assert _total(cycle_service, payer.id) == Decimal("0")

    def test_skip_over_collected_takes_amount_back(self, session, ledger_service, cycle_service, payer):
        ledger_service.record_collection(payer.id, 100, on_date=TODAY - timedelta(days=1))
        ledger_service.record_collection(payer.id, 250)

        result = ledger_service.skip_collection(payer.id)

        assert result.delta == Decimal("-250.00")
        assert _total(cycle_service, payer.id) == Decimal("100.00")
        assert _row_count(session, payer.id) == 2

    def test_collect_after_skip_adds_full_amount(self, ledger_service, cycle_service, payer):
        ledger_service.skip_collection(payer.id)
        result = ledger_service.record_collection(payer.id, 90)

        assert result.delta == Decimal("90.00")
        assert _total(cycle_service, payer.id) == Decimal("90.00")


class TestUndoCollection:

    def test_undo_restores_total_and_removes_row(self, session, ledger_service, cycle_service, payer):
        ledger_service.record_collection(payer.id, 200)

        result = ledger_service.undo_collection(payer.id)

        assert result.collection is None
        assert result.delta == Decimal("-200.00")
        assert _total(cycle_service, payer.id) == Decimal("0")
        assert _row_count(session, payer.id) == 0

    def test_undo_skip_removes_row_only(self, session, ledger_service, cycle_service, payer):
        ledger_service.record_collection(payer.id, 60, on_date=TODAY - timedelta(days=1))
        ledger_service.skip_collection(payer.id)

        result = ledger_service.undo_collection(payer.id)

        assert result.delta == Decimal("0")
        assert _total(cycle_service, payer.id) == Decimal("60.00")
        assert _row_count(session, payer.id) == 1

    def test_undo_nothing_returns_none(self, ledger_service, payer):
        assert ledger_service.undo_collection(payer.id) is None

    def test_undo_after_manual_downward_correction(self, ledger_service, cycle_service, payer):
        ledger_service.record_collection(payer.id, 100)
        cycle = cycle_service.get_active_cycle(payer.id)
        cycle_service.update_cycle_data(cycle.id, total_amount=40)

        with pytest.raises(NegativeBalanceError):
            ledger_service.undo_collection(payer.id)


class TestFullWithdrawal:

    def test_closes_and_reopens(self, ledger_service, cycle_service, collection_selector, payer):
        ledger_service.record_collection(payer.id, 100, on_date=TODAY - timedelta(days=1))
        ledger_service.record_collection(payer.id, 150)

        result = ledger_service.process_withdrawal(payer.id, notes="Diwali")

        assert result.withdrawal.amount == Decimal("250.00")
        assert result.withdrawal.kind == WithdrawalKind.FULL
        assert result.withdrawal.notes == "Diwali"
        assert result.settled_cycle.is_active is False
        assert result.settled_cycle.end_date == TODAY
        assert result.settled_cycle.total_amount == Decimal("250.00")
        assert result.active_cycle.is_active is True
        assert result.active_cycle.total_amount == Decimal("0")
        assert result.active_cycle.start_date == TODAY
        assert cycle_service.count_active(payer.id) == 1

        history = collection_selector.get_collections_by_cycle(result.settled_cycle.id)
        assert [c.amount for c in history] == [Decimal("150.00"), Decimal("100.00")]

    def test_zero_balance_withdrawal_is_allowed(self, ledger_service, payer, captured_logs):
        result = ledger_service.process_withdrawal(payer.id)

        assert result.withdrawal.amount == Decimal("0")
        assert any(r["message"] == "zero_balance_withdrawal" for r in captured_logs())

    def test_requires_active_cycle(self, ledger_service, cycle_service, payer):
        cycle_service.close_model(cycle_service.require_active_model(payer.id))
        with pytest.raises(NoActiveCycleError):
            ledger_service.process_withdrawal(payer.id)

    def test_closed_cycle_day_cannot_change(self, ledger_service, cycle_service, payer):
        ledger_service.record_collection(payer.id, 100)
        settled = ledger_service.process_withdrawal(payer.id).settled_cycle

        for attempt in (
            lambda: ledger_service.record_collection(payer.id, 500),
            lambda: ledger_service.skip_collection(payer.id),
            lambda: ledger_service.undo_collection(payer.id),
        ):
            with pytest.raises(ClosedCycleError) as exc_info:
                attempt()
            assert exc_info.value.cycle_id == str(settled.id)

        assert _total(cycle_service, payer.id) == Decimal("0")

    def test_next_day_collection_lands_in_new_cycle(
        self, ledger_service, cycle_service, deterministic_clock, payer
    ):
        ledger_service.record_collection(payer.id, 100)
        result = ledger_service.process_withdrawal(payer.id)

        deterministic_clock.advance_days(1)
        collected = ledger_service.record_collection(payer.id, 30)

        assert collected.collection.cycle_id == result.active_cycle.id
        assert _total(cycle_service, payer.id) == Decimal("30.00")


class TestPartialWithdrawal:

    def test_reduces_total_and_stays_open(self, ledger_service, cycle_service, payer):
        ledger_service.record_collection(payer.id, 300)

        result = ledger_service.process_partial_withdrawal(payer.id, 120)

        assert result.withdrawal.kind == WithdrawalKind.PARTIAL
        assert result.withdrawal.notes == "Partial withdrawal"
        assert result.active_cycle.is_active is True
        assert result.active_cycle.total_amount == Decimal("180.00")
        assert result.settled_cycle.id == result.active_cycle.id

    def test_later_collections_add_to_same_cycle(self, ledger_service, cycle_service, deterministic_clock, payer):
        ledger_service.record_collection(payer.id, 300)
        cycle_id = ledger_service.process_partial_withdrawal(payer.id, 300).active_cycle.id

        deterministic_clock.advance_days(1)
        result = ledger_service.record_collection(payer.id, 50)

        assert result.cycle.id == cycle_id
        assert result.cycle.total_amount == Decimal("50.00")

    def test_withdraw_entire_balance(self, ledger_service, payer):
        ledger_service.record_collection(payer.id, 75)
        result = ledger_service.process_partial_withdrawal(payer.id, "75")
        assert result.active_cycle.total_amount == Decimal("0")

    def test_over_withdrawal_rejected(self, ledger_service, cycle_service, payer):
        ledger_service.record_collection(payer.id, 100)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            ledger_service.process_partial_withdrawal(payer.id, 100.01)

        assert exc_info.value.requested == Decimal("100.01")
        assert exc_info.value.available == Decimal("100.00")
        assert _total(cycle_service, payer.id) == Decimal("100.00")

    @pytest.mark.parametrize("amount", [0, -10])
    def test_non_positive_rejected(self, ledger_service, payer, amount):
        with pytest.raises(InvalidAmountError):
            ledger_service.process_partial_withdrawal(payer.id, amount)
