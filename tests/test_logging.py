"""
Tests for structured ledger logging (collection_kernel/logging_config.py).

The ledger is audited from its log stream alone, so these tests read the
JSON lines produced by real ledger operations.
"""

import json
import logging
from io import StringIO

import pytest

from collection_kernel.exceptions import InsufficientBalanceError
from collection_kernel.logging_config import (
    LogContext,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture
def log_stream():
    """Route collection_kernel logs into a fresh stream for one test."""
    reset_logging()
    stream = StringIO()
    configure_logging(level=logging.DEBUG, stream=stream)

    def _records() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    yield _records
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())


def _event(records: list[dict], message: str) -> dict:
    return next(r for r in records if r["message"] == message)


class TestLedgerEvents:

    def test_collection_recorded_carries_amounts(self, ledger, person, log_stream):
        ledger.record_collection(person.id, 150)
        ledger.record_collection(person.id, 120)

        events = [r for r in log_stream() if r["message"] == "collection_recorded"]
        assert [(e["amount"], e["delta"], e["cycle_total"]) for e in events] == [
            ("150.00", "150.00", "150.00"),
            ("120.00", "-30.00", "120.00"),
        ]
        assert events[0]["logger"] == "collection_kernel.services.ledger"
        assert events[0]["level"] == "INFO"
        assert events[0]["date"] == "2024-03-15"

    def test_operation_context_stamped_on_every_line(self, ledger, person, log_stream):
        ledger.record_collection(person.id, 100)

        lines = [r for r in log_stream() if r.get("operation") == "record_collection"]
        assert lines
        assert {r["person_id"] for r in lines} == {str(person.id)}
        assert len({r["correlation_id"] for r in lines}) == 1

    def test_each_operation_gets_new_correlation_id(self, ledger, person, log_stream):
        ledger.record_collection(person.id, 100)
        ledger.process_withdrawal(person.id)

        recorded = _event(log_stream(), "collection_recorded")
        withdrawn = _event(log_stream(), "withdrawal_processed")
        assert recorded["correlation_id"] != withdrawn["correlation_id"]
        assert withdrawn["operation"] == "process_withdrawal"
        assert withdrawn["amount"] == "100.00"

    def test_context_field_wins_over_extra(self, ledger, person, log_stream):
        result = ledger.record_collection(person.id, 100)
        cycle_id = result.cycle.id

        with LogContext.bind(cycle_id="bound"):
            get_logger("services.ledger").info("clash", extra={"cycle_id": str(cycle_id)})

        assert _event(log_stream(), "clash")["cycle_id"] == "bound"

    def test_rejected_withdrawal_logs_warning(self, ledger, person, log_stream):
        ledger.record_collection(person.id, 100)

        with pytest.raises(InsufficientBalanceError):
            ledger.process_partial_withdrawal(person.id, 500)

        rejected = _event(log_stream(), "partial_withdrawal_rejected")
        assert rejected["level"] == "WARNING"
        assert rejected["requested"] == "500.00"
        assert rejected["available"] == "100.00"

    def test_kernel_error_fields_exported(self, log_stream):
        try:
            raise InsufficientBalanceError("cycle-9", 500, 100)
        except InsufficientBalanceError:
            get_logger("services.ledger").error("withdrawal_failed", exc_info=True)

        record = _event(log_stream(), "withdrawal_failed")
        assert record["exc_type"] == "InsufficientBalanceError"
        assert record["exc_code"] == "INSUFFICIENT_BALANCE"
        assert record["exc_cycle_id"] == "cycle-9"
        assert "traceback" in record

    def test_debug_noop_hidden_at_info(self, ledger, person, log_stream):
        configure_logging(level=logging.INFO)
        ledger.undo_collection(person.id)

        assert not any(r["message"] == "collection_undo_noop" for r in log_stream())


class TestLogContext:

    def test_bind_nests_and_restores(self):
        with LogContext.bind(correlation_id="outer", operation="restore_backup"):
            with LogContext.bind(correlation_id="inner", person_id=None):
                assert LogContext.get_all() == {
                    "correlation_id": "inner",
                    "operation": "restore_backup",
                }
            assert LogContext.get_all()["correlation_id"] == "outer"
        assert LogContext.get_all() == {}

    def test_bind_rejects_unknown_field(self):
        with pytest.raises(TypeError, match="amount"):
            with LogContext.bind(amount="5"):
                pass


class TestConfigureLogging:

    def test_repeat_call_keeps_one_handler(self, log_stream):
        configure_logging(level=logging.WARNING)
        root = logging.getLogger("collection_kernel")

        assert len(root.handlers) == 1
        assert root.level == logging.WARNING
        assert root.propagate is False
