"""
Pytest fixtures for the collection ledger test suite.

Provides:
- A fresh in-memory SQLite database per test (no shared state)
- A deterministic clock pinned to 2024-03-15 12:00 UTC
- Kernel services bound to one open session
- The CollectionLedger facade and BackupService over the same database
- Structured log capture
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO

import pytest

from collection_kernel.db.engine import Database
from collection_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from collection_kernel.domain.clock import DeterministicClock
from collection_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from collection_kernel.selectors import (
    CollectionSelector,
    DashboardSelector,
    ReconciliationSelector,
    ReportSelector,
)
from collection_kernel.services import (
    CycleService,
    LedgerService,
    PersonService,
    SettingsService,
)
from collection_services import BackupService, CollectionLedger

TEST_TODAY = date(2024, 3, 15)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture collection_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger, person):
            ledger.record_collection(person.id, 100)
            logs = captured_logs()
            assert any(r["message"] == "collection_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("collection_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def database():
    """A fresh in-memory database with all tables created."""
    db = Database("sqlite://")
    db.create_tables()
    register_immutability_listeners()
    yield db
    db.dispose()


@pytest.fixture
def session(database):
    """
    An open session for kernel-level tests.

    Services only flush, so the test sees its own writes; the session is
    rolled back at teardown.
    """
    s = database.get_session()
    yield s
    s.rollback()
    s.close()


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def no_immutability():
    """Temporarily remove withdrawal immutability listeners."""
    unregister_immutability_listeners()
    yield
    register_immutability_listeners()


# =============================================================================
# Kernel services and selectors
# =============================================================================


@pytest.fixture
def person_service(session, deterministic_clock):
    return PersonService(session, deterministic_clock)


@pytest.fixture
def cycle_service(session, deterministic_clock):
    return CycleService(session, deterministic_clock)


@pytest.fixture
def ledger_service(session, deterministic_clock):
    return LedgerService(session, deterministic_clock)


@pytest.fixture
def settings_service(session, deterministic_clock):
    return SettingsService(session, deterministic_clock)


@pytest.fixture
def collection_selector(session):
    return CollectionSelector(session)


@pytest.fixture
def dashboard_selector(session):
    return DashboardSelector(session)


@pytest.fixture
def report_selector(session):
    return ReportSelector(session)


@pytest.fixture
def reconciliation_selector(session):
    return ReconciliationSelector(session)


@pytest.fixture
def payer(person_service):
    """A registered person (default amount 100) with an open cycle."""
    return person_service.add_person("Asha", Decimal("100"))


# =============================================================================
# Facade fixtures
# =============================================================================


@pytest.fixture
def ledger(database, deterministic_clock):
    return CollectionLedger(database, deterministic_clock)


@pytest.fixture
def backup_service(database, deterministic_clock):
    return BackupService(database, deterministic_clock, app_version="1.0.0")


@pytest.fixture
def person(ledger):
    """A person registered through the facade (committed)."""
    return ledger.add_person("Ravi", Decimal("200"), phone="9876543210")
