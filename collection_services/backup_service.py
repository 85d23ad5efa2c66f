"""
collection_services.backup_service -- JSON export and destructive restore.

Responsibility:
    Serialize the whole ledger (people, cycles, collections, withdrawals) to
    a portable JSON document and replace the ledger from such a document.

Architecture position:
    Services -- sits beside ``CollectionLedger`` and shares its ``Database``.
    Reads through kernel selectors; the restore writes ORM rows directly
    because it replaces the ledger rather than operating on it.

Invariants enforced:
    - The payload is validated in full before anything is deleted.
    - Delete and re-insert happen in ONE transaction: a failed restore
      leaves the previous data untouched.
    - Every restored person has exactly one active cycle.
    - Identifiers are regenerated; cycle references inside the payload are
      re-threaded to the new cycle ids.

Failure modes:
    - ImportFormatError (with a JSON path such as
      ``people[2].collections[5].date``) for any structural problem.
    - StorageFailureError if the database rejects the replacement.

Backup format::

    {
      "exportDate": "2024-03-01T10:15:00+00:00",
      "appVersion": "1.0.0",
      "people": [
        {
          "id": "...", "name": "Asha", "phone": null, "location": null,
          "photoPath": null, "defaultAmount": "100.00", "frequency": "daily",
          "notes": null, "isActive": true, "createdAt": "...", "updatedAt": "...",
          "activeCycle": {...} | null,
          "cycles": [{"id", "startDate", "endDate", "totalAmount",
                      "isActive", "withdrawalDate", "notes"}],
          "withdrawals": [{"id", "cycleId", "amount", "date", "kind", "notes",
                           "tillDate", "createdAt"}],
          "collections": [{"id", "cycleId", "date", "amount", "status", "notes",
                           "createdAt"}]
        }
      ]
    }

Older backups carry no ``cycles`` list; each person then gets one active
cycle built from ``activeCycle`` that holds all of their history.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from collection_kernel.db.engine import Database
from collection_kernel.db.types import ZERO
from collection_kernel.domain.amounts import require_non_negative, require_positive
from collection_kernel.domain.clock import Clock, SystemClock
from collection_kernel.domain.dates import parse_iso_date
from collection_kernel.domain.dtos import CollectionInfo, CycleInfo, PersonInfo, WithdrawalInfo
from collection_kernel.exceptions import ImportFormatError, InvalidInputError
from collection_kernel.logging_config import LogContext, get_logger
from collection_kernel.models.collection import Collection, CollectionStatus
from collection_kernel.models.cycle import Cycle
from collection_kernel.models.person import Person, PersonFrequency
from collection_kernel.models.withdrawal import Withdrawal, WithdrawalKind
from collection_kernel.selectors.collection_selector import CollectionSelector
from collection_kernel.services.cycle_service import CycleService
from collection_kernel.services.person_service import PersonService
from collection_kernel.services.settings_service import LAST_BACKUP_DATE, SettingsService

logger = get_logger("services.backup")

BACKUP_FILE_TEMPLATE = "Collection_Backup_{day}.json"
SAFETY_FILE_TEMPLATE = "Collection_SafetyBackup_{stamp}.json"


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _money(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def _cycle_dict(cycle: CycleInfo) -> dict[str, Any]:
    return {
        "id": str(cycle.id),
        "startDate": _iso(cycle.start_date),
        "endDate": _iso(cycle.end_date),
        "totalAmount": _money(cycle.total_amount),
        "isActive": cycle.is_active,
        "withdrawalDate": _iso(cycle.withdrawal_date),
        "notes": cycle.notes,
    }


def _collection_dict(collection: CollectionInfo) -> dict[str, Any]:
    return {
        "id": str(collection.id),
        "cycleId": str(collection.cycle_id),
        "date": _iso(collection.date),
        "amount": _money(collection.amount),
        "status": collection.status.value,
        "notes": collection.notes,
        "createdAt": _iso(collection.created_at),
    }


def _withdrawal_dict(withdrawal: WithdrawalInfo) -> dict[str, Any]:
    return {
        "id": str(withdrawal.id),
        "cycleId": str(withdrawal.cycle_id),
        "amount": _money(withdrawal.amount),
        "date": _iso(withdrawal.date),
        "kind": withdrawal.kind.value,
        "notes": withdrawal.notes,
        "tillDate": _iso(withdrawal.till_date),
        "createdAt": _iso(withdrawal.created_at),
    }


def _stamps(**values: datetime | None) -> dict[str, datetime]:
    """Exported timestamps to carry over; missing ones fall back to column defaults."""
    return {key: value for key, value in values.items() if value is not None}


def _person_dict(person: PersonInfo) -> dict[str, Any]:
    return {
        "id": str(person.id),
        "name": person.name,
        "phone": person.phone,
        "location": person.location,
        "photoPath": person.photo_path,
        "defaultAmount": _money(person.default_amount),
        "frequency": person.frequency.value,
        "notes": person.notes,
        "isActive": person.is_active,
        "createdAt": _iso(person.created_at),
        "updatedAt": _iso(person.updated_at),
    }


# ---------------------------------------------------------------------------
# Validated restore plan
# ---------------------------------------------------------------------------


@dataclass
class _CyclePlan:
    start_date: date
    end_date: date | None
    total_amount: Decimal
    is_active: bool
    withdrawal_date: datetime | None
    notes: str | None


@dataclass
class _CollectionPlan:
    cycle_key: str
    date: date
    amount: Decimal | None
    status: CollectionStatus
    notes: str | None
    created_at: datetime | None = None


@dataclass
class _WithdrawalPlan:
    cycle_key: str
    amount: Decimal
    date: date
    kind: WithdrawalKind
    notes: str | None
    till_date: date | None = None
    created_at: datetime | None = None


@dataclass
class _PersonPlan:
    name: str
    phone: str | None
    location: str | None
    photo_path: str | None
    default_amount: Decimal
    frequency: PersonFrequency
    notes: str | None
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None
    legacy: bool = False
    cycles: dict[str, _CyclePlan] = field(default_factory=dict)
    collections: list[_CollectionPlan] = field(default_factory=list)
    withdrawals: list[_WithdrawalPlan] = field(default_factory=list)


@dataclass(frozen=True)
class RestoreResult:
    """Counts of what a restore wrote."""

    people: int
    cycles: int
    collections: int
    withdrawals: int
    safety_backup: Path | None = None


_ACTIVE_KEY = "__active__"


class _PayloadReader:
    """Validates a backup payload into restore plans, reporting JSON paths."""

    def __init__(self, today: date):
        self.today = today

    # -- primitives ---------------------------------------------------------

    @staticmethod
    def _text(record: dict, key: str, path: str) -> str | None:
        value = record.get(key)
        if value is None:
            return None
        if not isinstance(value, str):
            raise ImportFormatError(f"{path}.{key}", "expected a string")
        return value.strip() or None

    @staticmethod
    def _bool(record: dict, key: str, path: str, default: bool) -> bool:
        value = record.get(key, default)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        raise ImportFormatError(f"{path}.{key}", "expected a boolean")

    @staticmethod
    def _date(record: dict, key: str, path: str, default: date | None = None) -> date | None:
        value = record.get(key)
        if value is None:
            return default
        try:
            return parse_iso_date(value, field=key)
        except InvalidInputError as exc:
            raise ImportFormatError(f"{path}.{key}", exc.reason) from exc

    @staticmethod
    def _timestamp(record: dict, key: str, path: str) -> datetime | None:
        value = record.get(key)
        if value is None:
            return None
        if not isinstance(value, str):
            raise ImportFormatError(f"{path}.{key}", "expected an ISO timestamp")
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ImportFormatError(f"{path}.{key}", "expected an ISO timestamp") from exc

    @staticmethod
    def _amount(record: dict, key: str, path: str, positive: bool = False,
                default: Decimal | None = None) -> Decimal:
        value = record.get(key)
        if value is None:
            if default is not None:
                return default
            raise ImportFormatError(f"{path}.{key}", "missing amount")
        try:
            if positive:
                return require_positive(value, field=key)
            return require_non_negative(value, field=key)
        except InvalidInputError as exc:
            raise ImportFormatError(f"{path}.{key}", exc.reason) from exc

    @staticmethod
    def _list(record: dict, key: str, path: str) -> list:
        value = record.get(key)
        if value is None:
            return []
        if not isinstance(value, list):
            raise ImportFormatError(f"{path}.{key}", "expected a list")
        return value

    @staticmethod
    def _record(value: Any, path: str) -> dict:
        if not isinstance(value, dict):
            raise ImportFormatError(path, "expected an object")
        return value

    # -- structure ----------------------------------------------------------

    def read(self, payload: Any) -> list[_PersonPlan]:
        payload = self._record(payload, "$")
        people = payload.get("people")
        if not isinstance(people, list):
            raise ImportFormatError("$.people", "expected a list of people")
        return [self._person(p, f"people[{i}]") for i, p in enumerate(people)]

    def _person(self, raw: Any, path: str) -> _PersonPlan:
        record = self._record(raw, path)
        name = self._text(record, "name", path)
        if not name:
            raise ImportFormatError(f"{path}.name", "must not be empty")
        frequency = record.get("frequency") or PersonFrequency.DAILY.value
        try:
            frequency = PersonFrequency(frequency)
        except ValueError as exc:
            raise ImportFormatError(f"{path}.frequency", f"unknown frequency {frequency!r}") from exc

        plan = _PersonPlan(
            name=name,
            phone=self._text(record, "phone", path),
            location=self._text(record, "location", path),
            photo_path=self._text(record, "photoPath", path),
            default_amount=self._amount(record, "defaultAmount", path, positive=True),
            frequency=frequency,
            notes=self._text(record, "notes", path),
            is_active=self._bool(record, "isActive", path, default=True),
            created_at=self._timestamp(record, "createdAt", path),
            updated_at=self._timestamp(record, "updatedAt", path),
        )

        if "cycles" in record and record["cycles"] is not None:
            self._cycles(plan, record, path)
        else:
            self._legacy_cycle(plan, record, path)

        active_keys = [k for k, c in plan.cycles.items() if c.is_active]
        if len(active_keys) > 1:
            raise ImportFormatError(f"{path}.cycles", "more than one active cycle")
        if not active_keys:
            plan.cycles[_ACTIVE_KEY] = _CyclePlan(
                start_date=self.today, end_date=None, total_amount=ZERO,
                is_active=True, withdrawal_date=None, notes=None,
            )
            active_keys = [_ACTIVE_KEY]
        active_key = active_keys[0]

        seen_dates: set[date] = set()
        for i, raw_col in enumerate(self._list(record, "collections", path)):
            col_path = f"{path}.collections[{i}]"
            collection = self._collection(raw_col, col_path, plan, active_key)
            if collection.date in seen_dates:
                raise ImportFormatError(f"{col_path}.date", "duplicate date for person")
            seen_dates.add(collection.date)
            plan.collections.append(collection)

        for i, raw_wd in enumerate(self._list(record, "withdrawals", path)):
            plan.withdrawals.append(
                self._withdrawal(raw_wd, f"{path}.withdrawals[{i}]", plan, active_key)
            )
        return plan

    def _cycles(self, plan: _PersonPlan, record: dict, path: str) -> None:
        for i, raw in enumerate(self._list(record, "cycles", path)):
            cycle_path = f"{path}.cycles[{i}]"
            cycle = self._record(raw, cycle_path)
            key = str(cycle["id"]) if cycle.get("id") is not None else f"#{i}"
            if key in plan.cycles:
                raise ImportFormatError(f"{cycle_path}.id", "duplicate cycle id")
            start = self._date(cycle, "startDate", cycle_path)
            if start is None:
                raise ImportFormatError(f"{cycle_path}.startDate", "missing start date")
            plan.cycles[key] = _CyclePlan(
                start_date=start,
                end_date=self._date(cycle, "endDate", cycle_path),
                total_amount=self._amount(cycle, "totalAmount", cycle_path, default=ZERO),
                is_active=self._bool(cycle, "isActive", cycle_path, default=False),
                withdrawal_date=self._timestamp(cycle, "withdrawalDate", cycle_path),
                notes=self._text(cycle, "notes", cycle_path),
            )

    def _legacy_cycle(self, plan: _PersonPlan, record: dict, path: str) -> None:
        active = record.get("activeCycle") or {}
        cycle_path = f"{path}.activeCycle"
        active = self._record(active, cycle_path)
        plan.legacy = True
        plan.cycles[_ACTIVE_KEY] = _CyclePlan(
            start_date=self._date(active, "startDate", cycle_path, default=self.today),
            end_date=None,
            total_amount=self._amount(active, "totalAmount", cycle_path, default=ZERO),
            is_active=True,
            withdrawal_date=None,
            notes=self._text(active, "notes", cycle_path),
        )

    def _cycle_key(self, record: dict, path: str, plan: _PersonPlan, active_key: str) -> str:
        ref = record.get("cycleId")
        if ref is None or plan.legacy:
            return active_key
        key = str(ref)
        if key not in plan.cycles:
            raise ImportFormatError(f"{path}.cycleId", f"unknown cycle {key!r}")
        return key

    def _collection(self, raw: Any, path: str, plan: _PersonPlan, active_key: str) -> _CollectionPlan:
        record = self._record(raw, path)
        day = self._date(record, "date", path)
        if day is None:
            raise ImportFormatError(f"{path}.date", "missing date")
        status = record.get("status") or CollectionStatus.COLLECTED.value
        if status not in (CollectionStatus.COLLECTED.value, CollectionStatus.SKIPPED.value):
            raise ImportFormatError(f"{path}.status", f"unknown status {status!r}")
        status = CollectionStatus(status)
        amount = None
        if status is CollectionStatus.COLLECTED:
            amount = self._amount(record, "amount", path, default=ZERO)
        return _CollectionPlan(
            cycle_key=self._cycle_key(record, path, plan, active_key),
            date=day,
            amount=amount,
            status=status,
            notes=self._text(record, "notes", path),
            created_at=self._timestamp(record, "createdAt", path),
        )

    def _withdrawal(self, raw: Any, path: str, plan: _PersonPlan, active_key: str) -> _WithdrawalPlan:
        record = self._record(raw, path)
        kind = record.get("kind") or WithdrawalKind.FULL.value
        try:
            kind = WithdrawalKind(kind)
        except ValueError as exc:
            raise ImportFormatError(f"{path}.kind", f"unknown kind {kind!r}") from exc
        return _WithdrawalPlan(
            cycle_key=self._cycle_key(record, path, plan, active_key),
            amount=self._amount(record, "amount", path, default=ZERO),
            date=self._date(record, "date", path, default=self.today),
            kind=kind,
            notes=self._text(record, "notes", path),
            till_date=self._date(record, "tillDate", path),
            created_at=self._timestamp(record, "createdAt", path),
        )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class BackupService:
    """
    Export, write and restore JSON backups.

    Contract:
        Receives the same ``Database`` and ``Clock`` as the ledger facade.
        Each public method runs in its own transaction.
    """

    def __init__(self, database: Database, clock: Clock | None = None, app_version: str = "1.0.0"):
        self.database = database
        self.clock = clock or SystemClock()
        self.app_version = app_version

    # -- export -------------------------------------------------------------

    def _export(self, session: Session) -> dict[str, Any]:
        people = PersonService(session, self.clock).list_people(active_only=False)
        history = CollectionSelector(session)
        cycles = CycleService(session, self.clock)

        exported = []
        for person in people:
            active = cycles.get_active_cycle(person.id)
            entry = _person_dict(person)
            entry["activeCycle"] = _cycle_dict(active) if active else None
            entry["cycles"] = [_cycle_dict(c) for c in history.get_cycles_by_person(person.id)]
            entry["withdrawals"] = [
                _withdrawal_dict(w) for w in history.get_withdrawals_by_person(person.id)
            ]
            entry["collections"] = [
                _collection_dict(c) for c in history.get_all_collections_for_person(person.id)
            ]
            exported.append(entry)

        return {
            "exportDate": self.clock.now().isoformat(),
            "appVersion": self.app_version,
            "people": exported,
        }

    def export_backup(self) -> dict[str, Any]:
        """Return the whole ledger as a JSON-ready dict (inactive people included)."""
        with LogContext.bind(correlation_id=str(uuid4()), operation="export_backup"):
            with self.database.session_scope() as session:
                payload = self._export(session)
            logger.info("backup_exported", extra={"people_count": len(payload["people"])})
            return payload

    @staticmethod
    def _dump(payload: dict[str, Any], path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        return path

    def write_backup(self, directory: Path) -> Path:
        """
        Write ``Collection_Backup_YYYY-MM-DD.json`` into ``directory`` and
        record ``last_backup_date``.
        """
        today = self.clock.today()
        path = self._dump(
            self.export_backup(),
            Path(directory) / BACKUP_FILE_TEMPLATE.format(day=today.isoformat()),
        )
        with self.database.session_scope() as session:
            SettingsService(session, self.clock).set_setting(LAST_BACKUP_DATE, today.isoformat())
        logger.info("backup_written", extra={"path": str(path)})
        return path

    # -- restore ------------------------------------------------------------

    @staticmethod
    def read_backup_file(path: Path) -> Any:
        """
        Load a backup file.

        Raises:
            FileNotFoundError: file does not exist.
            ImportFormatError: file is not valid JSON.
        """
        with open(path, encoding="utf-8") as f:
            try:
                return json.load(f)
            except json.JSONDecodeError as exc:
                raise ImportFormatError("$", f"not valid JSON: {exc.msg}") from exc

    def validate_backup(self, payload: Any) -> int:
        """Validate without writing; returns the number of people."""
        return len(_PayloadReader(self.clock.today()).read(payload))

    def restore_backup(self, payload: Any, safety_directory: Path | None = None) -> RestoreResult:
        """
        Replace every person, cycle, collection and withdrawal with the
        contents of ``payload``.

        Args:
            payload: Parsed backup document.
            safety_directory: When given, the current ledger is written there
                as JSON before anything is deleted.

        Raises:
            ImportFormatError: payload is malformed; nothing was changed.
        """
        with LogContext.bind(correlation_id=str(uuid4()), operation="restore_backup"):
            plans = _PayloadReader(self.clock.today()).read(payload)

            safety_path = None
            if safety_directory is not None:
                stamp = self.clock.now().strftime("%Y%m%dT%H%M%S")
                safety_path = self._dump(
                    self.export_backup(),
                    Path(safety_directory) / SAFETY_FILE_TEMPLATE.format(stamp=stamp),
                )
                logger.info("safety_backup_written", extra={"path": str(safety_path)})

            with self.database.session_scope() as session:
                result = self._replace(session, plans)

            logger.info(
                "restore_completed",
                extra={
                    "people_count": result.people,
                    "cycle_count": result.cycles,
                    "collection_count": result.collections,
                    "withdrawal_count": result.withdrawals,
                },
            )
            return RestoreResult(
                people=result.people,
                cycles=result.cycles,
                collections=result.collections,
                withdrawals=result.withdrawals,
                safety_backup=safety_path,
            )

    def _replace(self, session: Session, plans: list[_PersonPlan]) -> RestoreResult:
        # Bulk statements bypass the withdrawal immutability listeners.
        for model in (Collection, Withdrawal, Cycle, Person):
            session.execute(delete(model))

        counts = {"cycles": 0, "collections": 0, "withdrawals": 0}
        for plan in plans:
            person = Person(
                id=uuid4(),
                name=plan.name,
                phone=plan.phone,
                location=plan.location,
                photo_path=plan.photo_path,
                default_amount=plan.default_amount,
                frequency=plan.frequency,
                notes=plan.notes,
                is_active=plan.is_active,
                **_stamps(created_at=plan.created_at, updated_at=plan.updated_at),
            )
            session.add(person)

            cycle_ids = {}
            for key, cycle_plan in plan.cycles.items():
                cycle = Cycle(
                    id=uuid4(),
                    person_id=person.id,
                    start_date=cycle_plan.start_date,
                    end_date=cycle_plan.end_date,
                    total_amount=cycle_plan.total_amount,
                    is_active=cycle_plan.is_active,
                    withdrawal_date=cycle_plan.withdrawal_date,
                    notes=cycle_plan.notes,
                )
                session.add(cycle)
                cycle_ids[key] = cycle.id
            counts["cycles"] += len(cycle_ids)

            for col in plan.collections:
                session.add(
                    Collection(
                        person_id=person.id,
                        cycle_id=cycle_ids[col.cycle_key],
                        date=col.date,
                        amount=col.amount,
                        status=col.status,
                        notes=col.notes,
                        **_stamps(created_at=col.created_at),
                    )
                )
            counts["collections"] += len(plan.collections)

            for wd in plan.withdrawals:
                session.add(
                    Withdrawal(
                        person_id=person.id,
                        cycle_id=cycle_ids[wd.cycle_key],
                        amount=wd.amount,
                        date=wd.date,
                        kind=wd.kind,
                        notes=wd.notes,
                        till_date=wd.till_date,
                        **_stamps(created_at=wd.created_at),
                    )
                )
            counts["withdrawals"] += len(plan.withdrawals)

        session.flush()
        restored = session.execute(select(Person.id)).scalars().all()
        return RestoreResult(people=len(restored), **counts)
