"""
Tests for BackupService: JSON export, destructive restore and the older
single-cycle backup format.
"""

import json
from datetime import date
from decimal import Decimal

import pytest

from collection_kernel.exceptions import ImportFormatError
from collection_kernel.models.collection import CollectionStatus
from collection_kernel.models.withdrawal import WithdrawalKind
from collection_kernel.services import LAST_BACKUP_DATE


@pytest.fixture
def populated(ledger, person):
    """Ravi with one settled cycle (partial + full withdrawal) and an open one."""
    ledger.record_collection(person.id, 200, on_date=date(2024, 3, 14))
    ledger.process_partial_withdrawal(person.id, 50)
    ledger.process_withdrawal(person.id, notes="settled")
    ledger.record_collection(person.id, 80)
    return person


def _legacy_payload() -> dict:
    return {
        "exportDate": "2023-12-01T09:00:00Z",
        "people": [
            {
                "name": "Old Timer",
                "defaultAmount": 50,
                "activeCycle": {"startDate": "2023-11-01", "totalAmount": "120"},
                "collections": [
                    {"date": "2023-11-01", "amount": 60, "status": "collected"},
                    {"date": "2023-11-02", "amount": 60, "cycleId": "ignored"},
                    {"date": "2023-11-03", "status": "skipped"},
                ],
            }
        ],
    }


class TestExport:

    def test_export_shape(self, backup_service, populated):
        payload = backup_service.export_backup()

        assert payload["appVersion"] == "1.0.0"
        assert payload["exportDate"] == "2024-03-15T12:00:00+00:00"
        [entry] = payload["people"]
        assert entry["name"] == "Ravi"
        assert entry["defaultAmount"] == "200.00"
        assert entry["activeCycle"]["totalAmount"] == "80.00"
        assert len(entry["cycles"]) == 2
        assert {w["kind"] for w in entry["withdrawals"]} == {"full", "partial"}
        assert [c["date"] for c in entry["collections"]] == ["2024-03-15", "2024-03-14"]

        cycle_ids = {c["id"] for c in entry["cycles"]}
        assert all(c["cycleId"] in cycle_ids for c in entry["collections"])
        json.dumps(payload)

    def test_export_includes_inactive_people(self, ledger, backup_service, person):
        ledger.deactivate_person(person.id)

        [entry] = backup_service.export_backup()["people"]
        assert entry["isActive"] is False

    def test_write_backup_records_date(self, ledger, backup_service, populated, tmp_path):
        path = backup_service.write_backup(tmp_path)

        assert path.name == "Collection_Backup_2024-03-15.json"
        assert json.loads(path.read_text())["people"][0]["name"] == "Ravi"
        assert ledger.get_setting(LAST_BACKUP_DATE) == "2024-03-15"


class TestRestore:

    def test_round_trip(self, ledger, backup_service, populated):
        payload = backup_service.export_backup()

        result = backup_service.restore_backup(payload)

        assert (result.people, result.cycles, result.collections, result.withdrawals) == (1, 2, 2, 2)
        [restored] = ledger.list_people()
        assert restored.id != populated.id
        assert restored.name == "Ravi"
        assert restored.phone == "9876543210"
        assert ledger.get_active_cycle(restored.id).total_amount == Decimal("80.00")

        cycles = ledger.get_cycles_by_person(restored.id)
        settled = next(c for c in cycles if not c.is_active)
        assert [c.amount for c in ledger.get_collections_by_cycle(settled.id)] == [Decimal("200.00")]
        assert len(ledger.get_withdrawals_by_person(restored.id)) == 2
        assert ledger.verify_all() == []

    def test_restore_into_existing_data_replaces_it(self, ledger, backup_service, populated):
        payload = backup_service.export_backup()
        ledger.add_person("Someone Else", 10)

        backup_service.restore_backup(payload)

        assert [p.name for p in ledger.list_people(active_only=False)] == ["Ravi"]

    def test_legacy_format_builds_single_active_cycle(self, ledger, backup_service):
        result = backup_service.restore_backup(_legacy_payload())

        assert result.cycles == 1
        [person] = ledger.list_people()
        cycle = ledger.get_active_cycle(person.id)
        assert cycle.start_date == date(2023, 11, 1)
        assert cycle.total_amount == Decimal("120.00")

        rows = ledger.get_collections_by_cycle(cycle.id)
        assert len(rows) == 3
        assert rows[0].status == CollectionStatus.SKIPPED
        assert rows[0].amount is None

    def test_missing_active_cycle_gets_one(self, ledger, backup_service):
        payload = {
            "people": [
                {
                    "name": "Closed Only",
                    "defaultAmount": "10",
                    "cycles": [
                        {"id": "c1", "startDate": "2024-01-01", "endDate": "2024-01-31",
                         "totalAmount": "300", "isActive": False},
                    ],
                    "withdrawals": [{"cycleId": "c1", "amount": "300", "date": "2024-01-31"}],
                }
            ]
        }

        backup_service.restore_backup(payload)

        [person] = ledger.list_people()
        active = ledger.get_active_cycle(person.id)
        assert active.start_date == date(2024, 3, 15)
        assert active.total_amount == Decimal("0")
        [withdrawal] = ledger.get_withdrawals_by_person(person.id)
        assert withdrawal.kind == WithdrawalKind.FULL
        assert withdrawal.cycle_id != active.id

    def test_keeps_exported_timestamps_and_till_date(self, backup_service):
        payload = {
            "people": [
                {
                    "name": "Meena",
                    "defaultAmount": "50",
                    "createdAt": "2023-01-05T08:30:00",
                    "updatedAt": "2023-06-01T10:00:00",
                    "cycles": [{"id": "c1", "startDate": "2024-03-01", "totalAmount": "50",
                                "isActive": True}],
                    "collections": [{"cycleId": "c1", "date": "2024-03-01", "amount": "100",
                                     "createdAt": "2024-03-01T18:45:00"}],
                    "withdrawals": [{"cycleId": "c1", "amount": "50", "date": "2024-03-02",
                                     "kind": "partial", "tillDate": "2024-03-01",
                                     "createdAt": "2024-03-02T09:15:00"}],
                }
            ]
        }

        backup_service.restore_backup(payload)

        [entry] = backup_service.export_backup()["people"]
        assert entry["createdAt"].startswith("2023-01-05T08:30:00")
        assert entry["updatedAt"].startswith("2023-06-01T10:00:00")
        assert entry["collections"][0]["createdAt"].startswith("2024-03-01T18:45:00")
        [withdrawal] = entry["withdrawals"]
        assert withdrawal["createdAt"].startswith("2024-03-02T09:15:00")
        assert withdrawal["tillDate"] == "2024-03-01"

    def test_missing_timestamps_default_to_restore_time(self, ledger, backup_service):
        backup_service.restore_backup(_legacy_payload())

        [person] = ledger.list_people()
        assert person.created_at is not None
        assert person.created_at.year >= 2024

    def test_safety_backup_written_first(self, backup_service, populated, tmp_path):
        result = backup_service.restore_backup(_legacy_payload(), safety_directory=tmp_path)

        assert result.safety_backup == tmp_path / "Collection_SafetyBackup_20240315T120000.json"
        snapshot = json.loads(result.safety_backup.read_text())
        assert [p["name"] for p in snapshot["people"]] == ["Ravi"]

    def test_restore_logs_counts(self, backup_service, captured_logs):
        backup_service.restore_backup(_legacy_payload())

        record = next(r for r in captured_logs() if r["message"] == "restore_completed")
        assert record["people_count"] == 1
        assert record["operation"] == "restore_backup"


class TestMalformedPayloads:

    @pytest.mark.parametrize(
        "payload, path",
        [
            ([], "$"),
            ({"people": "nobody"}, "$.people"),
            ({"people": [{"defaultAmount": 5}]}, "people[0].name"),
            ({"people": [{"name": "A", "defaultAmount": 0}]}, "people[0].defaultAmount"),
            ({"people": [{"name": "A", "defaultAmount": 5, "frequency": "hourly"}]}, "people[0].frequency"),
            (
                {"people": [{"name": "A", "defaultAmount": 5,
                             "collections": [{"date": "15/03/2024", "amount": 5}]}]},
                "people[0].collections[0].date",
            ),
            (
                {"people": [{"name": "A", "defaultAmount": 5,
                             "collections": [{"date": "2024-03-01", "amount": 5},
                                             {"date": "2024-03-01", "amount": 6}]}]},
                "people[0].collections[1].date",
            ),
            (
                {"people": [{"name": "A", "defaultAmount": 5,
                             "cycles": [{"id": "a", "startDate": "2024-01-01", "isActive": True},
                                        {"id": "b", "startDate": "2024-02-01", "isActive": True}]}]},
                "people[0].cycles",
            ),
            (
                {"people": [{"name": "A", "defaultAmount": 5,
                             "cycles": [{"id": "a", "startDate": "2024-01-01", "isActive": True}],
                             "collections": [{"date": "2024-01-02", "amount": 5, "cycleId": "zzz"}]}]},
                "people[0].collections[0].cycleId",
            ),
            (
                {"people": [{"name": "A", "defaultAmount": 5,
                             "withdrawals": [{"amount": "-1"}]}]},
                "people[0].withdrawals[0].amount",
            ),
            (
                {"people": [{"name": "A", "defaultAmount": 5, "createdAt": "yesterday"}]},
                "people[0].createdAt",
            ),
            (
                {"people": [{"name": "A", "defaultAmount": 5,
                             "withdrawals": [{"amount": "1", "tillDate": "01-03-2024"}]}]},
                "people[0].withdrawals[0].tillDate",
            ),
        ],
    )
    def test_reports_json_path(self, backup_service, payload, path):
        with pytest.raises(ImportFormatError) as exc_info:
            backup_service.validate_backup(payload)
        assert exc_info.value.path == path

    def test_failed_restore_leaves_data_untouched(self, ledger, backup_service, populated, tmp_path):
        bad = _legacy_payload()
        bad["people"][0]["collections"][0]["amount"] = "lots"

        with pytest.raises(ImportFormatError):
            backup_service.restore_backup(bad, safety_directory=tmp_path)

        assert [p.id for p in ledger.list_people()] == [populated.id]
        assert ledger.get_active_cycle(populated.id).total_amount == Decimal("80.00")
        assert list(tmp_path.iterdir()) == []

    def test_unreadable_file(self, backup_service, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        with pytest.raises(ImportFormatError) as exc_info:
            backup_service.read_backup_file(path)
        assert exc_info.value.path == "$"

    def test_validate_counts_people(self, backup_service):
        assert backup_service.validate_backup(_legacy_payload()) == 1
