"""
Tests for the master due schedule
"""

import pytest
from decimal import Decimal
from datetime import date, datetime, timezone

from fund_ledger.audit import AuditTrail, AuditEventType
from fund_ledger.config import FundLedgerConfig
from fund_ledger.errors import ImportValidationError
from fund_ledger.interchange import parse_due_schedule_document
from fund_ledger.ledger import add_months
from fund_ledger.models import DueScheduleEntry
from fund_ledger.repository import DueScheduleRepository
from fund_ledger.schedule import DueScheduleManager, summarize_schedule
from fund_ledger.storage import InMemoryStorage


NOW = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)


def schedule_rows(count=24, due_amount=500, due_interest=100):
    """Rows as uploaded: legacy "DD MMM YYYY" dates and running totals"""
    rows = []
    for due_no in range(1, count + 1):
        rows.append({
            "due_no": due_no,
            "due_date": add_months(date(2025, 1, 21), due_no).strftime("%d %b %Y"),
            "due_amount": due_amount,
            "due_interest": due_interest,
            "total": (due_amount + due_interest) * due_no
        })
    return rows


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def audit_trail(storage):
    return AuditTrail(storage)


@pytest.fixture
def manager(storage, audit_trail):
    return DueScheduleManager(DueScheduleRepository(storage), audit_trail, FundLedgerConfig())


class TestScheduleDocument:
    """Validation of schedule uploads"""

    def test_bare_array(self):
        entries = parse_due_schedule_document(list(reversed(schedule_rows())))

        assert [e.due_no for e in entries] == list(range(1, 25))
        assert entries[0].due_date == date(2025, 2, 21)
        assert entries[-1].total == Decimal('14400.00')

    def test_wrapped_document(self):
        entries = parse_due_schedule_document({"due_schedule": schedule_rows()})

        assert len(entries) == 24

    def test_invalid_row_names_index(self):
        rows = schedule_rows()
        rows[4]["due_interest"] = "-1"

        with pytest.raises(ImportValidationError) as exc_info:
            parse_due_schedule_document(rows)

        assert exc_info.value.index == 4

    @pytest.mark.parametrize("rows", [
        schedule_rows(count=23),
        [dict(row, due_no=row["due_no"] + 1) for row in schedule_rows()],
        schedule_rows()[:23] + [schedule_rows()[0]],
    ])
    def test_rejects_wrong_numbering(self, rows):
        with pytest.raises(ImportValidationError):
            parse_due_schedule_document(rows)

    def test_rejects_falling_running_total(self):
        rows = schedule_rows()
        rows[10]["total"] = 100

        with pytest.raises(ImportValidationError) as exc_info:
            parse_due_schedule_document(rows)

        assert "due_no 11" in exc_info.value.message

    @pytest.mark.parametrize("payload", [None, "rows", {"rows": []}])
    def test_missing_array(self, payload):
        with pytest.raises(ImportValidationError):
            parse_due_schedule_document(payload)


class TestScheduleSummary:

    def test_column_totals(self):
        summary = summarize_schedule(parse_due_schedule_document(schedule_rows()))

        assert summary.entry_count == 24
        assert summary.total_due_amount == Decimal('12000.00')
        assert summary.total_interest == Decimal('2400.00')
        assert summary.grand_total == Decimal('14400.00')

    def test_empty_schedule(self):
        assert summarize_schedule([]).to_dict() == {
            'entry_count': 0, 'total_due_amount': '0.00',
            'total_interest': '0.00', 'grand_total': '0.00'
        }


class TestDueScheduleManager:
    """Upload and listing through the manager"""

    def test_import_and_list(self, manager, audit_trail):
        manager.import_schedule(schedule_rows(), user_id="admin")

        entries = manager.list_schedule()
        assert [e.due_no for e in entries] == list(range(1, 25))
        assert entries[2] == DueScheduleEntry(
            due_no=3, due_date=date(2025, 4, 21), due_amount=Decimal('500.00'),
            due_interest=Decimal('100.00'), total=Decimal('1800.00')
        )
        event = audit_trail.get_events_by_type(AuditEventType.DUE_SCHEDULE_IMPORTED)[0]
        assert event.user_id == "admin"
        assert event.metadata["grand_total"] == "14400.00"

    def test_reimport_replaces_schedule(self, manager):
        """Test a second upload replaces rows rather than adding duplicates"""
        manager.import_schedule(schedule_rows())
        manager.import_schedule(schedule_rows(due_amount=600, due_interest=0))

        entries = manager.list_schedule()
        assert len(entries) == 24
        assert {e.due_amount for e in entries} == {Decimal('600.00')}
        assert manager.repository.get(24).total == Decimal('14400.00')

    def test_invalid_upload_keeps_existing_schedule(self, manager, audit_trail):
        manager.import_schedule(schedule_rows())
        before = audit_trail.count_events()

        with pytest.raises(ImportValidationError):
            manager.import_schedule(schedule_rows(count=12))

        assert manager.repository.count() == 24
        assert audit_trail.count_events() == before

    def test_export(self, manager):
        manager.import_schedule(schedule_rows())

        document = manager.export_schedule(NOW)

        assert document["exportDate"] == NOW.isoformat()
        assert document["due_schedule"][0]["due_date"] == "2025-02-21"
        assert parse_due_schedule_document(document) == manager.list_schedule()
