"""
Test suite for the account manager service
"""

import pytest
from decimal import Decimal
from datetime import date, datetime, timezone

from fund_ledger.accounts import AccountManager
from fund_ledger.audit import AuditTrail, AuditEventType
from fund_ledger.config import FundLedgerConfig
from fund_ledger.errors import ImportValidationError, NotFoundError, ValidationError
from fund_ledger.ledger import LedgerOutcome
from fund_ledger.models import PaymentStatus
from fund_ledger.repository import AccountRepository
from fund_ledger.storage import InMemoryStorage


def failing_log_event(*args, **kwargs):
    raise RuntimeError("audit store unavailable")


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def audit_trail(storage):
    return AuditTrail(storage)


@pytest.fixture
def manager(storage, audit_trail):
    return AccountManager(AccountRepository(storage), audit_trail, FundLedgerConfig())


@pytest.fixture
def ravi(manager):
    """AZH-001 with a 500 due on every installment and a 12000 loan"""
    manager.create_account("Ravi", "9876543210", created_on=date(2025, 1, 15))
    manager.update_due_details("AZH-001", 1, "500", "0", apply_to_all=True)
    manager.change_loan_amount("AZH-001", "12000", updated_by="admin")
    return manager.get_account("AZH-001")


class TestAccountLifecycle:
    """Creating and editing accounts"""

    def test_create_account(self, manager, audit_trail):
        result = manager.create_account("  Ravi ", "9876543210", created_on=date(2025, 1, 15))

        assert result.outcome == LedgerOutcome.APPLIED
        account = manager.get_account("AZH-001")
        assert account.name == "Ravi"
        assert account.id == result.account.id
        assert len(account.due_payments) == 24
        assert account.due_payments[0].due_date == date(2025, 2, 15)
        assert account.fund_amount == Decimal('0.00')
        assert audit_trail.get_events_for_entity("account", "AZH-001")[0].event_type == \
            AuditEventType.ACCOUNT_CREATED

    def test_account_numbers_increment(self, manager):
        for name in ("A", "B", "C"):
            manager.create_account(name)

        assert [a.account for a in manager.list_accounts()] == ["AZH-001", "AZH-002", "AZH-003"]

    def test_create_requires_name(self, manager):
        result = manager.create_account("   ")

        assert result.outcome == LedgerOutcome.REJECTED
        assert manager.list_accounts() == []

    def test_create_rejects_bad_mobile(self, manager):
        result = manager.create_account("Ravi", "12345")

        assert isinstance(result.error, ValidationError)

    def test_rename(self, manager, ravi):
        assert manager.rename_account("AZH-001", "Ravi Kumar").changed
        assert manager.get_account("AZH-001").name == "Ravi Kumar"
        assert manager.rename_account("AZH-001", "Ravi Kumar").outcome == LedgerOutcome.NO_CHANGE
        assert manager.rename_account("AZH-001", "").outcome == LedgerOutcome.REJECTED

    def test_update_mobile(self, manager, ravi):
        assert manager.update_mobile("AZH-001", "").changed
        assert manager.get_account("AZH-001").mobile == ""
        assert manager.update_mobile("AZH-001", "").outcome == LedgerOutcome.NO_CHANGE
        assert manager.update_mobile("AZH-001", "98765").outcome == LedgerOutcome.REJECTED

    def test_unknown_account(self, manager):
        result = manager.collect_payment("AZH-404", 1, "100")

        assert result.outcome == LedgerOutcome.REJECTED
        assert isinstance(result.error, NotFoundError)
        assert result.account is None


class TestLedgerOperations:
    """Engine operations persisted through the manager"""

    def test_collect_payment_persists(self, manager, ravi, audit_trail):
        result = manager.collect_payment("AZH-001", 1, "860.00", user_id="collector")

        assert result.changed
        stored = manager.get_account("AZH-001")
        assert stored.get_installment(1).payment_status == PaymentStatus.PAID
        assert stored.fund_amount == Decimal('860.00')
        event = audit_trail.get_events_by_type(AuditEventType.PAYMENT_COLLECTED)[0]
        assert event.user_id == "collector"
        assert event.metadata["amount"] == "860.00"

    def test_rejected_operation_writes_nothing(self, manager, ravi, audit_trail):
        before = audit_trail.count_events()

        result = manager.collect_payment("AZH-001", 1, "1000.00")

        assert result.outcome == LedgerOutcome.REJECTED
        assert manager.get_account("AZH-001") == ravi
        assert audit_trail.count_events() == before

    def test_change_loan_amount(self, manager, ravi):
        assert ravi.get_installment(5).loan_interest == Decimal('360.00')

        manager.change_loan_amount("AZH-001", "5000", updated_by="admin", reason="Correction")

        stored = manager.get_account("AZH-001")
        assert stored.get_installment(5).total == Decimal('650.00')
        assert len(stored.loan_history) == 2
        assert stored.loan_history[-1].reason == "Correction"

    def test_repay_loan(self, manager, ravi):
        result = manager.repay_loan("AZH-001", "2000", date(2025, 3, 1), "Cash")

        assert result.changed
        stored = manager.get_account("AZH-001")
        assert stored.loan_amount == Decimal('10000.00')
        assert stored.loan_repayment_history[0].notes == "Cash"

    def test_update_due_details(self, manager, ravi):
        manager.update_due_details("AZH-001", 3, "600", "200")

        assert manager.get_account("AZH-001").get_installment(3).total == Decimal('800.00')

    def test_set_fund_amount(self, manager, ravi):
        assert manager.set_fund_amount("AZH-001", "2500").changed
        assert manager.get_account("AZH-001").fund_amount == Decimal('2500.00')

    def test_audit_disabled(self, storage, audit_trail):
        manager = AccountManager(
            AccountRepository(storage), audit_trail, FundLedgerConfig(enable_audit_logging=False)
        )

        manager.create_account("Ravi")

        assert audit_trail.count_events() == 0

    def test_failed_audit_write_rolls_back_change(self, manager, ravi, audit_trail, monkeypatch):
        """Test an account change is never stored without its audit event"""
        before = audit_trail.count_events()
        monkeypatch.setattr(audit_trail, "log_event", failing_log_event)

        with pytest.raises(RuntimeError):
            manager.collect_payment("AZH-001", 1, "860.00")

        assert manager.get_account("AZH-001") == ravi
        assert audit_trail.count_events() == before

    def test_failed_audit_write_drops_new_account(self, manager, audit_trail, monkeypatch):
        monkeypatch.setattr(audit_trail, "log_event", failing_log_event)

        with pytest.raises(RuntimeError):
            manager.create_account("Ravi")

        assert manager.list_accounts() == []
        assert not manager.repository.exists("AZH-001")


class TestBulkFundUpdate:

    def test_continues_past_failures(self, manager):
        manager.create_account("A")
        manager.create_account("B")
        manager.set_fund_amount("AZH-002", "50")

        report = manager.bulk_update_fund_amounts({
            "AZH-001": "100", "AZH-404": "10", "AZH-002": "50", "AZH-003": "-1"
        })

        assert report.updated == ["AZH-001"]
        assert report.unchanged == ["AZH-002"]
        assert set(report.errors) == {"AZH-404", "AZH-003"}
        assert not report.success
        assert manager.get_account("AZH-001").fund_amount == Decimal('100.00')


class TestImportExport:
    """Interchange through the manager"""

    def test_export_and_reimport_accounts(self, manager, ravi):
        manager.collect_payment("AZH-001", 1, "500")
        document = manager.export_accounts()
        document["accounts"][0]["name"] = "Ravi Kumar"
        new_entry = dict(document["accounts"][0], account="AZH-010", name="Anil")
        document["accounts"].append(new_entry)

        report = manager.import_accounts(document)

        assert report.updated == ["AZH-001"]
        assert report.added == ["AZH-010"]
        assert report.warnings == []
        assert manager.get_account("AZH-001").name == "Ravi Kumar"
        assert manager.get_account("AZH-001").created_at == ravi.created_at
        assert manager.get_account("AZH-010").get_installment(1).paid_amount == Decimal('500.00')

    def test_invalid_batch_writes_nothing(self, manager, ravi):
        document = manager.export_accounts()
        good = dict(document["accounts"][0], account="AZH-020")
        bad = dict(document["accounts"][0], account="AZH-021", fund_amount="oops")
        document["accounts"] = [good, bad]

        with pytest.raises(ImportValidationError) as exc_info:
            manager.import_accounts(document)

        assert exc_info.value.index == 1
        assert manager.get_account("AZH-020") is None

    def test_import_reports_status_warnings(self, manager, ravi):
        document = manager.export_accounts()
        document["accounts"][0]["due_payments"][0]["payment_status"] = "paid"

        report = manager.import_accounts(document)

        assert [(w.account, w.due_no) for w in report.warnings] == [("AZH-001", 1)]
        assert manager.get_account("AZH-001").get_installment(1).payment_status == PaymentStatus.PAID

    def test_import_due_payments(self, manager, ravi):
        document = manager.export_due_payments("AZH-001")
        entry = document["due_payments"][0]
        entry.update(paid_amount="860.00", balance_amount="0.00", payment_status="paid")

        result, warnings = manager.import_due_payments("AZH-001", document)

        assert result.changed
        assert warnings == []
        assert manager.get_account("AZH-001").get_installment(1).is_paid

    def test_import_due_payments_for_other_account(self, manager, ravi):
        document = manager.export_due_payments("AZH-001")
        document["account"] = "AZH-002"

        result, _ = manager.import_due_payments("AZH-001", document)

        assert isinstance(result.error, ImportValidationError)

    def test_invalid_due_payments_rejected(self, manager, ravi):
        result, warnings = manager.import_due_payments("AZH-001", {"due_payments": []})

        assert result.outcome == LedgerOutcome.REJECTED
        assert manager.get_account("AZH-001") == ravi

    def test_export_due_payments_unknown_account(self, manager):
        with pytest.raises(NotFoundError):
            manager.export_due_payments("AZH-404")


class TestQueries:

    def test_search(self, manager):
        manager.create_account("Ravi Kumar")
        manager.create_account("Meena")

        assert [a.account for a in manager.search_accounts("ravi")] == ["AZH-001"]
        assert [a.account for a in manager.search_accounts("azh-002")] == ["AZH-002"]
        assert len(manager.search_accounts("")) == 2

    def test_accounts_with_loans(self, manager, ravi):
        manager.create_account("Meena")

        assert [a.account for a in manager.accounts_with_loans()] == ["AZH-001"]
