"""
Test suite for audit module

Tests hash-chained audit trail, tamper detection and integrity verification.
"""

import pytest
from decimal import Decimal
from datetime import date, datetime, timezone

from fund_ledger.storage import InMemoryStorage
from fund_ledger.audit import AuditTrail, AuditEvent, AuditEventType


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def audit_trail(storage):
    return AuditTrail(storage)


class TestAuditEvent:
    """Test AuditEvent functionality"""

    def test_metadata_serialization(self):
        """Test that Decimal, date and enum metadata become JSON values"""
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="EVT1",
            created_at=now,
            updated_at=now,
            sequence=1,
            event_type=AuditEventType.PAYMENT_COLLECTED,
            entity_type="account",
            entity_id="AZH-001",
            previous_hash="",
            current_hash="",
            metadata={
                "amount": Decimal('860.00'),
                "repayment_date": date(2025, 3, 1),
                "type": AuditEventType.LOAN_REPAID,
                "nested": {"values": [Decimal('1.10')]}
            }
        )

        assert event.metadata == {
            "amount": "860.00",
            "repayment_date": "2025-03-01",
            "type": "loan_repaid",
            "nested": {"values": ["1.10"]}
        }

    def test_hash_covers_metadata(self, audit_trail):
        event = audit_trail.log_event(
            AuditEventType.FUND_AMOUNT_UPDATED, "account", "AZH-001", {"fund_amount": "10.00"}
        )
        assert event.verify_hash()

        event.metadata["fund_amount"] = "99.00"

        assert not event.verify_hash()

    def test_dict_round_trip(self, audit_trail):
        event = audit_trail.log_event(
            AuditEventType.ACCOUNT_CREATED, "account", "AZH-001", {"name": "Ravi"}, user_id="clerk"
        )

        restored = AuditEvent.from_dict(event.to_dict())

        assert restored == event
        assert restored.verify_hash()


class TestAuditTrail:
    """Chaining, queries and integrity checks"""

    def test_events_are_chained(self, audit_trail):
        first = audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "AZH-001")
        second = audit_trail.log_event(AuditEventType.PAYMENT_COLLECTED, "account", "AZH-001")

        assert first.previous_hash == ""
        assert second.previous_hash == first.current_hash
        assert second.sequence == first.sequence + 1
        assert audit_trail.get_latest_hash() == second.current_hash

    def test_chain_continues_across_instances(self, storage, audit_trail):
        first = audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "AZH-001")

        second = AuditTrail(storage).log_event(AuditEventType.ACCOUNT_UPDATED, "account", "AZH-001")

        assert second.previous_hash == first.current_hash

    def test_queries(self, audit_trail):
        audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "AZH-001")
        audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "AZH-002")
        audit_trail.log_event(AuditEventType.PAYMENT_COLLECTED, "account", "AZH-001")

        for_account = audit_trail.get_events_for_entity("account", "AZH-001")
        assert [e.event_type for e in for_account] == [
            AuditEventType.ACCOUNT_CREATED, AuditEventType.PAYMENT_COLLECTED
        ]
        assert len(audit_trail.get_events_for_entity("account", "AZH-001", limit=1)) == 1
        assert len(audit_trail.get_events_by_type(AuditEventType.ACCOUNT_CREATED)) == 2
        assert audit_trail.count_events() == 3
        assert len(audit_trail.get_all_events()) == 3

    def test_integrity_of_untouched_chain(self, audit_trail):
        for key in ("AZH-001", "AZH-002", "AZH-003"):
            audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", key)

        result = audit_trail.verify_integrity()

        assert result['valid']
        assert result['total_events'] == 3

    def test_tampered_event_detected(self, storage, audit_trail):
        event = audit_trail.log_event(
            AuditEventType.PAYMENT_COLLECTED, "account", "AZH-001", {"amount": "500.00"}
        )
        audit_trail.log_event(AuditEventType.PAYMENT_COLLECTED, "account", "AZH-001")

        data = storage.load("audit_events", event.id)
        data['metadata']['amount'] = "5.00"
        storage.save("audit_events", event.id, data)

        result = audit_trail.verify_integrity()
        assert not result['valid']
        assert result['hash_errors'][0]['event_id'] == event.id

    def test_removed_event_breaks_chain(self, storage, audit_trail):
        audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "AZH-001")
        middle = audit_trail.log_event(AuditEventType.ACCOUNT_UPDATED, "account", "AZH-001")
        audit_trail.log_event(AuditEventType.LOAN_REPAID, "account", "AZH-001")

        storage.delete("audit_events", middle.id)

        result = audit_trail.verify_integrity()
        assert not result['valid']
        assert len(result['chain_breaks']) == 1

    def test_empty_trail(self, audit_trail):
        assert audit_trail.verify_integrity()['valid']
        assert audit_trail.get_latest_hash() is None
