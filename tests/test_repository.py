"""
Tests for the account repository and its business-key index
"""

import pytest
from datetime import date, datetime, timezone

from fund_ledger.errors import NotFoundError, ValidationError
from fund_ledger.ledger import generate_due_payments
from fund_ledger.models import Account
from fund_ledger.repository import AccountRepository
from fund_ledger.storage import InMemoryStorage


def new_account(key, name="Member"):
    return Account.new(key, name, due_payments=generate_due_payments(date(2025, 1, 1)))


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def repository(storage):
    return AccountRepository(storage)


class TestAccountRepository:
    """Persistence and business-key lookup"""

    def test_add_assigns_storage_id(self, repository, storage):
        account = repository.add(new_account("AZH-001"))

        assert account.id
        assert storage.load("account_keys", "AZH-001")["storage_id"] == account.id
        assert storage.load("account_details", account.id)["account"] == "AZH-001"

    def test_duplicate_key_rejected(self, repository):
        repository.add(new_account("AZH-001"))

        with pytest.raises(ValidationError):
            repository.add(new_account("AZH-001"))
        assert repository.count() == 1

    def test_find_by_business_key(self, repository):
        repository.add(new_account("AZH-001", "Ravi"))
        repository.add(new_account("AZH-002", "Meena"))

        found = repository.find_by_business_key("AZH-002")

        assert found.name == "Meena"
        assert len(found.due_payments) == 24
        assert repository.find_by_business_key("AZH-404") is None

    def test_lookup_does_not_scan_collection(self, repository, storage, monkeypatch):
        """Test resolving a key reads the index, never the whole collection"""
        repository.add(new_account("AZH-001"))

        def fail(table):
            raise AssertionError(f"full scan of {table}")

        monkeypatch.setattr(storage, "load_all", fail)
        assert repository.find_by_business_key("AZH-001").account == "AZH-001"

    def test_require(self, repository):
        with pytest.raises(NotFoundError):
            repository.require("AZH-001")

    def test_save_overwrites(self, repository):
        account = repository.add(new_account("AZH-001", "Old"))
        account.name = "New"

        repository.save(account)

        assert repository.find_by_business_key("AZH-001").name == "New"

    def test_save_unknown_account(self, repository):
        with pytest.raises(NotFoundError):
            repository.save(new_account("AZH-009"))

    def test_list_all_sorted(self, repository):
        for key in ("AZH-003", "AZH-001", "AZH-002"):
            repository.add(new_account(key))

        assert [a.account for a in repository.list_all()] == ["AZH-001", "AZH-002", "AZH-003"]
        assert sorted(repository.business_keys()) == ["AZH-001", "AZH-002", "AZH-003"]
        assert repository.exists("AZH-002")

    def test_rebuild_index(self, repository, storage):
        account = new_account("AZH-005")
        account.id = "legacy-doc"
        storage.save("account_details", "legacy-doc", account.to_dict())
        assert repository.find_by_business_key("AZH-005") is None

        assert repository.rebuild_index() == 1

        assert repository.find_by_business_key("AZH-005").id == "legacy-doc"

    def test_documents_without_id_are_skipped(self, repository, storage, caplog):
        """Test documents lacking an id are left out of both listing and index"""
        repository.add(new_account("AZH-001"))
        orphan = new_account("AZH-007").to_dict()
        orphan.pop('id')
        storage.save("account_details", "orphan-doc", orphan)

        with caplog.at_level("WARNING", logger="fund_ledger.repository"):
            assert [a.account for a in repository.list_all()] == ["AZH-001"]
            assert repository.rebuild_index() == 1

        assert repository.find_by_business_key("AZH-007") is None
        assert "AZH-007" in caplog.text
