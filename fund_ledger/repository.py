"""
Account Repository

Persists accounts as documents in the ``account_details`` collection and keeps
a secondary index collection (``account_keys``) from business key (AZH-NNN) to
storage id, so resolving an account never scans the whole collection.

The master due schedule lives in its own ``due_schedules`` collection keyed by
due number.
"""

from typing import Any, Dict, List, Optional
import logging

from .errors import NotFoundError, ValidationError
from .models import Account, DueScheduleEntry
from .storage import StorageInterface


logger = logging.getLogger(__name__)


class AccountRepository:
    """Document-store backed account persistence with business-key lookup"""

    def __init__(
        self,
        storage: StorageInterface,
        table_name: str = "account_details",
        index_table: str = "account_keys"
    ):
        self.storage = storage
        self.table_name = table_name
        self.index_table = index_table

    def _storage_id_for(self, key: str) -> Optional[str]:
        entry = self.storage.load(self.index_table, key)
        if entry:
            return entry['storage_id']
        return None

    def _index(self, key: str, storage_id: str) -> None:
        self.storage.save(self.index_table, key, {'account': key, 'storage_id': storage_id})

    def add(self, account: Account) -> Account:
        """
        Store a new account under a generated storage id

        Raises:
            ValidationError: If the business key is already taken
        """
        if self.storage.exists(self.index_table, account.account):
            raise ValidationError(
                f"Account {account.account} already exists",
                {"account": account.account}
            )

        with self.storage.atomic():
            data = account.to_dict()
            data.pop('id', None)
            storage_id = self.storage.add(self.table_name, data)
            self._index(account.account, storage_id)

        account.id = storage_id
        logger.debug(f"Added account {account.account} as {storage_id}")
        return account

    def save(self, account: Account) -> None:
        """
        Overwrite a stored account; the last write wins

        Raises:
            NotFoundError: If the account was never added
        """
        storage_id = account.id or self._storage_id_for(account.account)
        if not storage_id or not self.storage.exists(self.table_name, storage_id):
            raise NotFoundError(f"Account {account.account} not found")

        account.id = storage_id
        self.storage.save(self.table_name, storage_id, account.to_dict())

    def get(self, storage_id: str) -> Optional[Account]:
        """Account by storage id"""
        data = self.storage.load(self.table_name, storage_id)
        if data:
            return Account.from_dict(data)
        return None

    def find_by_business_key(self, key: str) -> Optional[Account]:
        """Account by its AZH-NNN key via the secondary index"""
        storage_id = self._storage_id_for(key)
        if not storage_id:
            return None
        return self.get(storage_id)

    def require(self, key: str) -> Account:
        """
        Account by business key

        Raises:
            NotFoundError: If no such account exists
        """
        account = self.find_by_business_key(key)
        if account is None:
            raise NotFoundError(f"Account {key} not found", {"account": key})
        return account

    def exists(self, key: str) -> bool:
        return self.storage.exists(self.index_table, key)

    def _documents(self) -> List[Dict[str, Any]]:
        """Account documents that carry a storage id and business key"""
        documents = []
        for data in self.storage.load_all(self.table_name):
            if not data.get('id') or not data.get('account'):
                logger.warning(
                    f"Skipping account document without id or account key: "
                    f"{data.get('account') or data.get('name') or '<unnamed>'}"
                )
                continue
            documents.append(data)
        return documents

    def list_all(self) -> List[Account]:
        """All accounts sorted by business key; unidentifiable documents are skipped"""
        accounts = [Account.from_dict(data) for data in self._documents()]
        accounts.sort(key=lambda account: account.account)
        return accounts

    def business_keys(self) -> List[str]:
        """Every indexed business key"""
        return [entry['account'] for entry in self.storage.load_all(self.index_table)]

    def count(self) -> int:
        return self.storage.count(self.table_name)

    def rebuild_index(self) -> int:
        """
        Recreate the business-key index from the account documents

        Needed once for collections populated without going through the
        repository. Returns the number of indexed accounts.
        """
        documents = self._documents()
        with self.storage.atomic():
            self.storage.clear_table(self.index_table)
            for data in documents:
                self._index(data['account'], data['id'])
        indexed = self.storage.count(self.index_table)
        logger.info(f"Rebuilt account index with {indexed} entries")
        return indexed


class DueScheduleRepository:
    """Master due schedule rows stored under their due number"""

    def __init__(self, storage: StorageInterface, table_name: str = "due_schedules"):
        self.storage = storage
        self.table_name = table_name

    def replace_all(self, entries: List[DueScheduleEntry]) -> None:
        """Swap the stored schedule for ``entries`` in one transaction"""
        with self.storage.atomic():
            self.storage.clear_table(self.table_name)
            for entry in entries:
                self.storage.save(self.table_name, str(entry.due_no), entry.to_dict())

    def list_all(self) -> List[DueScheduleEntry]:
        """Schedule rows sorted by due number"""
        entries = [DueScheduleEntry.from_dict(data) for data in self.storage.load_all(self.table_name)]
        entries.sort(key=lambda entry: entry.due_no)
        return entries

    def get(self, due_no: int) -> Optional[DueScheduleEntry]:
        data = self.storage.load(self.table_name, str(due_no))
        if data:
            return DueScheduleEntry.from_dict(data)
        return None

    def count(self) -> int:
        return self.storage.count(self.table_name)
