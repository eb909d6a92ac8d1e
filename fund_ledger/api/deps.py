"""
Shared API wiring: the ledger system container and result translation
"""

from typing import Any, Dict, Optional

from fastapi import Header, HTTPException

from ..accounts import AccountManager
from ..audit import AuditTrail
from ..config import get_config
from ..errors import LedgerError, NotFoundError
from ..ledger import LedgerOutcome, LedgerResult, is_collectible
from ..models import Account
from ..reporting import account_totals
from ..repository import AccountRepository, DueScheduleRepository
from ..schedule import DueScheduleManager
from ..storage import InMemoryStorage, SQLiteStorage


class LedgerSystem:
    """Storage, audit trail and the account and schedule managers wired together"""

    def __init__(self, use_sqlite: Optional[bool] = None, database_path: Optional[str] = None):
        config = get_config()
        if use_sqlite is None:
            use_sqlite = config.use_sqlite

        if use_sqlite:
            self.storage = SQLiteStorage(database_path or config.database_path)
        else:
            self.storage = InMemoryStorage()

        self.audit_trail = AuditTrail(self.storage)
        self.repository = AccountRepository(self.storage)
        self.account_manager = AccountManager(self.repository, self.audit_trail, config)
        self.schedule_manager = DueScheduleManager(
            DueScheduleRepository(self.storage), self.audit_trail, config
        )


_ledger_system: Optional[LedgerSystem] = None


def get_ledger_system() -> LedgerSystem:
    """Dependency returning the process-wide ledger system, created on first use"""
    global _ledger_system
    if _ledger_system is None:
        _ledger_system = LedgerSystem()
    return _ledger_system


def get_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """Acting user from the X-User-Id header"""
    return x_user_id


def raise_for_error(error: LedgerError) -> None:
    if isinstance(error, NotFoundError):
        raise HTTPException(status_code=404, detail=error.to_dict())
    raise HTTPException(status_code=422, detail=error.to_dict())


def account_payload(account: Account) -> Dict[str, Any]:
    """Account document plus its totals and the installments collectible this month"""
    payload = account.to_dict()
    payload['totals'] = account_totals(account).to_dict()
    payload['collectible_due_nos'] = [
        p.due_no for p in account.due_payments if is_collectible(p)
    ]
    return payload


def result_response(result: LedgerResult, message: str) -> Dict[str, Any]:
    """
    Response body for an engine outcome

    Rejected outcomes raise HTTPException; a no-op answers with
    ``"changed": false``.
    """
    if result.outcome == LedgerOutcome.REJECTED:
        raise_for_error(result.error)
    return {
        "changed": result.changed,
        "message": message if result.changed else result.message,
        "account": account_payload(result.account)
    }
