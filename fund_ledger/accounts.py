"""
Account Management Module

Service layer between the API and the ledger engine. Resolves accounts by
business key, runs the engine on them, persists applied results and writes
the audit trail and structured log for every change.
"""

from copy import deepcopy
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from . import ledger
from .audit import AuditTrail, AuditEventType
from .config import FundLedgerConfig, get_config
from .errors import ImportValidationError, NotFoundError, ValidationError
from .interchange import (
    build_accounts_document, build_due_payments_document,
    parse_accounts_document, parse_due_payments_document
)
from .ledger import LedgerOutcome, LedgerResult, StatusWarning
from .logging_config import log_action
from .models import Account, validate_mobile
from .money import Numeric
from .repository import AccountRepository


logger = logging.getLogger(__name__)


@dataclass
class BulkUpdateReport:
    """Per-account outcome of a bulk fund update"""
    updated: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'updated': self.updated,
            'unchanged': self.unchanged,
            'errors': self.errors
        }


@dataclass
class ImportReport:
    """Outcome of a confirmed accounts import"""
    added: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    warnings: List[StatusWarning] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'added': self.added,
            'updated': self.updated,
            'added_count': len(self.added),
            'updated_count': len(self.updated),
            'warnings': [w.to_dict() for w in self.warnings]
        }


class AccountManager:
    """
    Account lifecycle and ledger operations by business key
    """

    def __init__(
        self,
        repository: AccountRepository,
        audit_trail: AuditTrail,
        config: Optional[FundLedgerConfig] = None
    ):
        self.repository = repository
        self.audit_trail = audit_trail
        self.config = config or get_config()

    def _audit(self, event_type: AuditEventType, entity_id: str,
               metadata: Dict[str, Any], user_id: Optional[str] = None,
               entity_type: str = "account") -> None:
        if self.config.enable_audit_logging:
            self.audit_trail.log_event(
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                metadata=metadata,
                user_id=user_id
            )

    def _run(
        self,
        key: str,
        action: str,
        event_type: AuditEventType,
        operation: Callable[[Account], LedgerResult],
        metadata: Dict[str, Any],
        user_id: Optional[str] = None
    ) -> LedgerResult:
        """Resolve, apply, persist and record one operation"""
        account = self.repository.find_by_business_key(key)
        if account is None:
            result = LedgerResult.rejected(
                None, NotFoundError(f"Account {key} not found", {"account": key})
            )
        else:
            result = operation(account)

        if result.outcome == LedgerOutcome.APPLIED:
            with self.repository.storage.atomic():
                self.repository.save(result.account)
                self._audit(event_type, key, metadata, user_id)
            log_action(logger, "info", f"{action} applied to {key}",
                       user_id=user_id, action=action, account=key,
                       due_no=metadata.get("due_no"), amount=metadata.get("amount"),
                       extra=metadata)
        elif result.outcome == LedgerOutcome.REJECTED:
            log_action(logger, "warning", f"{action} rejected for {key}: {result.message}",
                       user_id=user_id, action=action, account=key,
                       extra=result.error.to_dict())
        else:
            logger.debug(f"{action} on {key} changed nothing")
        return result

    # Account lifecycle

    def create_account(
        self,
        name: str,
        mobile: str = "",
        created_on: Optional[date] = None,
        user_id: Optional[str] = None
    ) -> LedgerResult:
        """
        Open an account under the next business key with a fresh schedule

        Args:
            name: Member name, required
            mobile: Optional 10-digit mobile number
            created_on: Schedule start; installments fall monthly after it
            user_id: Acting user

        Returns:
            LedgerResult, rejected on a blank name or invalid mobile
        """
        name = (name or "").strip()
        if not name:
            return LedgerResult.rejected(None, ValidationError("Name is required"))
        try:
            mobile = validate_mobile(mobile)
        except ValidationError as e:
            return LedgerResult.rejected(None, e)

        created_on = created_on or date.today()
        key = ledger.next_account_number(
            self.repository.business_keys(),
            prefix=self.config.account_prefix,
            width=self.config.account_number_width
        )
        account = Account.new(
            account=key,
            name=name,
            mobile=mobile,
            due_payments=ledger.generate_due_payments(created_on, self.config.installment_count)
        )
        try:
            with self.repository.storage.atomic():
                self.repository.add(account)
                self._audit(AuditEventType.ACCOUNT_CREATED, key,
                            {"name": name, "mobile": mobile, "start_date": created_on}, user_id)
        except ValidationError as e:
            return LedgerResult.rejected(None, e)

        log_action(logger, "info", f"Created account {key}",
                   user_id=user_id, action="create_account", account=key)
        return LedgerResult.applied(account)

    def rename_account(self, key: str, name: str, user_id: Optional[str] = None) -> LedgerResult:
        name = (name or "").strip()

        def operation(account: Account) -> LedgerResult:
            if not name:
                return LedgerResult.rejected(account, ValidationError("Name is required"))
            if name == account.name:
                return LedgerResult.no_change(account, "Name unchanged")
            staged = deepcopy(account)
            staged.name = name
            staged.updated_at = datetime.now(timezone.utc)
            return LedgerResult.applied(staged)

        return self._run(key, "rename_account", AuditEventType.ACCOUNT_UPDATED,
                         operation, {"name": name}, user_id)

    def update_mobile(self, key: str, mobile: str, user_id: Optional[str] = None) -> LedgerResult:
        """Change the mobile number; empty clears it"""

        def operation(account: Account) -> LedgerResult:
            try:
                normalized = validate_mobile(mobile)
            except ValidationError as e:
                return LedgerResult.rejected(account, e)
            if normalized == account.mobile:
                return LedgerResult.no_change(account, "Mobile unchanged")
            staged = deepcopy(account)
            staged.mobile = normalized
            staged.updated_at = datetime.now(timezone.utc)
            return LedgerResult.applied(staged)

        return self._run(key, "update_mobile", AuditEventType.ACCOUNT_UPDATED,
                         operation, {"mobile": mobile}, user_id)

    # Ledger operations

    def collect_payment(
        self,
        key: str,
        due_no: int,
        amount: Numeric,
        collected_on: Optional[datetime] = None,
        user_id: Optional[str] = None
    ) -> LedgerResult:
        return self._run(
            key, "collect_payment", AuditEventType.PAYMENT_COLLECTED,
            lambda account: ledger.collect_payment(account, due_no, amount, collected_on),
            {"due_no": due_no, "amount": str(amount)}, user_id
        )

    def change_loan_amount(
        self,
        key: str,
        new_loan_amount: Numeric,
        updated_by: str,
        reason: Optional[str] = None
    ) -> LedgerResult:
        return self._run(
            key, "change_loan_amount", AuditEventType.LOAN_AMOUNT_CHANGED,
            lambda account: ledger.change_loan_principal(
                account, new_loan_amount, updated_by, reason,
                rate_percent=self.config.interest_rate
            ),
            {"new_loan_amount": str(new_loan_amount), "reason": reason}, updated_by
        )

    def repay_loan(
        self,
        key: str,
        repayment_amount: Numeric,
        repayment_date: Optional[date] = None,
        notes: str = "",
        user_id: Optional[str] = None
    ) -> LedgerResult:
        return self._run(
            key, "repay_loan", AuditEventType.LOAN_REPAID,
            lambda account: ledger.repay_loan_principal(
                account, repayment_amount, repayment_date, notes,
                rate_percent=self.config.interest_rate
            ),
            {"repayment_amount": str(repayment_amount), "repayment_date": repayment_date,
             "notes": notes},
            user_id
        )

    def update_due_details(
        self,
        key: str,
        due_no: int,
        due_amount: Numeric,
        loan_interest: Numeric,
        apply_to_all: bool = False,
        user_id: Optional[str] = None
    ) -> LedgerResult:
        return self._run(
            key, "update_due_details", AuditEventType.DUE_DETAILS_UPDATED,
            lambda account: ledger.update_due_details(
                account, due_no, due_amount, loan_interest, apply_to_all
            ),
            {"due_no": due_no, "due_amount": str(due_amount),
             "loan_interest": str(loan_interest), "apply_to_all": apply_to_all},
            user_id
        )

    def set_fund_amount(self, key: str, fund_amount: Numeric,
                        user_id: Optional[str] = None) -> LedgerResult:
        return self._run(
            key, "set_fund_amount", AuditEventType.FUND_AMOUNT_UPDATED,
            lambda account: ledger.set_fund_amount(account, fund_amount),
            {"fund_amount": str(fund_amount)}, user_id
        )

    def bulk_update_fund_amounts(
        self,
        updates: Dict[str, Numeric],
        user_id: Optional[str] = None
    ) -> BulkUpdateReport:
        """
        Set fund amounts for several accounts

        Each account is updated independently; a failure is reported and the
        remaining accounts are still processed.
        """
        report = BulkUpdateReport()
        for key, amount in updates.items():
            result = self.set_fund_amount(key, amount, user_id)
            if result.outcome == LedgerOutcome.APPLIED:
                report.updated.append(key)
            elif result.outcome == LedgerOutcome.NO_CHANGE:
                report.unchanged.append(key)
            else:
                report.errors[key] = result.message

        logger.info(
            f"Bulk fund update: {len(report.updated)} updated, "
            f"{len(report.unchanged)} unchanged, {len(report.errors)} failed"
        )
        return report

    # Interchange

    def import_due_payments(
        self,
        key: str,
        payload: Any,
        user_id: Optional[str] = None
    ) -> Tuple[LedgerResult, List[StatusWarning]]:
        """
        Replace one account's installments from a due payments document

        The document is validated in full before anything is written.

        Returns:
            The LedgerResult and the installments whose stored status
            disagrees with their amounts
        """
        warnings: List[StatusWarning] = []

        def operation(account: Account) -> LedgerResult:
            try:
                installments = parse_due_payments_document(payload)
            except ImportValidationError as e:
                return LedgerResult.rejected(account, e)
            target = payload.get('account') if isinstance(payload, dict) else None
            if target and target != account.account:
                return LedgerResult.rejected(account, ImportValidationError(
                    f"Document belongs to account {target}, not {account.account}"
                ))

            staged = deepcopy(account)
            staged.due_payments = installments
            staged.updated_at = datetime.now(timezone.utc)
            warnings.extend(ledger.status_mismatches(staged))
            return LedgerResult.applied(staged)

        result = self._run(key, "import_due_payments", AuditEventType.DUE_PAYMENTS_IMPORTED,
                           operation, {"installments": self.config.installment_count}, user_id)
        for warning in warnings:
            logger.warning(
                f"Imported installment {warning.due_no} of {key} is marked "
                f"{warning.stored_status.value} but its amounts say {warning.derived_status.value}"
            )
        return result, warnings

    def import_accounts(self, payload: Any, user_id: Optional[str] = None) -> ImportReport:
        """
        Add or overwrite accounts from an accounts document

        Existing business keys are overwritten and new ones added. The batch
        is validated in full first and written in one transaction.

        Raises:
            ImportValidationError: If any record is invalid; nothing is written
        """
        records = parse_accounts_document(payload)
        now = datetime.now(timezone.utc)
        report = ImportReport()

        with self.repository.storage.atomic():
            for record in records:
                existing = self.repository.find_by_business_key(record.account)
                if existing is not None:
                    account = record.to_account(existing.id, now)
                    account.created_at = existing.created_at
                    self.repository.save(account)
                    report.updated.append(account.account)
                else:
                    account = record.to_account(now=now)
                    self.repository.add(account)
                    report.added.append(account.account)
                report.warnings.extend(ledger.status_mismatches(account))

            self._audit(
                AuditEventType.ACCOUNTS_IMPORTED, "accounts",
                {"added": report.added, "updated": report.updated},
                user_id, entity_type="import"
            )
        log_action(
            logger, "info",
            f"Imported accounts: {len(report.added)} added, {len(report.updated)} updated",
            user_id=user_id, action="import_accounts",
            extra={"warnings": len(report.warnings)}
        )
        return report

    def export_accounts(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        return build_accounts_document(self.repository.list_all(), now)

    def export_due_payments(self, key: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: If the account does not exist
        """
        return build_due_payments_document(self.repository.require(key), now)

    # Reads

    def get_account(self, key: str) -> Optional[Account]:
        return self.repository.find_by_business_key(key)

    def list_accounts(self) -> List[Account]:
        return self.repository.list_all()

    def search_accounts(self, query: str) -> List[Account]:
        """Case-insensitive match on business key or name"""
        needle = (query or "").strip().lower()
        accounts = self.repository.list_all()
        if not needle:
            return accounts
        return [
            a for a in accounts
            if needle in a.account.lower() or needle in a.name.lower()
        ]

    def accounts_with_loans(self) -> List[Account]:
        return [a for a in self.repository.list_all() if a.has_loan]
