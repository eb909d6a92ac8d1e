"""
JSON Interchange Module

Pydantic schemas for the bulk import/export documents. Imports are checked
record by record and the whole batch is rejected on the first invalid record,
so a confirmed import is all or nothing.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as SchemaError

from .config import get_config
from .errors import ImportValidationError, ValidationError
from .models import (
    Account, DueScheduleEntry, Installment, LoanHistoryEntry, LoanRepaymentEntry,
    PaymentStatus, parse_due_date, validate_mobile
)
from .money import ZERO, round2, to_decimal


def _amount(value: Any) -> Decimal:
    return round2(to_decimal(value))


def _first_error(error: SchemaError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get('loc', ()))
    message = first.get('msg', 'invalid value')
    return f"{location}: {message}" if location else message


class InstallmentRecord(BaseModel):
    """One entry of ``due_payments``"""
    model_config = ConfigDict(extra="ignore")

    due_no: int = Field(..., ge=1)
    due_date: date
    due_amount: Decimal
    loan_interest: Decimal
    total: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    payment_status: PaymentStatus
    collected_on: Optional[datetime] = None

    @field_validator('due_date', mode='before')
    @classmethod
    def parse_due_date_value(cls, value):
        return parse_due_date(value)

    @field_validator('due_amount', 'loan_interest', 'total', 'paid_amount',
                     'balance_amount', mode='before')
    @classmethod
    def parse_amount(cls, value):
        amount = _amount(value)
        if amount < ZERO:
            raise ValueError("amount cannot be negative")
        return amount

    @model_validator(mode='after')
    def check_invariants(self):
        problems = self.to_installment().invariant_violations()
        if self.paid_amount > self.total:
            problems.append("paid_amount exceeds total")
        if problems:
            raise ValueError("; ".join(problems))
        return self

    def to_installment(self) -> Installment:
        return Installment(
            due_no=self.due_no,
            due_date=self.due_date,
            due_amount=self.due_amount,
            loan_interest=self.loan_interest,
            total=self.total,
            paid_amount=self.paid_amount,
            balance_amount=self.balance_amount,
            payment_status=self.payment_status,
            collected_on=self.collected_on
        )

    @classmethod
    def from_installment(cls, installment: Installment) -> 'InstallmentRecord':
        return cls.model_construct(
            due_no=installment.due_no,
            due_date=installment.due_date,
            due_amount=installment.due_amount,
            loan_interest=installment.loan_interest,
            total=installment.total,
            paid_amount=installment.paid_amount,
            balance_amount=installment.balance_amount,
            payment_status=installment.payment_status,
            collected_on=installment.collected_on
        )


class LoanHistoryRecord(BaseModel):
    updated_at: datetime
    updated_by: str = ""
    old_loan_amount: Decimal
    new_loan_amount: Decimal
    reason: Optional[str] = None

    @field_validator('old_loan_amount', 'new_loan_amount', mode='before')
    @classmethod
    def parse_amount(cls, value):
        return _amount(value)


class LoanRepaymentRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    repayment_date: date = Field(..., alias="date")
    amount: Decimal
    notes: Optional[str] = ""
    timestamp: datetime

    @field_validator('amount', mode='before')
    @classmethod
    def parse_amount(cls, value):
        return _amount(value)


def _check_schedule(installments: List[Any]) -> None:
    """Due numbers must be exactly 1..N for the configured schedule length"""
    expected = get_config().installment_count
    if len(installments) != expected:
        raise ValueError(f"expected {expected} installments, got {len(installments)}")
    numbers = [p.due_no for p in installments]
    if len(set(numbers)) != len(numbers):
        raise ValueError("duplicate due_no")
    out_of_range = sorted(n for n in numbers if n > expected)
    if out_of_range:
        raise ValueError(f"due_no {out_of_range[0]} is outside 1..{expected}")


class AccountRecord(BaseModel):
    """One account of an accounts document"""
    model_config = ConfigDict(extra="ignore")

    account: str = Field(..., min_length=1)
    name: str
    mobile: Optional[str] = ""
    fund_amount: Decimal
    loan_amount: Decimal
    due_payments: List[InstallmentRecord]
    loan_history: List[LoanHistoryRecord] = Field(default_factory=list)
    loan_repayment_history: List[LoanRepaymentRecord] = Field(default_factory=list)

    @field_validator('fund_amount', 'loan_amount', mode='before')
    @classmethod
    def parse_amount(cls, value):
        amount = _amount(value)
        if amount < ZERO:
            raise ValueError("amount cannot be negative")
        return amount

    @field_validator('mobile', mode='before')
    @classmethod
    def check_mobile(cls, value):
        if value is not None and not isinstance(value, str):
            raise ValueError("mobile must be a string")
        try:
            return validate_mobile(value)
        except ValidationError as e:
            raise ValueError(e.message)

    @model_validator(mode='after')
    def check_due_payments(self):
        _check_schedule(self.due_payments)
        return self

    def to_account(self, storage_id: str = "", now: Optional[datetime] = None) -> Account:
        now = now or datetime.now(timezone.utc)
        return Account(
            id=storage_id,
            created_at=now,
            updated_at=now,
            account=self.account,
            name=self.name,
            mobile=self.mobile or "",
            fund_amount=self.fund_amount,
            loan_amount=self.loan_amount,
            due_payments=sorted(
                (p.to_installment() for p in self.due_payments),
                key=lambda p: p.due_no
            ),
            loan_history=[
                LoanHistoryEntry(
                    updated_at=h.updated_at,
                    updated_by=h.updated_by,
                    old_loan_amount=h.old_loan_amount,
                    new_loan_amount=h.new_loan_amount,
                    reason=h.reason
                )
                for h in self.loan_history
            ],
            loan_repayment_history=[
                LoanRepaymentEntry(
                    repayment_date=r.repayment_date,
                    amount=r.amount,
                    notes=r.notes or "",
                    timestamp=r.timestamp
                )
                for r in self.loan_repayment_history
            ]
        )

    @classmethod
    def from_account(cls, account: Account) -> 'AccountRecord':
        return cls.model_construct(
            account=account.account,
            name=account.name,
            mobile=account.mobile,
            fund_amount=account.fund_amount,
            loan_amount=account.loan_amount,
            due_payments=[InstallmentRecord.from_installment(p) for p in account.due_payments],
            loan_history=[
                LoanHistoryRecord.model_construct(
                    updated_at=h.updated_at,
                    updated_by=h.updated_by,
                    old_loan_amount=h.old_loan_amount,
                    new_loan_amount=h.new_loan_amount,
                    reason=h.reason
                )
                for h in account.loan_history
            ],
            loan_repayment_history=[
                LoanRepaymentRecord.model_construct(
                    repayment_date=r.repayment_date,
                    amount=r.amount,
                    notes=r.notes,
                    timestamp=r.timestamp
                )
                for r in account.loan_repayment_history
            ]
        )


class AccountsDocument(BaseModel):
    """Envelope of an accounts export; entries are validated one by one"""
    model_config = ConfigDict(extra="ignore")

    exportDate: Optional[Any] = None
    totalAccounts: Optional[int] = None
    totalFundAmount: Optional[Any] = None
    totalLoanAmount: Optional[Any] = None
    accounts: List[Any]


class DuePaymentsDocument(BaseModel):
    """Envelope of one account's installment export"""
    model_config = ConfigDict(extra="ignore")

    account: Optional[str] = None
    name: Optional[str] = None
    exportDate: Optional[Any] = None
    due_payments: List[Any]


def _envelope(model, data: Any, key: str):
    try:
        return model.model_validate(data)
    except SchemaError:
        raise ImportValidationError(f'"{key}" array is required')


def parse_accounts_document(data: Any) -> List[AccountRecord]:
    """
    Validate an accounts document

    Raises:
        ImportValidationError: On the first invalid account, naming its index
    """
    records = []
    seen = set()
    for index, item in enumerate(_envelope(AccountsDocument, data, 'accounts').accounts):
        try:
            record = AccountRecord.model_validate(item)
        except SchemaError as e:
            raise ImportValidationError(
                f"Invalid account entry at index {index}: {_first_error(e)}", index=index
            )
        if record.account in seen:
            raise ImportValidationError(
                f"Duplicate account {record.account} at index {index}", index=index
            )
        seen.add(record.account)
        records.append(record)
    return records


def parse_due_payments_document(data: Any) -> List[Installment]:
    """
    Validate a due payments document for one account

    Raises:
        ImportValidationError: On the first invalid entry, naming its index
    """
    records = []
    for index, item in enumerate(_envelope(DuePaymentsDocument, data, 'due_payments').due_payments):
        try:
            records.append(InstallmentRecord.model_validate(item))
        except SchemaError as e:
            raise ImportValidationError(
                f"Invalid payment entry at index {index}: {_first_error(e)}", index=index
            )
    try:
        _check_schedule(records)
    except ValueError as e:
        raise ImportValidationError(f"Invalid due payments: {e}")
    return sorted((r.to_installment() for r in records), key=lambda p: p.due_no)


class DueScheduleRecord(BaseModel):
    """One row of a master due schedule upload"""
    model_config = ConfigDict(extra="ignore")

    due_no: int = Field(..., ge=1)
    due_date: date
    due_amount: Decimal
    due_interest: Decimal
    total: Decimal

    @field_validator('due_date', mode='before')
    @classmethod
    def parse_due_date_value(cls, value):
        return parse_due_date(value)

    @field_validator('due_amount', 'due_interest', 'total', mode='before')
    @classmethod
    def parse_amount(cls, value):
        amount = _amount(value)
        if amount < ZERO:
            raise ValueError("amount cannot be negative")
        return amount

    def to_entry(self) -> DueScheduleEntry:
        return DueScheduleEntry(
            due_no=self.due_no,
            due_date=self.due_date,
            due_amount=self.due_amount,
            due_interest=self.due_interest,
            total=self.total
        )


def parse_due_schedule_document(data: Any) -> List[DueScheduleEntry]:
    """
    Validate a master due schedule upload

    Accepts the bare array of rows or an object with a ``due_schedule``
    array. Due numbers must be exactly 1..N and the running totals may not
    decrease.

    Raises:
        ImportValidationError: On the first invalid row, naming its index
    """
    if isinstance(data, dict):
        data = data.get('due_schedule')
    if not isinstance(data, list):
        raise ImportValidationError('"due_schedule" array is required')

    records = []
    for index, item in enumerate(data):
        try:
            records.append(DueScheduleRecord.model_validate(item))
        except SchemaError as e:
            raise ImportValidationError(
                f"Invalid due schedule entry at index {index}: {_first_error(e)}", index=index
            )
    try:
        _check_schedule(records)
    except ValueError as e:
        raise ImportValidationError(f"Invalid due schedule: {e}")

    entries = sorted((r.to_entry() for r in records), key=lambda e: e.due_no)
    for previous, entry in zip(entries, entries[1:]):
        if entry.total < previous.total:
            raise ImportValidationError(
                f"Invalid due schedule: running total drops at due_no {entry.due_no}"
            )
    return entries


def build_accounts_document(accounts: List[Account], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Export document for a list of accounts"""
    now = now or datetime.now(timezone.utc)
    return {
        'exportDate': now.isoformat(),
        'totalAccounts': len(accounts),
        'totalFundAmount': str(round2(sum((a.fund_amount for a in accounts), ZERO))),
        'totalLoanAmount': str(round2(sum((a.loan_amount for a in accounts), ZERO))),
        'accounts': [AccountRecord.from_account(a).model_dump(mode='json', by_alias=True) for a in accounts]
    }


def build_due_payments_document(account: Account, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Export document for one account's installments"""
    now = now or datetime.now(timezone.utc)
    return {
        'account': account.account,
        'name': account.name,
        'exportDate': now.isoformat(),
        'due_payments': [
            InstallmentRecord.from_installment(p).model_dump(mode='json')
            for p in account.due_payments
        ]
    }


def build_due_schedule_document(entries: List[DueScheduleEntry],
                                now: Optional[datetime] = None) -> Dict[str, Any]:
    """Export document for the master due schedule"""
    now = now or datetime.now(timezone.utc)
    return {
        'exportDate': now.isoformat(),
        'due_schedule': [entry.to_dict() for entry in entries]
    }
