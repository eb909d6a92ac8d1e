"""
Ledger Data Model

Accounts, their 24 scheduled installments ("dues"), the append-only loan
history logs and the fund-wide master due schedule. Monetary fields are
Decimal rounded to two places; statuses are enums; dates are datetime.date.
Storage form uses decimal strings and ISO dates.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union
import re

from .errors import ValidationError
from .money import ZERO, round2
from .storage import StorageRecord


class PaymentStatus(Enum):
    """Installment payment status"""
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


UNSETTLED_STATUSES = (PaymentStatus.PENDING, PaymentStatus.PARTIAL, PaymentStatus.OVERDUE)

_MOBILE_PATTERN = re.compile(r'^[0-9]{10}$')
_DUE_DATE_FORMATS = ('%Y-%m-%d', '%d %b %Y', '%b %d, %Y', '%d-%b-%Y')


def parse_due_date(value: Union[str, date]) -> date:
    """
    Parse a due date in any of the formats found in stored schedules

    Accepts ISO ("2025-10-21"), "21 Oct 2025" and "Oct 21, 2025".

    Raises:
        ValueError: If the value matches none of the formats
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid due date: {value!r}")

    text = value.strip()
    for fmt in _DUE_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Invalid due date: {value!r}")


def validate_mobile(mobile: Optional[str]) -> str:
    """
    Normalize a mobile number; empty is allowed, otherwise exactly 10 digits

    Raises:
        ValidationError: For anything else
    """
    mobile = (mobile or "").strip()
    if mobile and not _MOBILE_PATTERN.match(mobile):
        raise ValidationError(
            "Mobile number must be exactly 10 digits",
            {"mobile": mobile}
        )
    return mobile


def balance_for(total: Decimal, paid_amount: Decimal) -> Decimal:
    """Open balance of an installment, never below zero"""
    return max(round2(total - paid_amount), ZERO)


def derive_status(total: Decimal, paid_amount: Decimal, balance_amount: Decimal) -> PaymentStatus:
    """
    Status implied by the amounts of an installment

    A zero-total installment is never settled, so it stays open for
    re-pricing and due detail edits.
    """
    if balance_amount == ZERO and total > ZERO:
        return PaymentStatus.PAID
    if paid_amount > ZERO:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass
class Installment:
    """One scheduled monthly payment obligation of an account"""
    due_no: int
    due_date: date
    due_amount: Decimal = ZERO
    loan_interest: Decimal = ZERO
    total: Decimal = ZERO
    paid_amount: Decimal = ZERO
    balance_amount: Decimal = ZERO
    payment_status: PaymentStatus = PaymentStatus.PENDING
    collected_on: Optional[datetime] = None

    def __post_init__(self):
        for name in ('due_amount', 'loan_interest', 'total', 'paid_amount', 'balance_amount'):
            setattr(self, name, round2(getattr(self, name)))
        if not isinstance(self.payment_status, PaymentStatus):
            self.payment_status = PaymentStatus(self.payment_status)
        if not isinstance(self.due_date, date):
            self.due_date = parse_due_date(self.due_date)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID

    def derived_status(self) -> PaymentStatus:
        """Status implied by the amounts, ignoring the stored value"""
        return derive_status(self.total, self.paid_amount, self.balance_amount)

    def status_matches_amounts(self) -> bool:
        """
        Check the stored status against the amounts

        "overdue" is accepted for any installment with an open balance.
        """
        if self.payment_status == PaymentStatus.OVERDUE:
            return self.balance_amount > ZERO
        return self.payment_status == self.derived_status()

    def invariant_violations(self) -> List[str]:
        """Amount invariants that do not hold for this installment"""
        problems = []
        for name in ('due_amount', 'loan_interest', 'paid_amount'):
            if getattr(self, name) < ZERO:
                problems.append(f"{name} is negative")
        if self.total != round2(self.due_amount + self.loan_interest):
            problems.append("total != due_amount + loan_interest")
        if self.balance_amount != balance_for(self.total, self.paid_amount):
            problems.append("balance_amount != total - paid_amount")
        return problems

    def to_dict(self) -> Dict[str, Any]:
        return {
            'due_no': self.due_no,
            'due_date': self.due_date.isoformat(),
            'due_amount': str(self.due_amount),
            'loan_interest': str(self.loan_interest),
            'total': str(self.total),
            'paid_amount': str(self.paid_amount),
            'balance_amount': str(self.balance_amount),
            'payment_status': self.payment_status.value,
            'collected_on': self.collected_on.isoformat() if self.collected_on else None
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Installment':
        return cls(
            due_no=int(data['due_no']),
            due_date=parse_due_date(data['due_date']),
            due_amount=data.get('due_amount', ZERO),
            loan_interest=data.get('loan_interest', ZERO),
            total=data.get('total', ZERO),
            paid_amount=data.get('paid_amount', ZERO),
            balance_amount=data.get('balance_amount', ZERO),
            payment_status=PaymentStatus(data.get('payment_status', 'pending')),
            collected_on=_parse_datetime(data.get('collected_on'))
        )


@dataclass(frozen=True)
class LoanHistoryEntry:
    """Administrative change of an account's loan principal"""
    updated_at: datetime
    updated_by: str
    old_loan_amount: Decimal
    new_loan_amount: Decimal
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'updated_at': self.updated_at.isoformat(),
            'updated_by': self.updated_by,
            'old_loan_amount': str(self.old_loan_amount),
            'new_loan_amount': str(self.new_loan_amount),
            'reason': self.reason
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanHistoryEntry':
        return cls(
            updated_at=_parse_datetime(data['updated_at']),
            updated_by=data.get('updated_by', ''),
            old_loan_amount=round2(data['old_loan_amount']),
            new_loan_amount=round2(data['new_loan_amount']),
            reason=data.get('reason')
        )


@dataclass(frozen=True)
class LoanRepaymentEntry:
    """Principal repayment recorded against an account"""
    repayment_date: date
    amount: Decimal
    notes: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.repayment_date.isoformat(),
            'amount': str(self.amount),
            'notes': self.notes,
            'timestamp': self.timestamp.isoformat()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanRepaymentEntry':
        return cls(
            repayment_date=parse_due_date(data['date']),
            amount=round2(data['amount']),
            notes=data.get('notes') or '',
            timestamp=_parse_datetime(data['timestamp'])
        )


@dataclass(frozen=True)
class DueScheduleEntry:
    """
    One row of the fund's master due schedule

    ``total`` is the running total of principal and interest up to and
    including this installment, so the last row carries the grand total.
    """
    due_no: int
    due_date: date
    due_amount: Decimal
    due_interest: Decimal
    total: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            'due_no': self.due_no,
            'due_date': self.due_date.isoformat(),
            'due_amount': str(self.due_amount),
            'due_interest': str(self.due_interest),
            'total': str(self.total)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DueScheduleEntry':
        return cls(
            due_no=int(data['due_no']),
            due_date=parse_due_date(data['due_date']),
            due_amount=round2(data['due_amount']),
            due_interest=round2(data['due_interest']),
            total=round2(data['total'])
        )


@dataclass
class Account(StorageRecord):
    """
    One member's ledger: fund contributed, loan outstanding and the
    installment schedule
    """
    account: str
    name: str
    mobile: str = ""
    fund_amount: Decimal = ZERO
    loan_amount: Decimal = ZERO
    due_payments: List[Installment] = field(default_factory=list)
    loan_history: List[LoanHistoryEntry] = field(default_factory=list)
    loan_repayment_history: List[LoanRepaymentEntry] = field(default_factory=list)

    def __post_init__(self):
        self.fund_amount = round2(self.fund_amount)
        self.loan_amount = round2(self.loan_amount)
        self.mobile = self.mobile or ""

    def get_installment(self, due_no: int) -> Optional[Installment]:
        """Installment by due number, None if absent"""
        for installment in self.due_payments:
            if installment.due_no == due_no:
                return installment
        return None

    @property
    def has_loan(self) -> bool:
        return self.loan_amount > ZERO

    def to_dict(self) -> Dict[str, Any]:
        result = self._record_dict()
        result.update({
            'account': self.account,
            'name': self.name,
            'mobile': self.mobile,
            'fund_amount': str(self.fund_amount),
            'loan_amount': str(self.loan_amount),
            'due_payments': [p.to_dict() for p in self.due_payments],
            'loan_history': [h.to_dict() for h in self.loan_history],
            'loan_repayment_history': [r.to_dict() for r in self.loan_repayment_history]
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        timestamps = cls._parse_timestamps(data)
        return cls(
            id=data['id'],
            created_at=timestamps['created_at'],
            updated_at=timestamps['updated_at'],
            account=data['account'],
            name=data.get('name', ''),
            mobile=data.get('mobile') or '',
            fund_amount=data.get('fund_amount', ZERO),
            loan_amount=data.get('loan_amount', ZERO),
            due_payments=[Installment.from_dict(p) for p in data.get('due_payments', [])],
            loan_history=[LoanHistoryEntry.from_dict(h) for h in data.get('loan_history') or []],
            loan_repayment_history=[
                LoanRepaymentEntry.from_dict(r) for r in data.get('loan_repayment_history') or []
            ]
        )

    @classmethod
    def new(cls, account: str, name: str, mobile: str = "",
            due_payments: Optional[List[Installment]] = None,
            now: Optional[datetime] = None) -> 'Account':
        """New unsaved account; the repository assigns the storage id"""
        now = now or datetime.now(timezone.utc)
        return cls(
            id="",
            created_at=now,
            updated_at=now,
            account=account,
            name=name,
            mobile=mobile,
            due_payments=list(due_payments or [])
        )
