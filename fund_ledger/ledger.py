"""
Installment Ledger Engine

Pure functions that keep an account's installments consistent as money is
collected, the loan principal is corrected or repaid, and due amounts are
edited. Every operation works on a staged deep copy of the account and returns
a LedgerResult; the account passed in is never mutated, so a rejected
operation can never leave a half-applied schedule behind.

Interest is a flat percentage of the outstanding principal, applied
uniformly to every installment that is not yet paid.
"""

from copy import deepcopy
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional
import calendar
import re

from .config import get_config
from .errors import LedgerError, NoChangeError, NotFoundError, ValidationError
from .models import (
    Account, Installment, LoanHistoryEntry, LoanRepaymentEntry, PaymentStatus,
    balance_for, derive_status
)
from .money import ZERO, Numeric, round2


class LedgerOutcome(Enum):
    """How a ledger operation ended"""
    APPLIED = "applied"
    NO_CHANGE = "no_change"
    REJECTED = "rejected"


@dataclass
class LedgerResult:
    """
    Typed outcome of a ledger operation

    ``account`` is the updated copy when the operation was applied and the
    untouched input otherwise; None when the account could not be resolved.
    """
    outcome: LedgerOutcome
    account: Optional[Account]
    error: Optional[LedgerError] = None

    @property
    def ok(self) -> bool:
        """True unless the operation was rejected"""
        return self.outcome != LedgerOutcome.REJECTED

    @property
    def changed(self) -> bool:
        return self.outcome == LedgerOutcome.APPLIED

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error else None

    def unwrap(self, allow_no_change: bool = True) -> Account:
        """
        Return the account or raise the carried error

        Args:
            allow_no_change: If False, a no-op raises NoChangeError too
        """
        if self.outcome == LedgerOutcome.REJECTED:
            raise self.error
        if self.outcome == LedgerOutcome.NO_CHANGE and not allow_no_change:
            raise self.error
        return self.account

    @classmethod
    def applied(cls, account: Account) -> 'LedgerResult':
        return cls(LedgerOutcome.APPLIED, account)

    @classmethod
    def no_change(cls, account: Account, message: str) -> 'LedgerResult':
        return cls(LedgerOutcome.NO_CHANGE, account, NoChangeError(message))

    @classmethod
    def rejected(cls, account: Account, error: LedgerError) -> 'LedgerResult':
        return cls(LedgerOutcome.REJECTED, account, error)


@dataclass(frozen=True)
class StatusWarning:
    """Stored status that disagrees with the installment's amounts"""
    account: str
    due_no: int
    stored_status: PaymentStatus
    derived_status: PaymentStatus

    def to_dict(self):
        return {
            'account': self.account,
            'due_no': self.due_no,
            'stored_status': self.stored_status.value,
            'derived_status': self.derived_status.value
        }


def _resolve_rate(rate_percent: Optional[Numeric]) -> Decimal:
    if rate_percent is None:
        return get_config().interest_rate
    return Decimal(str(rate_percent))


def _parse_amount(value: Numeric, field_name: str) -> Decimal:
    try:
        return round2(value)
    except ValueError:
        raise ValidationError(f"Invalid {field_name}: {value!r}", {field_name: str(value)})


def _stage(account: Account, now: datetime) -> Account:
    staged = deepcopy(account)
    staged.updated_at = now
    return staged


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, clamping to the last day of shorter months"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def interest_for(loan_amount: Numeric, rate_percent: Optional[Numeric] = None) -> Decimal:
    """Per-installment interest on an outstanding principal"""
    rate = _resolve_rate(rate_percent)
    return round2(round2(loan_amount) * rate / Decimal('100'))


def recalculate_installment(installment: Installment, interest: Decimal) -> None:
    """
    Apply a new interest figure to one installment in place

    Recomputes total, balance and status from the amounts. Callers only pass
    installments that belong to a staged copy.
    """
    installment.loan_interest = round2(interest)
    installment.total = round2(installment.due_amount + installment.loan_interest)
    installment.balance_amount = balance_for(installment.total, installment.paid_amount)
    installment.payment_status = derive_status(
        installment.total, installment.paid_amount, installment.balance_amount
    )


def _apply_principal(staged: Account, new_loan_amount: Decimal, rate: Decimal) -> None:
    interest = interest_for(new_loan_amount, rate)
    for installment in staged.due_payments:
        if installment.payment_status != PaymentStatus.PAID:
            recalculate_installment(installment, interest)
    staged.loan_amount = new_loan_amount


def collect_payment(
    account: Account,
    due_no: int,
    amount: Numeric,
    collected_on: Optional[datetime] = None
) -> LedgerResult:
    """
    Collect money against one installment

    The collected amount is credited to the account's fund. Only the target
    installment and fund_amount change.

    Args:
        account: Account to collect for
        due_no: Installment number
        amount: Amount collected, greater than zero and at most the
            installment's remaining balance
        collected_on: Collection timestamp (defaults to now)

    Returns:
        LedgerResult, rejected with ValidationError or NotFoundError on bad input
    """
    try:
        amount = _parse_amount(amount, 'amount')
    except ValidationError as e:
        return LedgerResult.rejected(account, e)

    if amount <= ZERO:
        return LedgerResult.rejected(
            account, ValidationError("Payment amount must be greater than zero")
        )

    installment = account.get_installment(due_no)
    if installment is None:
        return LedgerResult.rejected(
            account, NotFoundError(f"Installment {due_no} not found for {account.account}")
        )

    if amount > installment.balance_amount:
        return LedgerResult.rejected(account, ValidationError(
            f"Payment amount exceeds remaining balance of {installment.balance_amount}",
            {"due_no": due_no, "balance_amount": str(installment.balance_amount),
             "amount": str(amount)}
        ))

    now = collected_on or datetime.now(timezone.utc)
    staged = _stage(account, now)
    target = staged.get_installment(due_no)

    target.paid_amount = round2(target.paid_amount + amount)
    target.balance_amount = balance_for(target.total, target.paid_amount)
    target.payment_status = derive_status(
        target.total, target.paid_amount, target.balance_amount
    )
    target.collected_on = now

    staged.fund_amount = round2(staged.fund_amount + amount)
    return LedgerResult.applied(staged)


def change_loan_principal(
    account: Account,
    new_loan_amount: Numeric,
    updated_by: str,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
    rate_percent: Optional[Numeric] = None
) -> LedgerResult:
    """
    Administrative correction of the outstanding loan principal

    Re-prices every unpaid installment at the new interest figure and appends
    a LoanHistoryEntry. Setting the current value again is a no-op and adds
    no history.
    """
    try:
        new_loan_amount = _parse_amount(new_loan_amount, 'new_loan_amount')
    except ValidationError as e:
        return LedgerResult.rejected(account, e)

    if new_loan_amount < ZERO:
        return LedgerResult.rejected(
            account, ValidationError("Loan amount cannot be negative")
        )
    if new_loan_amount == account.loan_amount:
        return LedgerResult.no_change(account, "Loan amount unchanged")

    now = now or datetime.now(timezone.utc)
    staged = _stage(account, now)
    _apply_principal(staged, new_loan_amount, _resolve_rate(rate_percent))
    staged.loan_history.append(LoanHistoryEntry(
        updated_at=now,
        updated_by=updated_by,
        old_loan_amount=account.loan_amount,
        new_loan_amount=new_loan_amount,
        reason=reason
    ))
    return LedgerResult.applied(staged)


def repay_loan_principal(
    account: Account,
    repayment_amount: Numeric,
    repayment_date: Optional[date] = None,
    notes: str = "",
    now: Optional[datetime] = None,
    rate_percent: Optional[Numeric] = None
) -> LedgerResult:
    """
    Record a principal repayment

    Same re-pricing as a principal change, but logged in the repayment history
    rather than the loan history.
    """
    try:
        repayment_amount = _parse_amount(repayment_amount, 'repayment_amount')
    except ValidationError as e:
        return LedgerResult.rejected(account, e)

    if repayment_amount <= ZERO:
        return LedgerResult.rejected(
            account, ValidationError("Repayment amount must be greater than zero")
        )
    if repayment_amount > account.loan_amount:
        return LedgerResult.rejected(account, ValidationError(
            "Repayment amount exceeds outstanding balance",
            {"loan_amount": str(account.loan_amount),
             "repayment_amount": str(repayment_amount)}
        ))

    now = now or datetime.now(timezone.utc)
    staged = _stage(account, now)
    _apply_principal(staged, account.loan_amount - repayment_amount, _resolve_rate(rate_percent))
    staged.loan_repayment_history.append(LoanRepaymentEntry(
        repayment_date=repayment_date or now.date(),
        amount=repayment_amount,
        notes=notes or "",
        timestamp=now
    ))
    return LedgerResult.applied(staged)


def update_due_details(
    account: Account,
    due_no: int,
    due_amount: Numeric,
    loan_interest: Numeric,
    apply_to_all: bool = False,
    now: Optional[datetime] = None
) -> LedgerResult:
    """
    Edit the principal and interest portions of installments

    Args:
        account: Account to edit
        due_no: Installment selected for editing
        due_amount: New principal portion
        loan_interest: New interest portion
        apply_to_all: Apply the same figures to every unpaid installment
        now: Modification timestamp

    Returns:
        LedgerResult; rejected if a new total would fall below what was
        already paid on an installment
    """
    try:
        due_amount = _parse_amount(due_amount, 'due_amount')
        loan_interest = _parse_amount(loan_interest, 'loan_interest')
    except ValidationError as e:
        return LedgerResult.rejected(account, e)

    if due_amount < ZERO or loan_interest < ZERO:
        return LedgerResult.rejected(
            account, ValidationError("Due amount and interest cannot be negative")
        )
    if account.get_installment(due_no) is None:
        return LedgerResult.rejected(
            account, NotFoundError(f"Installment {due_no} not found for {account.account}")
        )

    now = now or datetime.now(timezone.utc)
    staged = _stage(account, now)
    if apply_to_all:
        targets = [p for p in staged.due_payments if p.payment_status != PaymentStatus.PAID]
    else:
        targets = [staged.get_installment(due_no)]

    new_total = round2(due_amount + loan_interest)
    changed = False
    for installment in targets:
        if installment.due_amount == due_amount and installment.loan_interest == loan_interest:
            continue
        if new_total < installment.paid_amount:
            return LedgerResult.rejected(account, ValidationError(
                f"New total for installment {installment.due_no} is below the amount already paid",
                {"due_no": installment.due_no, "paid_amount": str(installment.paid_amount),
                 "total": str(new_total)}
            ))
        installment.due_amount = due_amount
        recalculate_installment(installment, loan_interest)
        changed = True

    if not changed:
        return LedgerResult.no_change(account, "Due details unchanged")
    return LedgerResult.applied(staged)


def set_fund_amount(
    account: Account,
    new_fund_amount: Numeric,
    now: Optional[datetime] = None
) -> LedgerResult:
    """Administrative correction of the contributed fund total"""
    try:
        new_fund_amount = _parse_amount(new_fund_amount, 'fund_amount')
    except ValidationError as e:
        return LedgerResult.rejected(account, e)

    if new_fund_amount < ZERO:
        return LedgerResult.rejected(account, ValidationError("Fund amount cannot be negative"))
    if new_fund_amount == account.fund_amount:
        return LedgerResult.no_change(account, "Fund amount unchanged")

    staged = _stage(account, now or datetime.now(timezone.utc))
    staged.fund_amount = new_fund_amount
    return LedgerResult.applied(staged)


def generate_due_payments(start_date: date, count: Optional[int] = None) -> List[Installment]:
    """
    Fresh pending schedule with monthly due dates

    The first installment falls one month after start_date.
    """
    if count is None:
        count = get_config().installment_count
    return [
        Installment(due_no=i, due_date=add_months(start_date, i))
        for i in range(1, count + 1)
    ]


def next_account_number(
    existing_keys: Iterable[str],
    prefix: Optional[str] = None,
    width: Optional[int] = None
) -> str:
    """
    Next business key: highest numeric suffix plus one

    The first PREFIX-NNN run anywhere in a key counts, so "AZH-007A" and
    "OLD/AZH-012" yield 7 and 12. Keys without one count as zero.
    """
    config = get_config()
    prefix = prefix or config.account_prefix
    width = width or config.account_number_width
    pattern = re.compile(rf'{re.escape(prefix)}-(\d+)')

    highest = 0
    for key in existing_keys:
        match = pattern.search(key or "")
        if match:
            highest = max(highest, int(match.group(1)))

    return f"{prefix}-{highest + 1:0{width}d}"


def is_collectible(installment: Installment, today: Optional[date] = None) -> bool:
    """
    Whether an installment falls in the current calendar month

    Used to filter what a collector is offered; the engine itself never
    enforces it.
    """
    today = today or date.today()
    return (installment.due_date.year == today.year
            and installment.due_date.month == today.month)


def status_mismatches(account: Account) -> List[StatusWarning]:
    """Installments whose stored status disagrees with their amounts"""
    return [
        StatusWarning(
            account=account.account,
            due_no=p.due_no,
            stored_status=p.payment_status,
            derived_status=p.derived_status()
        )
        for p in account.due_payments
        if not p.status_matches_amounts()
    ]
