"""
Reporting Module

Read-only aggregates over accounts and their installments: per-account
totals, portfolio summary, current-month collection statistics, the per-due
report and recent payments. Nothing here mutates an account.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set, Any

from .models import Account, Installment, PaymentStatus, UNSETTLED_STATUSES
from .money import ZERO, round2


@dataclass
class AccountTotals:
    """Installment totals for one account"""
    total_due: Decimal
    total_paid: Decimal
    total_balance: Decimal
    pending_count: int
    paid_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_due': str(self.total_due),
            'total_paid': str(self.total_paid),
            'total_balance': str(self.total_balance),
            'pending_count': self.pending_count,
            'paid_count': self.paid_count
        }


@dataclass
class PortfolioSummary:
    """Aggregate figures across all accounts"""
    total_accounts: int
    total_fund_amount: Decimal
    total_loan_amount: Decimal
    available_funds: Decimal
    total_pending_payments: int
    total_paid_payments: int
    total_outstanding_balance: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_accounts': self.total_accounts,
            'total_fund_amount': str(self.total_fund_amount),
            'total_loan_amount': str(self.total_loan_amount),
            'available_funds': str(self.available_funds),
            'total_pending_payments': self.total_pending_payments,
            'total_paid_payments': self.total_paid_payments,
            'total_outstanding_balance': str(self.total_outstanding_balance)
        }


@dataclass
class CurrentMonthStats:
    """
    Collection statistics for installments due in one calendar month

    paid_accounts and unpaid_accounts never overlap.
    """
    year: int
    month: int
    total_due: Decimal = ZERO
    paid_amount: Decimal = ZERO
    paid_accounts: Set[str] = field(default_factory=set)
    unpaid_accounts: Set[str] = field(default_factory=set)

    @property
    def balance_amount(self) -> Decimal:
        return round2(self.total_due - self.paid_amount)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'year': self.year,
            'month': self.month,
            'total_due': str(self.total_due),
            'paid_amount': str(self.paid_amount),
            'balance_amount': str(self.balance_amount),
            'paid_accounts': sorted(self.paid_accounts),
            'unpaid_accounts': sorted(self.unpaid_accounts),
            'paid_accounts_count': len(self.paid_accounts),
            'unpaid_accounts_count': len(self.unpaid_accounts)
        }


@dataclass
class DueReportRow:
    serial_no: int
    account: str
    name: str
    due_amount: Decimal
    loan_interest: Decimal
    total_payable: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    payment_status: PaymentStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            'serial_no': self.serial_no,
            'account': self.account,
            'name': self.name,
            'due_amount': str(self.due_amount),
            'loan_interest': str(self.loan_interest),
            'total_payable': str(self.total_payable),
            'paid_amount': str(self.paid_amount),
            'balance_amount': str(self.balance_amount),
            'payment_status': self.payment_status.value
        }


@dataclass
class DueReport:
    """One installment number across every account"""
    due_no: int
    rows: List[DueReportRow]

    def _sum(self, attr: str) -> Decimal:
        return round2(sum((getattr(row, attr) for row in self.rows), ZERO))

    @property
    def total_due_amount(self) -> Decimal:
        return self._sum('due_amount')

    @property
    def total_loan_interest(self) -> Decimal:
        return self._sum('loan_interest')

    @property
    def total_payable(self) -> Decimal:
        return self._sum('total_payable')

    @property
    def total_paid_amount(self) -> Decimal:
        return self._sum('paid_amount')

    @property
    def total_balance_amount(self) -> Decimal:
        return self._sum('balance_amount')

    def to_dict(self) -> Dict[str, Any]:
        return {
            'due_no': self.due_no,
            'rows': [row.to_dict() for row in self.rows],
            'totals': {
                'due_amount': str(self.total_due_amount),
                'loan_interest': str(self.total_loan_interest),
                'total_payable': str(self.total_payable),
                'paid_amount': str(self.total_paid_amount),
                'balance_amount': str(self.total_balance_amount)
            }
        }


def _sum_amounts(values: Iterable[Decimal]) -> Decimal:
    return round2(sum(values, ZERO))


def account_totals(account: Account) -> AccountTotals:
    """Due, paid and balance totals plus status counts for one account"""
    payments = account.due_payments
    return AccountTotals(
        total_due=_sum_amounts(p.due_amount for p in payments),
        total_paid=_sum_amounts(p.paid_amount for p in payments),
        total_balance=_sum_amounts(p.balance_amount for p in payments),
        pending_count=sum(1 for p in payments if p.payment_status == PaymentStatus.PENDING),
        paid_count=sum(1 for p in payments if p.payment_status == PaymentStatus.PAID)
    )


def portfolio_summary(accounts: List[Account]) -> PortfolioSummary:
    """Totals across all accounts"""
    total_fund = _sum_amounts(a.fund_amount for a in accounts)
    total_loan = _sum_amounts(a.loan_amount for a in accounts)
    per_account = [account_totals(a) for a in accounts]
    return PortfolioSummary(
        total_accounts=len(accounts),
        total_fund_amount=total_fund,
        total_loan_amount=total_loan,
        available_funds=round2(total_fund - total_loan),
        total_pending_payments=sum(t.pending_count for t in per_account),
        total_paid_payments=sum(t.paid_count for t in per_account),
        total_outstanding_balance=_sum_amounts(t.total_balance for t in per_account)
    )


def current_month_stats(accounts: List[Account], today: Optional[date] = None) -> CurrentMonthStats:
    """
    Collection statistics for installments due in today's month

    An account counts as paid only when it has a paid installment this month
    and nothing pending, partial or overdue.
    """
    today = today or date.today()
    stats = CurrentMonthStats(year=today.year, month=today.month)
    total_due = ZERO
    paid_amount = ZERO

    for account in accounts:
        has_paid = False
        has_unpaid = False
        for payment in account.due_payments:
            if payment.due_date.year != today.year or payment.due_date.month != today.month:
                continue
            total_due += payment.due_amount
            if payment.payment_status in (PaymentStatus.PAID, PaymentStatus.PARTIAL):
                paid_amount += payment.paid_amount
                has_paid = True
            if payment.payment_status in UNSETTLED_STATUSES:
                has_unpaid = True

        if has_unpaid:
            stats.unpaid_accounts.add(account.account)
        elif has_paid:
            stats.paid_accounts.add(account.account)

    stats.total_due = round2(total_due)
    stats.paid_amount = round2(paid_amount)
    return stats


def due_report(accounts: List[Account], due_no: int) -> DueReport:
    """Report of one installment number across accounts, sorted by account"""
    rows = []
    for account in accounts:
        payment = account.get_installment(due_no)
        if payment is None:
            continue
        rows.append(DueReportRow(
            serial_no=0,
            account=account.account,
            name=account.name,
            due_amount=payment.due_amount,
            loan_interest=payment.loan_interest,
            total_payable=payment.total,
            paid_amount=payment.paid_amount,
            balance_amount=payment.balance_amount,
            payment_status=payment.payment_status
        ))

    rows.sort(key=lambda row: row.account)
    for index, row in enumerate(rows, start=1):
        row.serial_no = index
    return DueReport(due_no=due_no, rows=rows)


def _payment_sort_key(payment: Installment) -> datetime:
    if payment.collected_on:
        moment = payment.collected_on
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment
    return datetime(payment.due_date.year, payment.due_date.month,
                    payment.due_date.day, tzinfo=timezone.utc)


def recent_payments(accounts: List[Account], limit: int = 5) -> List[Dict[str, Any]]:
    """Most recent paid or partial installments across accounts"""
    entries = []
    for account in accounts:
        for payment in account.due_payments:
            if payment.payment_status not in (PaymentStatus.PAID, PaymentStatus.PARTIAL):
                continue
            entries.append((_payment_sort_key(payment), account, payment))

    entries.sort(key=lambda entry: entry[0], reverse=True)
    return [
        {
            'account': account.account,
            'name': account.name,
            'due_no': payment.due_no,
            'payment_date': moment.isoformat(),
            'paid_amount': str(payment.paid_amount),
            'due_amount': str(payment.due_amount),
            'payment_status': payment.payment_status.value
        }
        for moment, account, payment in entries[:limit]
    ]


def pending_installments(account: Account) -> List[Installment]:
    """Installments still open: pending, partial or overdue"""
    return [p for p in account.due_payments if p.payment_status in UNSETTLED_STATUSES]


def total_pending_amount(account: Account) -> Decimal:
    """Open balance across the account's unsettled installments"""
    return _sum_amounts(p.balance_amount for p in pending_installments(account))
