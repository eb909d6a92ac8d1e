"""
Reporting endpoints
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from .deps import LedgerSystem, get_ledger_system
from ..reporting import current_month_stats, due_report, portfolio_summary, recent_payments


router = APIRouter()


@router.get("/summary")
async def get_summary(system: LedgerSystem = Depends(get_ledger_system)):
    """Fund, loan and installment totals across all accounts"""
    return portfolio_summary(system.account_manager.list_accounts()).to_dict()


@router.get("/current-month")
async def get_current_month(
    today: Optional[date] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Collection statistics for installments due this month"""
    return current_month_stats(system.account_manager.list_accounts(), today).to_dict()


@router.get("/due/{due_no}")
async def get_due_report(due_no: int, system: LedgerSystem = Depends(get_ledger_system)):
    """One installment number across every account"""
    return due_report(system.account_manager.list_accounts(), due_no).to_dict()


@router.get("/recent-payments")
async def get_recent_payments(
    limit: int = Query(5, ge=1, le=100),
    system: LedgerSystem = Depends(get_ledger_system)
):
    return {"payments": recent_payments(system.account_manager.list_accounts(), limit)}
