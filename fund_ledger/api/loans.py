"""
Loan principal endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .deps import LedgerSystem, get_ledger_system, get_user_id, result_response
from .schemas import ChangeLoanRequest, RepaymentRequest


router = APIRouter()


@router.put("")
async def change_loan_amount(
    key: str,
    request: ChangeLoanRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Correct the loan principal and re-price every unpaid installment"""
    result = system.account_manager.change_loan_amount(
        key, request.new_loan_amount, request.updated_by, request.reason
    )
    return result_response(result, "Loan amount updated successfully")


@router.post("/repayments")
async def repay_loan(
    key: str,
    request: RepaymentRequest,
    system: LedgerSystem = Depends(get_ledger_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    """Record a principal repayment"""
    result = system.account_manager.repay_loan(
        key, request.amount, request.repayment_date, request.notes or "", user_id=user_id
    )
    return result_response(result, "Loan repayment recorded successfully")
