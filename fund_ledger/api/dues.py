"""
Installment endpoints: collection, due detail edits and per-account interchange
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends

from .deps import LedgerSystem, get_ledger_system, get_user_id, raise_for_error, result_response
from .schemas import CollectPaymentRequest, UpdateDueDetailsRequest
from ..errors import NotFoundError


router = APIRouter()


@router.get("/export")
async def export_due_payments(key: str, system: LedgerSystem = Depends(get_ledger_system)):
    """The account's installments as a due payments document"""
    try:
        return system.account_manager.export_due_payments(key)
    except NotFoundError as e:
        raise_for_error(e)


@router.post("/import")
async def import_due_payments(
    key: str,
    payload: Dict[str, Any] = Body(...),
    system: LedgerSystem = Depends(get_ledger_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    """Replace the account's installments from a due payments document"""
    result, warnings = system.account_manager.import_due_payments(key, payload, user_id=user_id)
    response = result_response(result, "Due payments imported successfully")
    response["warnings"] = [w.to_dict() for w in warnings]
    return response


@router.post("/{due_no}/collect")
async def collect_payment(
    key: str,
    due_no: int,
    request: CollectPaymentRequest,
    system: LedgerSystem = Depends(get_ledger_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    """Collect money against one installment and credit the fund"""
    result = system.account_manager.collect_payment(
        key, due_no, request.amount, collected_on=request.collected_on, user_id=user_id
    )
    return result_response(result, "Payment collected successfully")


@router.put("/{due_no}")
async def update_due_details(
    key: str,
    due_no: int,
    request: UpdateDueDetailsRequest,
    system: LedgerSystem = Depends(get_ledger_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    """Edit due amount and interest of one installment, or of every unpaid one"""
    result = system.account_manager.update_due_details(
        key, due_no, request.due_amount, request.loan_interest,
        apply_to_all=request.apply_to_all, user_id=user_id
    )
    return result_response(result, "Due details updated successfully")
