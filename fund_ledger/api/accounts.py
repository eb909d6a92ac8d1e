"""
Account management endpoints
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, status

from .deps import (
    LedgerSystem, account_payload, get_ledger_system, get_user_id,
    raise_for_error, result_response
)
from .schemas import (
    BulkFundUpdateRequest, CreateAccountRequest, FundAmountRequest,
    UpdateMobileRequest, UpdateNameRequest
)
from ..errors import ImportValidationError, NotFoundError


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_account(
    request: CreateAccountRequest,
    system: LedgerSystem = Depends(get_ledger_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    """Open an account under the next account number"""
    result = system.account_manager.create_account(
        name=request.name,
        mobile=request.mobile,
        created_on=request.created_on,
        user_id=user_id
    )
    return result_response(result, "Account created successfully")


@router.get("")
async def list_accounts(
    q: Optional[str] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """List accounts, optionally filtered by account number or name"""
    accounts = system.account_manager.search_accounts(q or "")
    return {
        "accounts": [account_payload(a) for a in accounts],
        "count": len(accounts)
    }


@router.get("/export")
async def export_accounts(system: LedgerSystem = Depends(get_ledger_system)):
    """Every account as an accounts interchange document"""
    return system.account_manager.export_accounts()


@router.post("/import")
async def import_accounts(
    payload: Dict[str, Any] = Body(...),
    system: LedgerSystem = Depends(get_ledger_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    """Add or overwrite accounts from an accounts document, all or nothing"""
    try:
        report = system.account_manager.import_accounts(payload, user_id=user_id)
    except ImportValidationError as e:
        raise_for_error(e)
    return report.to_dict()


@router.post("/bulk-fund-update")
async def bulk_fund_update(
    request: BulkFundUpdateRequest,
    system: LedgerSystem = Depends(get_ledger_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    """Set fund amounts for several accounts, reporting failures per account"""
    report = system.account_manager.bulk_update_fund_amounts(request.updates, user_id=user_id)
    return report.to_dict()


@router.get("/{key}")
async def get_account(key: str, system: LedgerSystem = Depends(get_ledger_system)):
    account = system.account_manager.get_account(key)
    if account is None:
        raise_for_error(NotFoundError(f"Account {key} not found", {"account": key}))
    return account_payload(account)


@router.patch("/{key}/name")
async def rename_account(
    key: str,
    request: UpdateNameRequest,
    system: LedgerSystem = Depends(get_ledger_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    result = system.account_manager.rename_account(key, request.name, user_id=user_id)
    return result_response(result, "Name updated successfully")


@router.patch("/{key}/mobile")
async def update_mobile(
    key: str,
    request: UpdateMobileRequest,
    system: LedgerSystem = Depends(get_ledger_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    result = system.account_manager.update_mobile(key, request.mobile, user_id=user_id)
    return result_response(result, "Mobile updated successfully")


@router.put("/{key}/fund-amount")
async def set_fund_amount(
    key: str,
    request: FundAmountRequest,
    system: LedgerSystem = Depends(get_ledger_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    result = system.account_manager.set_fund_amount(key, request.fund_amount, user_id=user_id)
    return result_response(result, "Fund amount updated successfully")
