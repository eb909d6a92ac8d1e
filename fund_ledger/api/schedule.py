"""
Master due schedule endpoints
"""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends

from .deps import LedgerSystem, get_ledger_system, get_user_id, raise_for_error
from ..errors import ImportValidationError


router = APIRouter()


@router.get("")
async def get_due_schedule(system: LedgerSystem = Depends(get_ledger_system)):
    """Schedule rows in due number order with their column totals"""
    manager = system.schedule_manager
    entries = manager.list_schedule()
    return {
        "due_schedule": [entry.to_dict() for entry in entries],
        "summary": manager.summary().to_dict()
    }


@router.get("/export")
async def export_due_schedule(system: LedgerSystem = Depends(get_ledger_system)):
    return system.schedule_manager.export_schedule()


@router.post("/import")
async def import_due_schedule(
    payload: Any = Body(...),
    system: LedgerSystem = Depends(get_ledger_system),
    user_id: Optional[str] = Depends(get_user_id)
):
    """Replace the master schedule; accepts a bare array or a due_schedule document"""
    try:
        entries = system.schedule_manager.import_schedule(payload, user_id=user_id)
    except ImportValidationError as e:
        raise_for_error(e)
    return {"imported": len(entries)}
