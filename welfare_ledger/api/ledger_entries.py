"""
Ledger entry (data entry) endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, status

from .system import LedgerSystem, get_ledger_system
from .schemas import CreateLedgerEntryRequest, ledger_entry_to_dict
from ..exceptions import EntityNotFoundError, LedgerError


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_ledger_entry(
    request: CreateLedgerEntryRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Record a ledger entry"""
    try:
        entry = system.entry_manager.create_entry(
            entry_date=request.date,
            amount=request.to_decimal_amount(),
            entry_type=request.type,
            customer_id=request.customer_id,
            subtype=request.subtype,
            receipt_number=request.receipt_number,
            notes=request.notes
        )
    except (LedgerError, ValueError, ArithmeticError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ledger_entry_to_dict(entry)


@router.get("/{entry_id}")
async def get_ledger_entry(
    entry_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    entry = system.entry_manager.get_entry(entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Ledger entry not found")
    return ledger_entry_to_dict(entry)


@router.delete("/{entry_id}")
async def delete_ledger_entry(
    entry_id: str,
    deleted_by: Optional[str] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Move an entry to the trash, reversing Interest Charges"""
    try:
        entry = system.entry_manager.soft_delete_entry(entry_id, deleted_by=deleted_by)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ledger_entry_to_dict(entry)


@router.post("/{entry_id}/restore")
async def restore_ledger_entry(
    entry_id: str,
    restored_by: Optional[str] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Bring an entry back from the trash"""
    try:
        entry = system.entry_manager.restore_entry(entry_id, restored_by=restored_by)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ledger_entry_to_dict(entry)
