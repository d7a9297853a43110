"""
Pydantic schemas for API requests
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field

from ..currency import decimal_from_string
from ..ledger_entries import LedgerEntry, LedgerEntryType


class ApplyInterestRequest(BaseModel):
    as_of: Optional[date] = Field(None, description="Day whose fiscal quarter is charged; defaults to today")
    period_start: Optional[date] = None
    period_end: Optional[date] = None


class BatchInterestRequest(BaseModel):
    customer_ids: Optional[List[str]] = Field(None, description="Restrict the run; all active customers when omitted")
    as_of: Optional[date] = None
    max_workers: Optional[int] = Field(None, ge=1)


class CreateLedgerEntryRequest(BaseModel):
    customer_id: Optional[str] = None
    date: date
    amount: str = Field(..., description="Decimal amount as string")
    type: LedgerEntryType
    subtype: Optional[str] = None
    receipt_number: str = ""
    notes: str = ""

    def to_decimal_amount(self) -> Decimal:
        return decimal_from_string(self.amount)


def ledger_entry_to_dict(entry: LedgerEntry) -> dict:
    return {
        "id": entry.id,
        "customer_id": entry.customer_id,
        "date": entry.date.isoformat(),
        "amount": str(entry.amount),
        "type": entry.entry_type.value,
        "subtype": entry.subtype,
        "receipt_number": entry.receipt_number,
        "notes": entry.notes,
        "deleted_at": entry.deleted_at.isoformat() if entry.deleted_at else None,
        "deleted_by": entry.deleted_by,
    }
