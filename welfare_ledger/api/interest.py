"""
Quarterly interest endpoints
"""

from fastapi import APIRouter, HTTPException, Depends

from .system import LedgerSystem, get_ledger_system
from .schemas import ApplyInterestRequest, BatchInterestRequest
from ..exceptions import EntityNotFoundError


router = APIRouter()


@router.post("/customers/{customer_id}/apply")
async def apply_interest(
    customer_id: str,
    request: ApplyInterestRequest = ApplyInterestRequest(),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Apply quarterly interest to one customer"""
    service = system.interest_service
    if request.period_start or request.period_end:
        if not (request.period_start and request.period_end):
            raise HTTPException(status_code=400, detail="period_start and period_end must be given together")
        if request.period_end < request.period_start:
            raise HTTPException(status_code=400, detail="period_end is before period_start")
        result = service.apply_quarterly_interest(customer_id, request.period_start, request.period_end)
    else:
        result = service.apply_quarterly_interest_for_customer(customer_id, as_of=request.as_of)
    return result.to_dict()


@router.post("/batch")
async def run_interest_batch(
    request: BatchInterestRequest = BatchInterestRequest(),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Run the quarterly interest batch"""
    batch = system.interest_service.run_quarterly_batch(
        customer_ids=request.customer_ids,
        as_of=request.as_of,
        max_workers=request.max_workers
    )
    result = batch.to_dict()
    result["message"] = batch.summary_message()
    result["successful"] = batch.is_successful()
    return result


@router.get("/customers/{customer_id}")
async def get_customer_interest(
    customer_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Interest balance, ledger and loan interest for a customer"""
    try:
        position = system.interest_service.customer_position(customer_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return position.to_dict()
