"""
Financial summary endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query

from .system import LedgerSystem, get_ledger_system
from ..summary import SummaryMetric


router = APIRouter()


@router.get("")
async def get_summary(
    fy: Optional[int] = Query(None, description="Fiscal year start; all time when omitted"),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """All-time or fiscal-year financial summary"""
    return system.aggregator().summarize(fiscal_year_start=fy).to_dict()


@router.get("/fiscal-years")
async def get_fiscal_years(system: LedgerSystem = Depends(get_ledger_system)):
    """Fiscal years available for selection, newest first"""
    return {"fiscal_years": system.aggregator().fiscal_year_options()}


@router.get("/breakdown/{metric}")
async def get_breakdown(
    metric: str,
    fy: Optional[int] = None,
    page: int = Query(1, description="Clamped to the available pages"),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Paginated rows behind one summary figure"""
    try:
        metric_type = SummaryMetric(metric)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown metric: {metric}")
    return system.aggregator().breakdown(metric_type, fiscal_year_start=fy, page=page).to_dict()
