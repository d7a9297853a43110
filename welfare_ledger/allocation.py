"""
Loan Allocation Module

Splits installment payments between principal and interest with a strict
waterfall: payments retire the principal first, then the fixed interest
amount agreed when the loan was made. Anything paid beyond principal plus
interest is reported as excess and never counted as interest.

Every figure is derived from cumulative totals, so the amount attributed to a
date window is always "allocated up to the window end" minus "allocated
before the window start". Splitting a period into sub-periods therefore never
changes the totals.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from .currency import ZERO
from .exceptions import AllocationInvariantError, DataIntegrityError


@dataclass(frozen=True)
class Allocation:
    """Cumulative split of a loan's installments"""
    principal_paid: Decimal
    interest_collected: Decimal
    amount_paid: Decimal
    excess_paid: Decimal = ZERO
    installments_counted: int = 0


@dataclass(frozen=True)
class InstallmentSplit:
    """How one installment was divided by the waterfall"""
    installment: object
    principal: Decimal
    interest: Decimal
    excess: Decimal
    paid_before: Decimal

    @property
    def is_mixed(self) -> bool:
        """True when the payment is only partly interest"""
        return self.interest > ZERO and self.interest < self.installment.amount


@dataclass(frozen=True)
class PeriodAllocation:
    """Principal and interest attributed to a date window"""
    loan_id: str
    period_start: date
    period_end: date
    principal_recovered: Decimal
    interest_collected: Decimal
    amount_paid: Decimal
    remaining_principal: Decimal


@dataclass(frozen=True)
class LoanStatement:
    """Position of a single loan at a cutoff date"""
    loan_id: str
    customer_id: str
    original_amount: Decimal
    interest_amount: Decimal
    amount_paid: Decimal
    principal_paid: Decimal
    interest_collected: Decimal
    excess_paid: Decimal
    installments_made: int
    total_installments: int
    as_of: Optional[date] = None

    @property
    def total_repayable(self) -> Decimal:
        return self.original_amount + self.interest_amount

    @property
    def principal_outstanding(self) -> Decimal:
        return self.original_amount - self.principal_paid

    @property
    def interest_outstanding(self) -> Decimal:
        return self.interest_amount - self.interest_collected

    @property
    def balance(self) -> Decimal:
        return self.principal_outstanding + self.interest_outstanding

    @property
    def is_paid_off(self) -> bool:
        return self.balance <= ZERO


def installment_sort_key(installment):
    """Waterfall order: payment date, then installment number, then insertion order"""
    return (
        installment.date,
        installment.installment_number,
        installment.created_at,
        installment.id,
    )


def _active_installments(loan, installments: Iterable) -> List:
    selected = []
    for installment in installments:
        if getattr(installment, 'deleted_at', None) is not None:
            continue
        if installment.loan_id != loan.id:
            raise DataIntegrityError(
                f"Installment {installment.id} belongs to loan {installment.loan_id}, not {loan.id}",
                entity_type="installment",
                entity_id=installment.id
            )
        selected.append(installment)
    selected.sort(key=installment_sort_key)
    return selected


def split_installments(loan, installments: Iterable) -> List[InstallmentSplit]:
    """
    Run the waterfall over every non-deleted installment of ``loan``.

    Raises:
        AllocationInvariantError: If any computed portion is negative
        DataIntegrityError: If an installment belongs to a different loan
    """
    principal_cap = loan.original_amount
    interest_cap = loan.interest_amount

    splits = []
    paid = ZERO
    for installment in _active_installments(loan, installments):
        amount = installment.amount

        if paid >= principal_cap:
            principal = ZERO
        elif paid + amount > principal_cap:
            principal = principal_cap - paid
        else:
            principal = amount

        interest_before = min(max(paid - principal_cap, ZERO), interest_cap)
        interest_after = min(max(paid + amount - principal_cap, ZERO), interest_cap)
        interest = interest_after - interest_before
        excess = amount - principal - interest

        if principal < ZERO or interest < ZERO or excess < ZERO:
            raise AllocationInvariantError(
                f"Negative allocation: principal={principal} interest={interest} excess={excess}",
                loan_id=loan.id,
                installment_id=installment.id
            )

        splits.append(InstallmentSplit(
            installment=installment,
            principal=principal,
            interest=interest,
            excess=excess,
            paid_before=paid
        ))
        paid += amount

    return splits


def allocate_splits(
    splits: Sequence[InstallmentSplit],
    cutoff: Optional[date] = None,
    before: Optional[date] = None
) -> Allocation:
    """
    Sum precomputed splits whose installment date is ``<= cutoff`` and
    strictly ``< before``; either bound may be omitted.
    """
    principal = interest = amount = excess = ZERO
    counted = 0
    for split in splits:
        day = split.installment.date
        if cutoff is not None and day > cutoff:
            continue
        if before is not None and day >= before:
            continue
        principal += split.principal
        interest += split.interest
        amount += split.installment.amount
        excess += split.excess
        counted += 1

    return Allocation(
        principal_paid=principal,
        interest_collected=interest,
        amount_paid=amount,
        excess_paid=excess,
        installments_counted=counted
    )


def allocate(loan, installments: Iterable, cutoff: Optional[date] = None,
             before: Optional[date] = None) -> Allocation:
    """
    Cumulative principal and interest collected on ``loan``.

    The waterfall always runs over the full installment history so that a
    cutoff never changes how earlier payments were split.

    Args:
        loan: Loan with ``id``, ``original_amount`` and ``interest_amount``
        installments: Installments of that loan; soft-deleted ones are ignored
        cutoff: Only count installments dated on or before this day
        before: Only count installments dated strictly before this day
    """
    return allocate_splits(split_installments(loan, installments), cutoff=cutoff, before=before)


def period_from_splits(loan, splits: Sequence[InstallmentSplit],
                       period_start: date, period_end: date) -> PeriodAllocation:
    if period_end < period_start:
        raise ValueError(f"Period end {period_end} is before start {period_start}")

    before = allocate_splits(splits, before=period_start)
    through = allocate_splits(splits, cutoff=period_end)

    return PeriodAllocation(
        loan_id=loan.id,
        period_start=period_start,
        period_end=period_end,
        principal_recovered=through.principal_paid - before.principal_paid,
        interest_collected=through.interest_collected - before.interest_collected,
        amount_paid=through.amount_paid - before.amount_paid,
        remaining_principal=loan.original_amount - through.principal_paid
    )


def allocate_period(loan, installments: Iterable, period_start: date, period_end: date) -> PeriodAllocation:
    """Principal and interest collected between two dates, both inclusive"""
    return period_from_splits(loan, split_installments(loan, installments), period_start, period_end)


def loan_statement(loan, installments: Iterable, as_of: Optional[date] = None) -> LoanStatement:
    """Build the repayment position of ``loan`` as of a day (or over all time)"""
    allocation = allocate(loan, installments, cutoff=as_of)
    return LoanStatement(
        loan_id=loan.id,
        customer_id=loan.customer_id,
        original_amount=loan.original_amount,
        interest_amount=loan.interest_amount,
        amount_paid=allocation.amount_paid,
        principal_paid=allocation.principal_paid,
        interest_collected=allocation.interest_collected,
        excess_paid=allocation.excess_paid,
        installments_made=allocation.installments_counted,
        total_installments=loan.total_installments,
        as_of=as_of
    )
