"""
Financial Summary Module

Aggregates every monetary flow of the association into all-time or
fiscal-year summaries, with paginated drill-down breakdowns per metric.

The aggregator is pure: it reads a ``SummarySnapshot`` and an injected
``today`` and never touches storage. Inputs are sorted by stable keys before
use, so the same snapshot yields the same report regardless of row order.
Inconsistent rows (installments of unknown loans, waterfall violations) are
reported as ``DataIssue`` entries and left out of the totals.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

from .allocation import InstallmentSplit, allocate_splits, period_from_splits, split_installments
from .currency import ZERO
from .exceptions import AllocationInvariantError, DataIntegrityError
from .fiscal import FiscalYear, fiscal_year_options
from .ledger_entries import (
    EXPENSE_SUBTYPES, INTEREST_CHARGE_SUBTYPE, SUBSCRIPTION_RETURN_SUBTYPE, LedgerEntryType
)
from .pagination import DEFAULT_PAGE_SIZE, Page, paginate

logger = logging.getLogger("welfare_ledger.summary")


class SummaryMetric(Enum):
    SUBSCRIPTIONS = "subscriptions"
    INTEREST = "interest"
    LATE_FEES = "late_fees"
    PRINCIPAL = "principal"
    LOANS_GIVEN = "loans_given"
    EXPENSES = "expenses"
    QUARTERLY_INTEREST = "quarterly_interest"
    TOTAL = "total"


BREAKDOWN_TITLES = {
    SummaryMetric.SUBSCRIPTIONS: "Subscriptions Collected",
    SummaryMetric.INTEREST: "Interest Collected",
    SummaryMetric.LATE_FEES: "Late Fees",
    SummaryMetric.PRINCIPAL: "Loan Recovery (Principal)",
    SummaryMetric.LOANS_GIVEN: "Total Loans Given",
    SummaryMetric.EXPENSES: "Expenses",
    SummaryMetric.QUARTERLY_INTEREST: "Quarterly Interest Charged",
    SummaryMetric.TOTAL: "Net Total",
}


@dataclass(frozen=True)
class SummarySnapshot:
    """Rows the aggregator works on; soft-deleted rows are ignored"""
    loans: Sequence[Any] = ()
    installments: Sequence[Any] = ()
    subscriptions: Sequence[Any] = ()
    ledger_entries: Sequence[Any] = ()
    interest_balances: Sequence[Any] = ()


@dataclass(frozen=True)
class DataIssue:
    """A row left out of the totals because it is inconsistent"""
    kind: str
    entity_type: str
    entity_id: Optional[str]
    message: str
    loan_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'message': self.message,
            'loan_id': self.loan_id,
        }


@dataclass
class FinancialSummary:
    scope_label: str
    fiscal_year_start: Optional[int]
    period_start: Optional[date]
    period_end: date
    subscriptions_collected: Decimal = ZERO
    interest_collected: Decimal = ZERO
    late_fees: Decimal = ZERO
    total_collected: Decimal = ZERO
    loans_given: Decimal = ZERO
    principal_recovered: Decimal = ZERO
    loan_balance: Decimal = ZERO
    subscription_return_total: Decimal = ZERO
    subscription_balance: Decimal = ZERO
    expenses_by_subtype: Dict[str, Decimal] = field(default_factory=dict)
    total_expenses: Decimal = ZERO
    quarterly_interest_charged: Decimal = ZERO
    adjusted_total_expenses: Decimal = ZERO
    net_total: Decimal = ZERO
    data_entries_net: Decimal = ZERO
    issues: List[DataIssue] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        money_fields = (
            'subscriptions_collected', 'interest_collected', 'late_fees', 'total_collected',
            'loans_given', 'principal_recovered', 'loan_balance', 'subscription_return_total',
            'subscription_balance', 'total_expenses', 'quarterly_interest_charged',
            'adjusted_total_expenses', 'net_total', 'data_entries_net',
        )
        result = {
            'scope': self.scope_label,
            'fiscal_year_start': self.fiscal_year_start,
            'period_start': self.period_start.isoformat() if self.period_start else None,
            'period_end': self.period_end.isoformat(),
        }
        result.update({name: str(getattr(self, name)) for name in money_fields})
        result['expenses_by_subtype'] = {k: str(v) for k, v in self.expenses_by_subtype.items()}
        result['issues'] = [issue.to_dict() for issue in self.issues]
        return result


@dataclass(frozen=True)
class BreakdownItem:
    id: str
    date: Optional[date]
    amount: Decimal
    source: str
    customer_id: Optional[str] = None
    reference: str = ""
    notes: Optional[str] = None
    remaining: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'id': self.id,
            'date': self.date.isoformat() if self.date else None,
            'amount': str(self.amount),
            'source': self.source,
            'customer_id': self.customer_id,
            'reference': self.reference,
            'notes': self.notes,
        }
        if self.remaining is not None:
            result['remaining'] = str(self.remaining)
        return result


@dataclass
class Breakdown:
    metric: SummaryMetric
    title: str
    scope_label: str
    total: Decimal
    page: Page[BreakdownItem]
    summary_lines: List[Tuple[str, Decimal]] = field(default_factory=list)

    @property
    def items(self) -> List[BreakdownItem]:
        return self.page.items

    def to_dict(self) -> Dict[str, Any]:
        return {
            'metric': self.metric.value,
            'title': self.title,
            'scope': self.scope_label,
            'total': str(self.total),
            'items': [item.to_dict() for item in self.page.items],
            'pagination': self.page.to_dict(),
            'summary_lines': [{'label': label, 'amount': str(amount)} for label, amount in self.summary_lines],
        }


def _item_sort_key(item: BreakdownItem):
    return (item.date or date.min, item.source, item.id)


class _Window:
    """Inclusive date window; an open start means "since the beginning" """

    def __init__(self, start: Optional[date], end: date):
        self.start = start
        self.end = end

    def __contains__(self, day: Optional[date]) -> bool:
        if day is None:
            return False
        return (self.start is None or day >= self.start) and day <= self.end


class SummaryAggregator:
    """
    Computes financial summaries and breakdowns from a snapshot

    Args:
        snapshot: Loans, installments, subscriptions, ledger entries and
            interest balances to report on
        today: Cutoff for all-time figures and anchor for FY options
        page_size: Breakdown rows per page
        fiscal_year_floor: Earliest FY offered by ``fiscal_year_options``
    """

    def __init__(
        self,
        snapshot: SummarySnapshot,
        today: date,
        page_size: int = DEFAULT_PAGE_SIZE,
        fiscal_year_floor: int = 2013
    ):
        self.today = today
        self.page_size = page_size
        self.fiscal_year_floor = fiscal_year_floor
        self.issues: List[DataIssue] = []

        def active(rows):
            return [r for r in rows if getattr(r, 'deleted_at', None) is None]

        self.loans = sorted(active(snapshot.loans), key=lambda loan: (loan.payment_date, loan.id))
        self.subscriptions = sorted(active(snapshot.subscriptions), key=lambda s: (s.date, s.id))
        self.entries = sorted(active(snapshot.ledger_entries), key=lambda e: (e.date, e.id))
        self.balances = sorted(snapshot.interest_balances, key=lambda b: b.customer_id)

        self._loans_by_id = {loan.id: loan for loan in self.loans}
        installments_by_loan: Dict[str, List[Any]] = {loan.id: [] for loan in self.loans}
        for installment in sorted(active(snapshot.installments), key=lambda i: i.id):
            if installment.loan_id not in installments_by_loan:
                self.issues.append(DataIssue(
                    kind="orphan_installment",
                    entity_type="installment",
                    entity_id=installment.id,
                    message=f"Installment references unknown or deleted loan {installment.loan_id}",
                    loan_id=installment.loan_id
                ))
                continue
            installments_by_loan[installment.loan_id].append(installment)

        # Waterfall splits per loan; loans that violate the waterfall are excluded
        self._splits: Dict[str, List[InstallmentSplit]] = {}
        for loan in self.loans:
            try:
                self._splits[loan.id] = split_installments(loan, installments_by_loan[loan.id])
            except (AllocationInvariantError, DataIntegrityError) as e:
                logger.warning(f"Excluding loan {loan.id} from summary: {e}")
                self.issues.append(DataIssue(
                    kind="allocation_invariant",
                    entity_type="loan",
                    entity_id=getattr(e, 'installment_id', None) or loan.id,
                    message=str(e),
                    loan_id=loan.id
                ))

    # Scope

    def _scope(self, fiscal_year_start: Optional[int]) -> Tuple[_Window, str]:
        if fiscal_year_start is None:
            return _Window(None, self.today), "All time"
        fiscal_year = FiscalYear(fiscal_year_start)
        return _Window(fiscal_year.start, fiscal_year.end), f"FY {fiscal_year.label}"

    def fiscal_year_options(self) -> List[int]:
        dates = [loan.payment_date for loan in self.loans]
        dates += [s.date for s in self.subscriptions]
        dates += [e.date for e in self.entries]
        for splits in self._splits.values():
            dates += [split.installment.date for split in splits]
        return fiscal_year_options(dates, self.today, floor=self.fiscal_year_floor)

    # Row selection

    def _subscription_items(self, window: _Window) -> List[BreakdownItem]:
        return [
            BreakdownItem(
                id=s.id, date=s.date, amount=s.amount, source="Subscription",
                customer_id=s.customer_id, reference=s.receipt_number
            )
            for s in self.subscriptions if s.date in window
        ]

    def _installment_splits(self, window: _Window):
        for loan in self.loans:
            for split in self._splits.get(loan.id, []):
                if split.installment.date in window:
                    yield loan, split

    def _interest_items(self, window: _Window) -> List[BreakdownItem]:
        items = []
        for loan, split in self._installment_splits(window):
            if split.interest <= ZERO:
                continue
            installment = split.installment
            notes = f"Part of {installment.amount} payment" if split.interest < installment.amount else None
            items.append(BreakdownItem(
                id=installment.id, date=installment.date, amount=split.interest,
                source="Installment (Interest Portion)", customer_id=loan.customer_id,
                reference=installment.receipt_number, notes=notes
            ))
        return items

    def _late_fee_items(self, window: _Window) -> List[BreakdownItem]:
        items = []
        for loan, split in self._installment_splits(window):
            installment = split.installment
            if installment.late_fee_amount > ZERO:
                items.append(BreakdownItem(
                    id=installment.id, date=installment.date, amount=installment.late_fee_amount,
                    source="Installment Late Fee", customer_id=loan.customer_id,
                    reference=installment.receipt_number
                ))
        for s in self.subscriptions:
            if s.date in window and s.late_fee_amount > ZERO:
                items.append(BreakdownItem(
                    id=s.id, date=s.date, amount=s.late_fee_amount,
                    source="Subscription Late Fee", customer_id=s.customer_id,
                    reference=s.receipt_number
                ))
        return items

    def _loan_items(self, window: _Window) -> List[BreakdownItem]:
        return [
            BreakdownItem(
                id=loan.id, date=loan.payment_date, amount=loan.original_amount,
                source="Loan", customer_id=loan.customer_id,
                reference=loan.check_number or ""
            )
            for loan in self.loans if loan.payment_date in window
        ]

    def _principal_rows(self, window: _Window) -> List[BreakdownItem]:
        rows = []
        for loan in self.loans:
            splits = self._splits.get(loan.id)
            if splits is None:
                continue
            if window.start is None:
                through = allocate_splits(splits, cutoff=window.end)
                recovered = through.principal_paid
                remaining = loan.original_amount - through.principal_paid
            else:
                period = period_from_splits(loan, splits, window.start, window.end)
                recovered = period.principal_recovered
                remaining = period.remaining_principal
            if recovered <= ZERO:
                continue

            latest = max(
                (s.installment.date for s in splits if s.installment.date in window and s.principal > ZERO),
                default=None
            )
            rows.append(BreakdownItem(
                id=loan.id, date=latest, amount=recovered, source="Loan Principal",
                customer_id=loan.customer_id, reference=loan.check_number or "",
                notes=f"Loan of {loan.original_amount}", remaining=remaining
            ))
        return rows

    def _expense_items(self, window: _Window) -> List[BreakdownItem]:
        return [
            BreakdownItem(
                id=e.id, date=e.date, amount=e.amount, source=e.subtype,
                customer_id=e.customer_id, reference=e.receipt_number, notes=e.notes or None
            )
            for e in self.entries if e.date in window and e.is_reported_expense
        ]

    def _quarterly_interest_items(self, window: _Window) -> List[BreakdownItem]:
        if window.start is None:
            return [
                BreakdownItem(
                    id=b.customer_id, date=b.last_applied_quarter, amount=b.total_interest_charged,
                    source="Quarterly Interest Balance", customer_id=b.customer_id
                )
                for b in self.balances if b.total_interest_charged != ZERO
            ]
        return [
            BreakdownItem(
                id=e.id, date=e.date, amount=e.amount, source=INTEREST_CHARGE_SUBTYPE,
                customer_id=e.customer_id, reference=e.receipt_number, notes=e.notes or None
            )
            for e in self.entries
            if e.date in window and e.is_interest_charge
        ]

    def _net_total_items(self, window: _Window) -> List[BreakdownItem]:
        def negated(items):
            return [
                BreakdownItem(
                    id=i.id, date=i.date, amount=-i.amount, source=i.source,
                    customer_id=i.customer_id, reference=i.reference, notes=i.notes
                )
                for i in items
            ]

        return (
            self._subscription_items(window)
            + self._interest_items(window)
            + self._late_fee_items(window)
            + negated(self._expense_items(window))
            + negated(self._quarterly_interest_items(window))
        )

    def _items(self, metric: SummaryMetric, window: _Window) -> List[BreakdownItem]:
        builders = {
            SummaryMetric.SUBSCRIPTIONS: self._subscription_items,
            SummaryMetric.INTEREST: self._interest_items,
            SummaryMetric.LATE_FEES: self._late_fee_items,
            SummaryMetric.PRINCIPAL: self._principal_rows,
            SummaryMetric.LOANS_GIVEN: self._loan_items,
            SummaryMetric.EXPENSES: self._expense_items,
            SummaryMetric.QUARTERLY_INTEREST: self._quarterly_interest_items,
            SummaryMetric.TOTAL: self._net_total_items,
        }
        return sorted(builders[metric](window), key=_item_sort_key)

    # Reports

    def summarize(self, fiscal_year_start: Optional[int] = None) -> FinancialSummary:
        """All-time summary (cut off at today) or the summary of one fiscal year"""
        window, label = self._scope(fiscal_year_start)

        def total(items):
            return sum((i.amount for i in items), ZERO)

        summary = FinancialSummary(
            scope_label=label,
            fiscal_year_start=fiscal_year_start,
            period_start=window.start,
            period_end=window.end,
            issues=list(self.issues)
        )

        summary.subscriptions_collected = total(self._subscription_items(window))
        summary.interest_collected = total(self._interest_items(window))
        summary.late_fees = total(self._late_fee_items(window))
        summary.total_collected = summary.subscriptions_collected + summary.interest_collected + summary.late_fees

        summary.loans_given = total(self._loan_items(window))
        summary.principal_recovered = total(self._principal_rows(window))
        summary.loan_balance = summary.loans_given - summary.principal_recovered

        by_subtype = {subtype: ZERO for subtype in EXPENSE_SUBTYPES}
        for item in self._expense_items(window):
            by_subtype[item.source] += item.amount
        summary.expenses_by_subtype = by_subtype
        summary.total_expenses = sum(by_subtype.values(), ZERO)
        summary.subscription_return_total = by_subtype[SUBSCRIPTION_RETURN_SUBTYPE]
        summary.subscription_balance = summary.subscriptions_collected - summary.subscription_return_total

        summary.quarterly_interest_charged = total(self._quarterly_interest_items(window))
        summary.adjusted_total_expenses = summary.total_expenses + summary.quarterly_interest_charged
        summary.net_total = summary.total_collected - summary.adjusted_total_expenses

        data_net = ZERO
        for e in self.entries:
            if e.date in window:
                data_net += -e.amount if e.entry_type == LedgerEntryType.EXPENSE else e.amount
        summary.data_entries_net = data_net

        return summary

    def breakdown(
        self,
        metric,
        fiscal_year_start: Optional[int] = None,
        page: Optional[int] = None
    ) -> Breakdown:
        """
        Rows behind one summary figure, one page at a time

        The total covers every row across all pages and equals the matching
        summary figure. The principal breakdown also carries summary lines
        for loans given, principal recovered and the outstanding balance.
        """
        metric = SummaryMetric(metric)
        window, label = self._scope(fiscal_year_start)
        items = self._items(metric, window)

        summary_lines: List[Tuple[str, Decimal]] = []
        total = sum((i.amount for i in items), ZERO)
        if metric == SummaryMetric.PRINCIPAL:
            loans_given = sum((i.amount for i in self._loan_items(window)), ZERO)
            summary_lines = [
                ("Total Loans Given", loans_given),
                ("Loan Recovery (Principal)", total),
                ("Balance", loans_given - total),
            ]

        return Breakdown(
            metric=metric,
            title=BREAKDOWN_TITLES[metric],
            scope_label=label,
            total=total,
            page=paginate(items, page or 1, self.page_size),
            summary_lines=summary_lines
        )
