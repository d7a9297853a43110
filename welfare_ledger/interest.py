"""
Quarterly Interest Module

Charges each member a quarterly interest on their cumulative subscriptions and
keeps a running per-customer balance of interest charged.

Guarantees:
- at most one application per customer per fiscal quarter, enforced by the
  primary key of the interest ledger row (insert-if-absent);
- the ledger row, the balance update and the visible "Interest Charge" entry
  are written in one storage transaction;
- soft-deleting an Interest Charge entry deducts it from the balance (floored
  at zero) in the same transaction as the delete, and restoring it adds the
  amount back. A reversed quarter is not re-opened for application.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, date, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union
import logging

from .allocation import loan_statement
from .audit import AuditTrail, AuditEventType
from .config import get_config
from .currency import ZERO, Currency, decimal_to_json, format_amount, quantize_amount, to_decimal
from .customers import CustomerManager
from .events import EventDispatcher, EventPayload, DomainEvent
from .exceptions import (
    AllocationInvariantError, DataIntegrityError, EntityNotFoundError, InterestSanityError
)
from .fiscal import FiscalQuarter
from .ledger_entries import LedgerEntryManager, LedgerEntryType, INTEREST_CHARGE_SUBTYPE
from .loans import LoanManager
from .logging_config import log_action
from .storage import StorageInterface, StorageRecord, parse_datetime, parse_date
from .subscriptions import SubscriptionManager

logger = logging.getLogger("welfare_ledger.interest")

DEFAULT_INTEREST_RATE_PCT = Decimal('3.0')
DEFAULT_SANITY_CAP = Decimal('1000000')

REASON_NO_SUBSCRIPTIONS = "No subscriptions"
REASON_ALREADY_APPLIED = "Interest already applied"
REASON_CONCURRENT = "Concurrent execution detected - already applied"
REASON_CUSTOMER_MISSING = "Customer not found or deleted"


@dataclass
class CustomerInterestBalance(StorageRecord):
    """Running interest charged to one customer; the record id is the customer id"""
    customer_id: str
    total_interest_charged: Decimal = ZERO
    last_applied_quarter: Optional[date] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CustomerInterestBalance':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            customer_id=data['customer_id'],
            total_interest_charged=Decimal(data['total_interest_charged']),
            last_applied_quarter=parse_date(data.get('last_applied_quarter'))
        )


@dataclass
class InterestLedgerEntry(StorageRecord):
    """Append-only record of one quarterly application"""
    customer_id: str
    subscription_total_used: Decimal
    interest_rate_pct: Decimal
    interest_amount: Decimal
    period_start: date
    period_end: date
    applied_at: datetime
    ledger_entry_id: Optional[str] = None

    @staticmethod
    def make_id(customer_id: str, period_start: date) -> str:
        return f"{customer_id}:{period_start.isoformat()}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InterestLedgerEntry':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            customer_id=data['customer_id'],
            subscription_total_used=Decimal(data['subscription_total_used']),
            interest_rate_pct=Decimal(data['interest_rate_pct']),
            interest_amount=Decimal(data['interest_amount']),
            period_start=parse_date(data['period_start']),
            period_end=parse_date(data['period_end']),
            applied_at=parse_datetime(data['applied_at']),
            ledger_entry_id=data.get('ledger_entry_id')
        )


@dataclass(frozen=True)
class Applied:
    entry: InterestLedgerEntry
    balance: CustomerInterestBalance
    previous_total: Decimal


@dataclass(frozen=True)
class AlreadyApplied:
    customer_id: str
    period_start: date


ApplicationOutcome = Union[Applied, AlreadyApplied]


class ApplicationStatus(Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    ERROR = "error"


class ErrorKind(Enum):
    DATA = "data"
    INVARIANT = "invariant"
    SANITY = "sanity"
    UNEXPECTED = "unexpected"


@dataclass
class InterestApplicationResult:
    """Outcome of applying interest to one customer for one quarter"""
    customer_id: str
    status: ApplicationStatus
    period_start: date
    period_end: date
    reason: Optional[str] = None
    interest_amount: Optional[Decimal] = None
    subscription_total: Optional[Decimal] = None
    interest_rate_pct: Optional[Decimal] = None
    previous_total_interest: Optional[Decimal] = None
    new_total_interest: Optional[Decimal] = None
    ledger_entry_id: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def applied(self) -> bool:
        return self.status == ApplicationStatus.APPLIED

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable form; optional fields are omitted when unset"""
        result = {
            'applied': self.applied,
            'status': self.status.value,
            'customer_id': self.customer_id,
            'period_start': self.period_start.isoformat(),
            'period_end': self.period_end.isoformat(),
        }
        optional = {
            'reason': self.reason,
            'interest_amount': self.interest_amount,
            'subscription_total': self.subscription_total,
            'interest_rate_pct': self.interest_rate_pct,
            'previous_total_interest': self.previous_total_interest,
            'new_total_interest': self.new_total_interest,
            'ledger_entry_id': self.ledger_entry_id,
            'error': self.error,
            'error_kind': self.error_kind.value if self.error_kind else None,
        }
        for key, value in optional.items():
            if value is not None:
                result[key] = decimal_to_json(value)
        return result


@dataclass
class BatchResult:
    """Aggregate outcome of a quarterly run"""
    quarter: FiscalQuarter
    started_at: datetime
    finished_at: Optional[datetime] = None
    results: List[InterestApplicationResult] = field(default_factory=list)

    @property
    def fiscal_year_label(self) -> str:
        return self.quarter.fiscal_year.label

    @property
    def applied_count(self) -> int:
        return sum(1 for r in self.results if r.status == ApplicationStatus.APPLIED)

    @property
    def skipped_count(self) -> int:
        return sum(1 for r in self.results if r.status == ApplicationStatus.SKIPPED)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if r.status == ApplicationStatus.ERROR)

    @property
    def data_error_count(self) -> int:
        return sum(1 for r in self.results if r.error_kind == ErrorKind.DATA)

    @property
    def total_interest(self) -> Decimal:
        return sum((r.interest_amount for r in self.results if r.applied), ZERO)

    def is_successful(self, max_failures: int = 0) -> bool:
        return self.failed_count <= max_failures

    def summary_message(self, currency: Optional[Currency] = None) -> str:
        """One-line outcome; amounts use the configured currency unless one is given"""
        currency = currency or Currency.from_code(get_config().currency_code)

        return (
            f"Quarterly interest {self.quarter.label}: "
            f"{self.applied_count} applied, {self.skipped_count} skipped, "
            f"{self.failed_count} failed; total {format_amount(self.total_interest, currency)}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'quarter': self.quarter.label,
            'fiscal_year': self.fiscal_year_label,
            'period_start': self.quarter.start.isoformat(),
            'period_end': self.quarter.end.isoformat(),
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'success_count': self.applied_count,
            'skipped_count': self.skipped_count,
            'error_count': self.failed_count,
            'data_error_count': self.data_error_count,
            'total_interest': str(self.total_interest),
            'details': [r.to_dict() for r in self.results],
        }


@dataclass(frozen=True)
class CustomerInterestPosition:
    """What a customer has been charged and what their loans have yielded"""
    customer_id: str
    subscription_total: Decimal
    total_interest_charged: Decimal
    last_applied_quarter: Optional[date]
    loan_interest_collected: Decimal
    principal_outstanding: Decimal
    ledger: List[InterestLedgerEntry]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'customer_id': self.customer_id,
            'subscription_total': str(self.subscription_total),
            'total_interest_charged': str(self.total_interest_charged),
            'last_applied_quarter': self.last_applied_quarter.isoformat() if self.last_applied_quarter else None,
            'loan_interest_collected': str(self.loan_interest_collected),
            'principal_outstanding': str(self.principal_outstanding),
            'ledger': [
                {
                    'period_start': e.period_start.isoformat(),
                    'period_end': e.period_end.isoformat(),
                    'subscription_total_used': str(e.subscription_total_used),
                    'interest_rate_pct': str(e.interest_rate_pct),
                    'interest_amount': str(e.interest_amount),
                    'applied_at': e.applied_at.isoformat(),
                    'ledger_entry_id': e.ledger_entry_id,
                }
                for e in self.ledger
            ],
        }


class QuarterlyInterestService:
    """
    Applies quarterly interest and keeps per-customer balances consistent
    with the visible Interest Charge entries
    """

    def __init__(
        self,
        storage: StorageInterface,
        customer_manager: CustomerManager,
        subscription_manager: SubscriptionManager,
        entry_manager: LedgerEntryManager,
        dispatcher: EventDispatcher,
        audit_trail: Optional[AuditTrail] = None,
        loan_manager: Optional[LoanManager] = None,
        interest_rate_pct: Optional[Decimal] = None,
        sanity_cap: Optional[Decimal] = None,
        post_ledger_entry: Optional[bool] = None
    ):
        settings = get_config()
        self.storage = storage
        self.customer_manager = customer_manager
        self.subscription_manager = subscription_manager
        self.entry_manager = entry_manager
        self.dispatcher = dispatcher
        self.audit_trail = audit_trail
        self.loan_manager = loan_manager

        self.interest_rate_pct = to_decimal(
            interest_rate_pct if interest_rate_pct is not None else settings.interest_rate_pct
        )
        self.sanity_cap = to_decimal(sanity_cap if sanity_cap is not None else settings.interest_sanity_cap)
        self.post_ledger_entry = (
            settings.post_interest_ledger_entry if post_ledger_entry is None else post_ledger_entry
        )
        self.default_max_workers = settings.batch_max_workers

        self.balances_table = "customer_interest"
        self.ledger_table = "interest_ledger"

        dispatcher.subscribe(DomainEvent.INTEREST_CHARGE_REVERSED, self.handle_interest_charge_reversed)
        dispatcher.subscribe(DomainEvent.INTEREST_CHARGE_RESTORED, self.handle_interest_charge_restored)

    # Application

    def apply_quarterly_interest(
        self,
        customer_id: str,
        period_start: date,
        period_end: date
    ) -> InterestApplicationResult:
        """
        Apply interest for one customer and one quarter

        Business skips (no subscriptions, already applied) and errors (missing
        customer, sanity cap, storage failures) are returned as results; one
        customer's failure never propagates to the caller.
        """
        result = InterestApplicationResult(
            customer_id=customer_id,
            status=ApplicationStatus.SKIPPED,
            period_start=period_start,
            period_end=period_end
        )

        try:
            customer = self.customer_manager.get_customer(customer_id)
            if customer is None or not customer.is_active:
                raise DataIntegrityError(REASON_CUSTOMER_MISSING, entity_type="customer", entity_id=customer_id)

            count, basis = self.subscription_manager.subscription_total(customer_id, up_to=period_end)
            result.subscription_total = basis
            if count == 0 or basis <= ZERO:
                result.reason = REASON_NO_SUBSCRIPTIONS
                return self._finish(result)

            entry_id = InterestLedgerEntry.make_id(customer_id, period_start)
            if self.storage.exists(self.ledger_table, entry_id):
                result.reason = REASON_ALREADY_APPLIED
                return self._finish(result)

            interest = quantize_amount(basis * self.interest_rate_pct / Decimal('100'))
            result.interest_rate_pct = self.interest_rate_pct
            result.interest_amount = interest
            if interest > self.sanity_cap:
                raise InterestSanityError(
                    f"Interest {interest} exceeds sanity cap {self.sanity_cap} for customer {customer_id}"
                )

            outcome = self._record_application(customer_id, period_start, period_end, basis, interest)
            if isinstance(outcome, AlreadyApplied):
                result.interest_amount = None
                result.reason = REASON_CONCURRENT
                return self._finish(result)

            result.status = ApplicationStatus.APPLIED
            result.previous_total_interest = outcome.previous_total
            result.new_total_interest = outcome.balance.total_interest_charged
            result.ledger_entry_id = outcome.entry.ledger_entry_id
            if outcome.entry.ledger_entry_id:
                self.entry_manager.record_created(self.entry_manager.get_entry(outcome.entry.ledger_entry_id))
            self.dispatcher.publish(EventPayload(
                event_type=DomainEvent.INTEREST_APPLIED,
                entity_type="customer",
                entity_id=customer_id,
                data=result.to_dict()
            ))
            return self._finish(result)

        except (DataIntegrityError, EntityNotFoundError) as e:
            return self._finish(self._error(result, str(e), ErrorKind.DATA))
        except InterestSanityError as e:
            return self._finish(self._error(result, str(e), ErrorKind.SANITY))
        except AllocationInvariantError as e:
            return self._finish(self._error(result, str(e), ErrorKind.INVARIANT))
        except Exception as e:
            logger.exception(f"Unexpected failure applying interest for customer {customer_id}")
            return self._finish(self._error(result, str(e), ErrorKind.UNEXPECTED))

    def apply_quarterly_interest_for_customer(
        self,
        customer_id: str,
        as_of: Optional[date] = None
    ) -> InterestApplicationResult:
        """Apply interest for the fiscal quarter containing ``as_of`` (default today)"""
        quarter = FiscalQuarter.for_date(as_of or date.today())
        return self.apply_quarterly_interest(customer_id, quarter.start, quarter.end)

    def run_quarterly_batch(
        self,
        customer_ids: Optional[Sequence[str]] = None,
        as_of: Optional[date] = None,
        max_workers: Optional[int] = None
    ) -> BatchResult:
        """
        Apply the current quarter's interest to every active customer

        Args:
            customer_ids: Restrict the run to these customers
            as_of: Day whose fiscal quarter is charged (default today)
            max_workers: Thread pool size; 1 runs sequentially

        Returns:
            BatchResult with one entry per customer in input order
        """
        quarter = FiscalQuarter.for_date(as_of or date.today())
        if customer_ids is None:
            customer_ids = self.customer_manager.list_active_customer_ids()
        customer_ids = list(customer_ids)
        workers = max_workers if max_workers is not None else self.default_max_workers

        batch = BatchResult(quarter=quarter, started_at=datetime.now(timezone.utc))
        log_action(
            logger, "info", f"Starting quarterly interest run for {quarter.label}",
            action="interest_batch", resource="interest_ledger",
            extra={"customers": len(customer_ids), "workers": workers}
        )

        if workers and workers > 1 and len(customer_ids) > 1:
            results: Dict[str, InterestApplicationResult] = {}
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {
                    executor.submit(self.apply_quarterly_interest, cid, quarter.start, quarter.end): cid
                    for cid in customer_ids
                }
                for future in as_completed(futures):
                    results[futures[future]] = future.result()
            batch.results = [results[cid] for cid in customer_ids]
        else:
            batch.results = [
                self.apply_quarterly_interest(cid, quarter.start, quarter.end)
                for cid in customer_ids
            ]

        batch.finished_at = datetime.now(timezone.utc)

        log_action(
            logger, "info" if batch.is_successful() else "warning", batch.summary_message(),
            action="interest_batch", resource="interest_ledger",
            extra={
                "success_count": batch.applied_count,
                "skipped_count": batch.skipped_count,
                "error_count": batch.failed_count,
                "fiscal_year": batch.fiscal_year_label,
            }
        )
        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=AuditEventType.INTEREST_BATCH_COMPLETED,
                entity_type="interest_batch",
                entity_id=quarter.start.isoformat(),
                metadata={
                    "quarter": quarter.label,
                    "success_count": batch.applied_count,
                    "skipped_count": batch.skipped_count,
                    "error_count": batch.failed_count,
                    "total_interest": batch.total_interest,
                }
            )
        self.dispatcher.publish(EventPayload(
            event_type=DomainEvent.INTEREST_BATCH_COMPLETED,
            entity_type="interest_batch",
            entity_id=quarter.start.isoformat(),
            data={
                "quarter": quarter.label,
                "success_count": batch.applied_count,
                "skipped_count": batch.skipped_count,
                "error_count": batch.failed_count,
            }
        ))
        return batch

    def _record_application(
        self,
        customer_id: str,
        period_start: date,
        period_end: date,
        basis: Decimal,
        interest: Decimal
    ) -> ApplicationOutcome:
        now = datetime.now(timezone.utc)
        entry = InterestLedgerEntry(
            id=InterestLedgerEntry.make_id(customer_id, period_start),
            created_at=now,
            updated_at=now,
            customer_id=customer_id,
            subscription_total_used=basis,
            interest_rate_pct=self.interest_rate_pct,
            interest_amount=interest,
            period_start=period_start,
            period_end=period_end,
            applied_at=now
        )

        with self.storage.atomic():
            charge = None
            if self.post_ledger_entry:
                charge = self.entry_manager.build_entry(
                    entry_date=period_start,
                    amount=interest,
                    entry_type=LedgerEntryType.EXPENSE,
                    customer_id=customer_id,
                    subtype=INTEREST_CHARGE_SUBTYPE,
                    notes=f"Quarterly interest {FiscalQuarter.for_date(period_start).label}"
                )
                entry.ledger_entry_id = charge.id

            if not self.storage.insert_if_absent(self.ledger_table, entry.id, entry.to_dict()):
                return AlreadyApplied(customer_id=customer_id, period_start=period_start)

            balance = self.get_balance(customer_id)
            if balance is None:
                balance = CustomerInterestBalance(
                    id=customer_id,
                    created_at=now,
                    updated_at=now,
                    customer_id=customer_id
                )
            previous_total = balance.total_interest_charged
            balance.total_interest_charged = previous_total + interest
            balance.last_applied_quarter = period_start
            balance.updated_at = now
            self.storage.save(self.balances_table, balance.id, balance.to_dict())

            if charge is not None:
                self.entry_manager.save_entry(charge)

        return Applied(entry=entry, balance=balance, previous_total=previous_total)

    def _error(self, result: InterestApplicationResult, message: str, kind: ErrorKind) -> InterestApplicationResult:
        result.status = ApplicationStatus.ERROR
        result.error = message
        result.error_kind = kind
        result.reason = None
        return result

    def _finish(self, result: InterestApplicationResult) -> InterestApplicationResult:
        """Log and audit a result once its transaction is over"""
        if result.status == ApplicationStatus.APPLIED:
            level, audit_type, message = "info", AuditEventType.INTEREST_APPLIED, (
                f"Applied interest {result.interest_amount} to customer {result.customer_id}"
            )
        elif result.status == ApplicationStatus.SKIPPED:
            level, audit_type, message = "info", AuditEventType.INTEREST_SKIPPED, (
                f"Skipped customer {result.customer_id}: {result.reason}"
            )
        else:
            level, audit_type, message = "error", AuditEventType.INTEREST_FAILED, (
                f"Interest failed for customer {result.customer_id}: {result.error}"
            )

        log_action(
            logger, level, message,
            customer_id=result.customer_id, action="apply_interest", resource="interest_ledger",
            extra={"period_start": result.period_start.isoformat(), "status": result.status.value}
        )
        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=audit_type,
                entity_type="customer",
                entity_id=result.customer_id,
                metadata=result.to_dict()
            )
        return result

    # Compensation

    def handle_interest_charge_reversed(self, event: EventPayload) -> None:
        """
        Deduct a trashed Interest Charge from the customer's balance, never below zero

        The amount actually deducted is stored on the entry so that a later
        restore puts back exactly that much.
        """
        customer_id = event.data['customer_id']
        amount = to_decimal(event.data['amount'])

        deducted = ZERO
        balance = self.get_balance(customer_id)
        if balance is None:
            logger.warning(f"No interest balance for customer {customer_id}; reversal of {amount} ignored")
        else:
            deducted = min(amount, max(ZERO, balance.total_interest_charged))
            balance.total_interest_charged = balance.total_interest_charged - deducted
            balance.updated_at = datetime.now(timezone.utc)
            self.storage.save(self.balances_table, balance.id, balance.to_dict())

        self._mark_reversed(event.data['ledger_entry_id'], deducted)

    def handle_interest_charge_restored(self, event: EventPayload) -> None:
        """Add back what the reversal of a restored Interest Charge deducted"""
        customer_id = event.data['customer_id']
        amount = to_decimal(event.data.get('reversed_amount'))
        now = datetime.now(timezone.utc)

        if amount > ZERO:
            balance = self.get_balance(customer_id)
            if balance is None:
                balance = CustomerInterestBalance(id=customer_id, created_at=now, updated_at=now, customer_id=customer_id)
            balance.total_interest_charged = balance.total_interest_charged + amount
            balance.updated_at = now
            self.storage.save(self.balances_table, balance.id, balance.to_dict())

        self._mark_reversed(event.data['ledger_entry_id'], None)

    def _mark_reversed(self, entry_id: str, amount: Optional[Decimal]) -> None:
        entry = self.entry_manager.get_entry(entry_id)
        if entry is None:
            raise EntityNotFoundError(f"Ledger entry {entry_id} not found")
        entry.reversed_amount = amount
        self.entry_manager.save_entry(entry)

    # Queries

    def get_balance(self, customer_id: str) -> Optional[CustomerInterestBalance]:
        data = self.storage.load(self.balances_table, customer_id)
        return CustomerInterestBalance.from_dict(data) if data else None

    def list_balances(self) -> List[CustomerInterestBalance]:
        balances = [CustomerInterestBalance.from_dict(d) for d in self.storage.load_all(self.balances_table)]
        balances.sort(key=lambda b: b.customer_id)
        return balances

    def get_ledger_entries(self, customer_id: str) -> List[InterestLedgerEntry]:
        """Interest applications for a customer ordered by period"""
        entries = [
            InterestLedgerEntry.from_dict(d)
            for d in self.storage.find(self.ledger_table, {"customer_id": customer_id})
        ]
        entries.sort(key=lambda e: e.period_start)
        return entries

    def total_interest_charged(self) -> Decimal:
        return sum((b.total_interest_charged for b in self.list_balances()), ZERO)

    def customer_position(self, customer_id: str, as_of: Optional[date] = None) -> CustomerInterestPosition:
        """
        Interest charged to a customer alongside the interest their loans
        have produced so far

        Raises:
            EntityNotFoundError: If the customer does not exist
        """
        if self.customer_manager.get_customer(customer_id) is None:
            raise EntityNotFoundError(f"Customer {customer_id} not found")

        _, subscription_total = self.subscription_manager.subscription_total(customer_id, up_to=as_of)
        balance = self.get_balance(customer_id)

        loan_interest = principal_outstanding = ZERO
        if self.loan_manager is not None:
            for loan in self.loan_manager.list_loans(customer_id=customer_id):
                statement = loan_statement(loan, self.loan_manager.get_installments(loan.id), as_of=as_of)
                loan_interest += statement.interest_collected
                principal_outstanding += statement.principal_outstanding

        return CustomerInterestPosition(
            customer_id=customer_id,
            subscription_total=subscription_total,
            total_interest_charged=balance.total_interest_charged if balance else ZERO,
            last_applied_quarter=balance.last_applied_quarter if balance else None,
            loan_interest_collected=loan_interest,
            principal_outstanding=principal_outstanding,
            ledger=self.get_ledger_entries(customer_id)
        )
