"""
Loan Book Module

Loans carry a principal and a flat interest amount fixed at disbursement.
Installments are plain payments against a loan; how much of each payment is
principal or interest is decided by the allocation waterfall, never stored.
"""

from datetime import datetime, date, timezone
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Any, List, Optional
import uuid

from .currency import ZERO, to_decimal
from .storage import StorageInterface, StorageRecord, parse_datetime, parse_date
from .audit import AuditTrail, AuditEventType
from .events import EventDispatcher, EventPayload, DomainEvent
from .exceptions import DataIntegrityError, EntityNotFoundError, ValidationError
from .allocation import LoanStatement, loan_statement


@dataclass
class Loan(StorageRecord):
    """A loan disbursed to a customer"""
    customer_id: str
    original_amount: Decimal
    interest_amount: Decimal
    payment_date: date
    total_installments: int
    check_number: Optional[str] = None
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None

    def __post_init__(self):
        self.original_amount = to_decimal(self.original_amount)
        self.interest_amount = to_decimal(self.interest_amount)
        if self.original_amount < ZERO:
            raise ValidationError("Loan amount cannot be negative")
        if self.interest_amount < ZERO:
            raise ValidationError("Loan interest amount cannot be negative")
        if self.total_installments < 1:
            raise ValidationError("A loan needs at least one installment")

    @property
    def total_repayable(self) -> Decimal:
        return self.original_amount + self.interest_amount

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            customer_id=data['customer_id'],
            original_amount=Decimal(data['original_amount']),
            interest_amount=Decimal(data['interest_amount']),
            payment_date=parse_date(data['payment_date']),
            total_installments=int(data['total_installments']),
            check_number=data.get('check_number'),
            deleted_at=parse_datetime(data.get('deleted_at')),
            deleted_by=data.get('deleted_by')
        )


@dataclass
class Installment(StorageRecord):
    """A repayment made against a loan"""
    loan_id: str
    installment_number: int
    amount: Decimal
    date: date
    late_fee: Optional[Decimal] = None
    receipt_number: str = ""
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None

    def __post_init__(self):
        self.amount = to_decimal(self.amount)
        if self.late_fee is not None:
            self.late_fee = to_decimal(self.late_fee)
            if self.late_fee < ZERO:
                raise ValidationError("Late fee cannot be negative")
        if self.amount <= ZERO:
            raise ValidationError("Installment amount must be positive")
        if self.installment_number < 1:
            raise ValidationError("Installment number must be at least 1")

    @property
    def late_fee_amount(self) -> Decimal:
        return self.late_fee if self.late_fee is not None else ZERO

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Installment':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            loan_id=data['loan_id'],
            installment_number=int(data['installment_number']),
            amount=Decimal(data['amount']),
            date=parse_date(data['date']),
            late_fee=Decimal(data['late_fee']) if data.get('late_fee') is not None else None,
            receipt_number=data.get('receipt_number', ""),
            deleted_at=parse_datetime(data.get('deleted_at')),
            deleted_by=data.get('deleted_by')
        )


class LoanManager:
    """
    Manages loans and their installments
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: Optional[AuditTrail] = None,
        dispatcher: Optional[EventDispatcher] = None
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.dispatcher = dispatcher

        self.loans_table = "loans"
        self.installments_table = "installments"

    def create_loan(
        self,
        customer_id: str,
        original_amount: Decimal,
        interest_amount: Decimal,
        payment_date: date,
        total_installments: int,
        check_number: Optional[str] = None
    ) -> Loan:
        """
        Record a disbursed loan

        Args:
            customer_id: Borrower
            original_amount: Principal handed out
            interest_amount: Flat interest due over the life of the loan
            payment_date: Disbursement date
            total_installments: Planned number of repayments

        Returns:
            Created Loan object
        """
        now = datetime.now(timezone.utc)
        loan = Loan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            customer_id=customer_id,
            original_amount=original_amount,
            interest_amount=interest_amount,
            payment_date=payment_date,
            total_installments=total_installments,
            check_number=check_number
        )
        self.storage.save(self.loans_table, loan.id, loan.to_dict())

        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_CREATED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "customer_id": customer_id,
                    "original_amount": loan.original_amount,
                    "interest_amount": loan.interest_amount,
                    "payment_date": payment_date
                }
            )
        if self.dispatcher:
            self.dispatcher.publish(EventPayload(
                event_type=DomainEvent.LOAN_CREATED,
                entity_type="loan",
                entity_id=loan.id,
                data={"customer_id": customer_id, "original_amount": str(loan.original_amount)}
            ))

        return loan

    def record_installment(
        self,
        loan_id: str,
        amount: Decimal,
        payment_date: date,
        installment_number: Optional[int] = None,
        late_fee: Optional[Decimal] = None,
        receipt_number: str = ""
    ) -> Installment:
        """
        Record a repayment against a loan

        The installment number defaults to the next free number for the loan.

        Raises:
            DataIntegrityError: If the loan is missing or deleted, or the
                installment number is already used by an active installment
        """
        with self.storage.atomic():
            loan = self.get_loan(loan_id)
            if loan is None or loan.is_deleted:
                raise DataIntegrityError(
                    f"Cannot record installment: loan {loan_id} not found",
                    entity_type="loan",
                    entity_id=loan_id
                )

            existing = self.get_installments(loan_id)
            used_numbers = {i.installment_number for i in existing}
            if installment_number is None:
                installment_number = max(used_numbers, default=0) + 1
            elif installment_number in used_numbers:
                raise DataIntegrityError(
                    f"Installment number {installment_number} already recorded for loan {loan_id}",
                    entity_type="loan",
                    entity_id=loan_id
                )

            now = datetime.now(timezone.utc)
            installment = Installment(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                loan_id=loan_id,
                installment_number=installment_number,
                amount=amount,
                date=payment_date,
                late_fee=late_fee,
                receipt_number=receipt_number
            )
            self.storage.save(self.installments_table, installment.id, installment.to_dict())

        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=AuditEventType.INSTALLMENT_RECORDED,
                entity_type="installment",
                entity_id=installment.id,
                metadata={
                    "loan_id": loan_id,
                    "installment_number": installment_number,
                    "amount": installment.amount,
                    "date": payment_date
                }
            )
        if self.dispatcher:
            self.dispatcher.publish(EventPayload(
                event_type=DomainEvent.INSTALLMENT_RECORDED,
                entity_type="installment",
                entity_id=installment.id,
                data={"loan_id": loan_id, "amount": str(installment.amount)}
            ))

        return installment

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Get loan by ID"""
        data = self.storage.load(self.loans_table, loan_id)
        return Loan.from_dict(data) if data else None

    def get_installment(self, installment_id: str) -> Optional[Installment]:
        data = self.storage.load(self.installments_table, installment_id)
        return Installment.from_dict(data) if data else None

    def list_loans(self, customer_id: Optional[str] = None, include_deleted: bool = False) -> List[Loan]:
        if customer_id is None:
            records = self.storage.load_all(self.loans_table)
        else:
            records = self.storage.find(self.loans_table, {"customer_id": customer_id})
        loans = [Loan.from_dict(data) for data in records]
        if not include_deleted:
            loans = [loan for loan in loans if not loan.is_deleted]
        loans.sort(key=lambda loan: (loan.payment_date, loan.created_at, loan.id))
        return loans

    def get_installments(self, loan_id: str, include_deleted: bool = False) -> List[Installment]:
        """Get installments for a loan sorted by payment date"""
        records = self.storage.find(self.installments_table, {"loan_id": loan_id})
        installments = [Installment.from_dict(data) for data in records]
        if not include_deleted:
            installments = [i for i in installments if not i.is_deleted]
        installments.sort(key=lambda i: (i.date, i.installment_number, i.created_at, i.id))
        return installments

    def list_installments(self, include_deleted: bool = False) -> List[Installment]:
        installments = [Installment.from_dict(data) for data in self.storage.load_all(self.installments_table)]
        if not include_deleted:
            installments = [i for i in installments if not i.is_deleted]
        return installments

    def get_statement(self, loan_id: str, as_of: Optional[date] = None) -> LoanStatement:
        """Repayment position of a loan via the allocation waterfall"""
        loan = self.get_loan(loan_id)
        if loan is None:
            raise EntityNotFoundError(f"Loan {loan_id} not found")
        return loan_statement(loan, self.get_installments(loan_id), as_of=as_of)

    def soft_delete_loan(self, loan_id: str, deleted_by: Optional[str] = None) -> Loan:
        """Move a loan and its installments to the trash"""
        with self.storage.atomic():
            loan = self.get_loan(loan_id)
            if loan is None:
                raise EntityNotFoundError(f"Loan {loan_id} not found")
            if loan.is_deleted:
                return loan

            now = datetime.now(timezone.utc)
            loan.deleted_at = now
            loan.deleted_by = deleted_by
            loan.updated_at = now
            self.storage.save(self.loans_table, loan.id, loan.to_dict())

            for installment in self.get_installments(loan_id):
                installment.deleted_at = now
                installment.deleted_by = deleted_by
                installment.updated_at = now
                self.storage.save(self.installments_table, installment.id, installment.to_dict())

        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_DELETED,
                entity_type="loan",
                entity_id=loan_id,
                user_id=deleted_by
            )
        return loan

    def soft_delete_installment(self, installment_id: str, deleted_by: Optional[str] = None) -> Installment:
        installment = self.get_installment(installment_id)
        if installment is None:
            raise EntityNotFoundError(f"Installment {installment_id} not found")
        if installment.is_deleted:
            return installment

        now = datetime.now(timezone.utc)
        installment.deleted_at = now
        installment.deleted_by = deleted_by
        installment.updated_at = now
        self.storage.save(self.installments_table, installment.id, installment.to_dict())

        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=AuditEventType.INSTALLMENT_DELETED,
                entity_type="installment",
                entity_id=installment_id,
                metadata={"loan_id": installment.loan_id},
                user_id=deleted_by
            )
        return installment

    def delete_loan(self, loan_id: str) -> bool:
        """Permanently remove a loan together with every installment it owns"""
        with self.storage.atomic():
            installments = self.get_installments(loan_id, include_deleted=True)
            for installment in installments:
                self.storage.delete(self.installments_table, installment.id)
            removed = self.storage.delete(self.loans_table, loan_id)

        if removed and self.audit_trail:
            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_DELETED,
                entity_type="loan",
                entity_id=loan_id,
                metadata={"permanent": True, "installments_removed": len(installments)}
            )
        return removed
