"""
Ledger Entry Module

Free-form bookkeeping entries ("data entries"): expenses such as subscription
returns and death-fund payouts, misc credits and debits, and the visible
"Interest Charge" entries posted by the quarterly interest run.

Entries are soft-deleted to a trash and can be restored. Soft-deleting an
Interest Charge reverses its effect on the customer's interest balance; the
reversal is delivered synchronously inside the same transaction so that both
changes commit or neither does.
"""

from datetime import datetime, date, timezone
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Any, List, Optional
import logging
import uuid

from .currency import ZERO, to_decimal
from .storage import StorageInterface, StorageRecord, parse_datetime, parse_date
from .audit import AuditTrail, AuditEventType
from .events import EventDispatcher, EventPayload, DomainEvent, create_interest_charge_event
from .exceptions import EntityNotFoundError, ValidationError
from .logging_config import log_action

logger = logging.getLogger("welfare_ledger.ledger_entries")

INTEREST_CHARGE_SUBTYPE = "Interest Charge"
SUBSCRIPTION_RETURN_SUBTYPE = "Subscription Return"

# Expense subtypes that count toward reported expenses
EXPENSE_SUBTYPES = (
    SUBSCRIPTION_RETURN_SUBTYPE,
    "Retirement Gift",
    "Death Fund",
    "Misc Expense",
)


class LedgerEntryType(Enum):
    CREDIT = "credit"
    DEBIT = "debit"
    EXPENSE = "expense"


@dataclass
class LedgerEntry(StorageRecord):
    """A manual or system-posted bookkeeping entry"""
    customer_id: Optional[str]
    date: date
    amount: Decimal
    entry_type: LedgerEntryType
    subtype: Optional[str] = None
    receipt_number: str = ""
    notes: str = ""
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None
    reversed_amount: Optional[Decimal] = None  # deducted from the interest balance while trashed

    def __post_init__(self):
        self.amount = to_decimal(self.amount)
        if self.amount < ZERO:
            raise ValidationError("Ledger entry amount cannot be negative")
        if self.subtype == INTEREST_CHARGE_SUBTYPE and not self.customer_id:
            raise ValidationError("Interest Charge entries need a customer")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_interest_charge(self) -> bool:
        return self.subtype == INTEREST_CHARGE_SUBTYPE

    @property
    def is_reported_expense(self) -> bool:
        return self.entry_type == LedgerEntryType.EXPENSE and self.subtype in EXPENSE_SUBTYPES

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LedgerEntry':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            customer_id=data.get('customer_id'),
            date=parse_date(data['date']),
            amount=Decimal(data['amount']),
            entry_type=LedgerEntryType(data['entry_type']),
            subtype=data.get('subtype'),
            receipt_number=data.get('receipt_number', ""),
            notes=data.get('notes', ""),
            deleted_at=parse_datetime(data.get('deleted_at')),
            deleted_by=data.get('deleted_by'),
            reversed_amount=Decimal(data['reversed_amount']) if data.get('reversed_amount') is not None else None
        )


class LedgerEntryManager:
    """
    Creates, trashes and restores ledger entries
    """

    def __init__(
        self,
        storage: StorageInterface,
        dispatcher: EventDispatcher,
        audit_trail: Optional[AuditTrail] = None
    ):
        self.storage = storage
        self.dispatcher = dispatcher
        self.audit_trail = audit_trail
        self.table_name = "data_entries"

    def build_entry(
        self,
        entry_date: date,
        amount: Decimal,
        entry_type: LedgerEntryType,
        customer_id: Optional[str] = None,
        subtype: Optional[str] = None,
        receipt_number: str = "",
        notes: str = ""
    ) -> LedgerEntry:
        """Build an unsaved entry"""
        now = datetime.now(timezone.utc)
        return LedgerEntry(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            customer_id=customer_id,
            date=entry_date,
            amount=amount,
            entry_type=entry_type,
            subtype=subtype,
            receipt_number=receipt_number,
            notes=notes
        )

    def save_entry(self, entry: LedgerEntry) -> None:
        """Persist an entry without audit or events; callers own the transaction"""
        self.storage.save(self.table_name, entry.id, entry.to_dict())

    def create_entry(
        self,
        entry_date: date,
        amount: Decimal,
        entry_type: LedgerEntryType,
        customer_id: Optional[str] = None,
        subtype: Optional[str] = None,
        receipt_number: str = "",
        notes: str = ""
    ) -> LedgerEntry:
        """
        Record a ledger entry

        Interest Charge entries are normally posted by the quarterly interest
        run; creating one by hand does not touch the interest balance.
        """
        entry = self.build_entry(
            entry_date=entry_date,
            amount=amount,
            entry_type=entry_type,
            customer_id=customer_id,
            subtype=subtype,
            receipt_number=receipt_number,
            notes=notes
        )
        self.save_entry(entry)
        self.record_created(entry)
        return entry

    def record_created(self, entry: LedgerEntry) -> None:
        """Audit and announce an entry that has been committed"""
        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=AuditEventType.LEDGER_ENTRY_CREATED,
                entity_type="ledger_entry",
                entity_id=entry.id,
                metadata={
                    "customer_id": entry.customer_id,
                    "amount": entry.amount,
                    "type": entry.entry_type,
                    "subtype": entry.subtype,
                    "date": entry.date
                }
            )
        self.dispatcher.publish(EventPayload(
            event_type=DomainEvent.LEDGER_ENTRY_CREATED,
            entity_type="ledger_entry",
            entity_id=entry.id,
            data={"customer_id": entry.customer_id, "amount": str(entry.amount), "subtype": entry.subtype}
        ))

    def get_entry(self, entry_id: str) -> Optional[LedgerEntry]:
        data = self.storage.load(self.table_name, entry_id)
        return LedgerEntry.from_dict(data) if data else None

    def list_entries(
        self,
        customer_id: Optional[str] = None,
        include_deleted: bool = False,
        subtype: Optional[str] = None
    ) -> List[LedgerEntry]:
        if customer_id is None:
            records = self.storage.load_all(self.table_name)
        else:
            records = self.storage.find(self.table_name, {"customer_id": customer_id})
        entries = [LedgerEntry.from_dict(data) for data in records]
        if not include_deleted:
            entries = [e for e in entries if not e.is_deleted]
        if subtype is not None:
            entries = [e for e in entries if e.subtype == subtype]
        entries.sort(key=lambda e: (e.date, e.created_at, e.id))
        return entries

    def list_trash(self) -> List[LedgerEntry]:
        return [e for e in self.list_entries(include_deleted=True) if e.is_deleted]

    def soft_delete_entry(self, entry_id: str, deleted_by: Optional[str] = None) -> LedgerEntry:
        """
        Move an entry to the trash

        Deleting an entry that is already in the trash is a no-op. For an
        Interest Charge the reversal handlers run inside the transaction; if
        any of them fails the delete is rolled back and the error propagates.

        Raises:
            EntityNotFoundError: If the entry does not exist
        """
        with self.storage.atomic():
            entry = self.get_entry(entry_id)
            if entry is None:
                raise EntityNotFoundError(f"Ledger entry {entry_id} not found")
            if entry.is_deleted:
                return entry

            now = datetime.now(timezone.utc)
            entry.deleted_at = now
            entry.deleted_by = deleted_by
            entry.updated_at = now
            self.save_entry(entry)

            if entry.is_interest_charge:
                self.dispatcher.publish(
                    create_interest_charge_event(DomainEvent.INTEREST_CHARGE_REVERSED, entry),
                    strict=True
                )
                entry = self.get_entry(entry_id)

        log_action(
            logger, "info", f"Ledger entry {entry.id} moved to trash",
            customer_id=entry.customer_id, action="soft_delete", resource="ledger_entry",
            extra={"subtype": entry.subtype, "amount": str(entry.amount)}
        )
        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=AuditEventType.LEDGER_ENTRY_DELETED,
                entity_type="ledger_entry",
                entity_id=entry.id,
                metadata={"subtype": entry.subtype, "amount": entry.amount, "customer_id": entry.customer_id},
                user_id=deleted_by
            )
            if entry.is_interest_charge:
                self.audit_trail.log_event(
                    event_type=AuditEventType.INTEREST_CHARGE_REVERSED,
                    entity_type="customer",
                    entity_id=entry.customer_id,
                    metadata={
                        "ledger_entry_id": entry.id,
                        "amount": entry.amount,
                        "deducted": entry.reversed_amount,
                    },
                    user_id=deleted_by
                )
        self.dispatcher.publish(EventPayload(
            event_type=DomainEvent.LEDGER_ENTRY_DELETED,
            entity_type="ledger_entry",
            entity_id=entry.id,
            data={"customer_id": entry.customer_id, "subtype": entry.subtype}
        ))
        return entry

    def restore_entry(self, entry_id: str, restored_by: Optional[str] = None) -> LedgerEntry:
        """
        Bring an entry back from the trash

        Restoring an Interest Charge re-adds the amount its deletion took off
        the customer's interest balance, under the same transactional rules
        as deletion.
        Restoring an entry that is not in the trash is a no-op.
        """
        with self.storage.atomic():
            entry = self.get_entry(entry_id)
            if entry is None:
                raise EntityNotFoundError(f"Ledger entry {entry_id} not found")
            if not entry.is_deleted:
                return entry

            entry.deleted_at = None
            entry.deleted_by = None
            entry.updated_at = datetime.now(timezone.utc)
            self.save_entry(entry)

            restored_amount = entry.reversed_amount or ZERO
            if entry.is_interest_charge:
                self.dispatcher.publish(
                    create_interest_charge_event(DomainEvent.INTEREST_CHARGE_RESTORED, entry),
                    strict=True
                )
                entry = self.get_entry(entry_id)

        log_action(
            logger, "info", f"Ledger entry {entry.id} restored",
            customer_id=entry.customer_id, action="restore", resource="ledger_entry"
        )
        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=AuditEventType.LEDGER_ENTRY_RESTORED,
                entity_type="ledger_entry",
                entity_id=entry.id,
                metadata={"subtype": entry.subtype, "amount": entry.amount},
                user_id=restored_by
            )
            if entry.is_interest_charge:
                self.audit_trail.log_event(
                    event_type=AuditEventType.INTEREST_CHARGE_RESTORED,
                    entity_type="customer",
                    entity_id=entry.customer_id,
                    metadata={"ledger_entry_id": entry.id, "amount": entry.amount, "restored": restored_amount},
                    user_id=restored_by
                )
        self.dispatcher.publish(EventPayload(
            event_type=DomainEvent.LEDGER_ENTRY_RESTORED,
            entity_type="ledger_entry",
            entity_id=entry.id,
            data={"customer_id": entry.customer_id, "subtype": entry.subtype}
        ))
        return entry
