"""
Customer Registry Module

Minimal member registry: the interest batch enumerates active customers and
rejects soft-deleted ones. Profile management lives outside this engine.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, Any, List, Optional
import uuid

from .storage import StorageInterface, StorageRecord, parse_datetime
from .audit import AuditTrail, AuditEventType
from .exceptions import EntityNotFoundError, ValidationError


@dataclass
class Customer(StorageRecord):
    """Association member"""
    name: str
    phone: str = ""
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValidationError("Customer name is required")

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Customer':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            name=data['name'],
            phone=data.get('phone', ""),
            deleted_at=parse_datetime(data.get('deleted_at')),
            deleted_by=data.get('deleted_by')
        )


class CustomerManager:
    """Stores customers and answers active-membership questions"""

    def __init__(self, storage: StorageInterface, audit_trail: Optional[AuditTrail] = None):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "customers"

    def create_customer(self, name: str, phone: str = "", customer_id: Optional[str] = None) -> Customer:
        now = datetime.now(timezone.utc)
        customer = Customer(
            id=customer_id or str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            name=name,
            phone=phone
        )
        self.storage.save(self.table_name, customer.id, customer.to_dict())

        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=AuditEventType.CUSTOMER_CREATED,
                entity_type="customer",
                entity_id=customer.id,
                metadata={"name": customer.name}
            )
        return customer

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        data = self.storage.load(self.table_name, customer_id)
        return Customer.from_dict(data) if data else None

    def list_customers(self, include_deleted: bool = False) -> List[Customer]:
        customers = [Customer.from_dict(d) for d in self.storage.load_all(self.table_name)]
        if not include_deleted:
            customers = [c for c in customers if c.is_active]
        customers.sort(key=lambda c: (c.created_at, c.id))
        return customers

    def list_active_customer_ids(self) -> List[str]:
        return [c.id for c in self.list_customers()]

    def soft_delete_customer(self, customer_id: str, deleted_by: Optional[str] = None) -> Customer:
        customer = self.get_customer(customer_id)
        if customer is None:
            raise EntityNotFoundError(f"Customer {customer_id} not found")
        if not customer.is_active:
            return customer

        now = datetime.now(timezone.utc)
        customer.deleted_at = now
        customer.deleted_by = deleted_by
        customer.updated_at = now
        self.storage.save(self.table_name, customer.id, customer.to_dict())

        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=AuditEventType.CUSTOMER_DELETED,
                entity_type="customer",
                entity_id=customer.id,
                user_id=deleted_by
            )
        return customer
