"""
Subscription Module

Periodic member contributions. A customer's cumulative subscription total is
the basis for the quarterly interest charge.
"""

from datetime import datetime, date, timezone
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Any, List, Optional, Tuple
import uuid

from .currency import ZERO, to_decimal
from .storage import StorageInterface, StorageRecord, parse_datetime, parse_date
from .audit import AuditTrail, AuditEventType
from .events import EventDispatcher, EventPayload, DomainEvent
from .exceptions import EntityNotFoundError, ValidationError


@dataclass
class Subscription(StorageRecord):
    """A member contribution"""
    customer_id: str
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

    @property
    def late_fee_amount(self) -> Decimal:
        return self.late_fee if self.late_fee is not None else ZERO

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Subscription':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            customer_id=data['customer_id'],
            amount=Decimal(data['amount']),
            date=parse_date(data['date']),
            late_fee=Decimal(data['late_fee']) if data.get('late_fee') is not None else None,
            receipt_number=data.get('receipt_number', ""),
            deleted_at=parse_datetime(data.get('deleted_at')),
            deleted_by=data.get('deleted_by')
        )


class SubscriptionManager:
    """Records subscriptions and totals them per customer"""

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: Optional[AuditTrail] = None,
        dispatcher: Optional[EventDispatcher] = None
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.dispatcher = dispatcher
        self.table_name = "subscriptions"

    def record_subscription(
        self,
        customer_id: str,
        amount: Decimal,
        payment_date: date,
        late_fee: Optional[Decimal] = None,
        receipt_number: str = ""
    ) -> Subscription:
        now = datetime.now(timezone.utc)
        subscription = Subscription(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            customer_id=customer_id,
            amount=amount,
            date=payment_date,
            late_fee=late_fee,
            receipt_number=receipt_number
        )
        self.storage.save(self.table_name, subscription.id, subscription.to_dict())

        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=AuditEventType.SUBSCRIPTION_RECORDED,
                entity_type="subscription",
                entity_id=subscription.id,
                metadata={
                    "customer_id": customer_id,
                    "amount": subscription.amount,
                    "date": payment_date
                }
            )
        if self.dispatcher:
            self.dispatcher.publish(EventPayload(
                event_type=DomainEvent.SUBSCRIPTION_RECORDED,
                entity_type="subscription",
                entity_id=subscription.id,
                data={"customer_id": customer_id, "amount": str(subscription.amount)}
            ))
        return subscription

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        data = self.storage.load(self.table_name, subscription_id)
        return Subscription.from_dict(data) if data else None

    def list_subscriptions(
        self,
        customer_id: Optional[str] = None,
        up_to: Optional[date] = None,
        include_deleted: bool = False
    ) -> List[Subscription]:
        """Subscriptions sorted by date, optionally limited to one customer and a cutoff day"""
        if customer_id is None:
            records = self.storage.load_all(self.table_name)
        else:
            records = self.storage.find(self.table_name, {"customer_id": customer_id})
        subscriptions = [Subscription.from_dict(data) for data in records]
        if not include_deleted:
            subscriptions = [s for s in subscriptions if not s.is_deleted]
        if up_to is not None:
            subscriptions = [s for s in subscriptions if s.date <= up_to]
        subscriptions.sort(key=lambda s: (s.date, s.created_at, s.id))
        return subscriptions

    def subscription_total(self, customer_id: str, up_to: Optional[date] = None) -> Tuple[int, Decimal]:
        """Count and sum of a customer's active subscriptions"""
        subscriptions = self.list_subscriptions(customer_id=customer_id, up_to=up_to)
        return len(subscriptions), sum((s.amount for s in subscriptions), ZERO)

    def soft_delete_subscription(self, subscription_id: str, deleted_by: Optional[str] = None) -> Subscription:
        subscription = self.get_subscription(subscription_id)
        if subscription is None:
            raise EntityNotFoundError(f"Subscription {subscription_id} not found")
        if subscription.is_deleted:
            return subscription

        now = datetime.now(timezone.utc)
        subscription.deleted_at = now
        subscription.deleted_by = deleted_by
        subscription.updated_at = now
        self.storage.save(self.table_name, subscription.id, subscription.to_dict())

        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=AuditEventType.SUBSCRIPTION_DELETED,
                entity_type="subscription",
                entity_id=subscription_id,
                user_id=deleted_by
            )
        return subscription
