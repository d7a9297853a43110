"""
Event System Module

Publish/subscribe dispatcher for ledger domain events. Reactive bookkeeping
(such as adjusting a customer's interest balance when an interest charge is
soft-deleted) is wired through here instead of storage-level triggers.
"""

from enum import Enum
from typing import Callable, Dict, List, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
import uuid
import logging
from threading import RLock


class DomainEvent(Enum):
    """Domain events that can occur in the ledger"""

    # Ledger entry events
    LEDGER_ENTRY_CREATED = "ledger_entry.created"
    LEDGER_ENTRY_DELETED = "ledger_entry.deleted"
    LEDGER_ENTRY_RESTORED = "ledger_entry.restored"

    # Interest events
    INTEREST_APPLIED = "interest.applied"
    INTEREST_CHARGE_REVERSED = "interest.charge_reversed"
    INTEREST_CHARGE_RESTORED = "interest.charge_restored"
    INTEREST_BATCH_COMPLETED = "interest.batch_completed"

    # Loan book events
    LOAN_CREATED = "loan.created"
    INSTALLMENT_RECORDED = "loan.installment_recorded"
    SUBSCRIPTION_RECORDED = "subscription.recorded"


@dataclass
class EventPayload:
    """Payload for domain events"""
    event_type: DomainEvent
    entity_type: str
    entity_id: str
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'data': self.data,
            'timestamp': self.timestamp.isoformat(),
            'event_id': self.event_id
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EventPayload':
        """Create from dictionary"""
        return cls(
            event_type=DomainEvent(data['event_type']),
            entity_type=data['entity_type'],
            entity_id=data['entity_id'],
            data=data['data'],
            timestamp=datetime.fromisoformat(data['timestamp']) if isinstance(data['timestamp'], str) else data['timestamp'],
            event_id=data['event_id']
        )


def _handler_name(handler: Callable) -> str:
    return getattr(handler, "__name__", repr(handler))


class EventDispatcher:
    """Central event dispatcher, publish/subscribe pattern"""

    def __init__(self):
        self._handlers: Dict[DomainEvent, List[Callable]] = {}
        self._global_handlers: List[Callable] = []  # catch-all handlers
        self._lock = RLock()
        self.logger = logging.getLogger("welfare_ledger.events")

    def subscribe(self, event_type: DomainEvent, handler: Callable) -> None:
        """Subscribe to a specific event type"""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
            self.logger.debug(f"Subscribed handler {_handler_name(handler)} to {event_type.value}")

    def subscribe_all(self, handler: Callable) -> None:
        """Subscribe to ALL events"""
        with self._lock:
            self._global_handlers.append(handler)

    def unsubscribe(self, event_type: DomainEvent, handler: Callable) -> None:
        """Unsubscribe from a specific event type"""
        with self._lock:
            try:
                self._handlers.get(event_type, []).remove(handler)
            except ValueError:
                self.logger.warning(f"Handler {_handler_name(handler)} was not subscribed to {event_type.value}")

    def publish(self, event: EventPayload, strict: bool = False) -> None:
        """
        Publish event to all subscribers, synchronously and in subscription order.

        Args:
            event: Event to deliver
            strict: When True the first handler failure is re-raised so the
                caller's transaction rolls back. When False failures are
                logged and delivery continues.
        """
        with self._lock:
            handlers = list(self._handlers.get(event.event_type, [])) + list(self._global_handlers)

        self.logger.debug(f"Publishing event {event.event_type.value} for {event.entity_type}:{event.entity_id}")

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                if strict:
                    raise
                self.logger.error(f"Error in event handler {_handler_name(handler)} for {event.event_type.value}: {e}")

    def clear(self) -> None:
        """Clear all handlers"""
        with self._lock:
            self._handlers.clear()
            self._global_handlers.clear()

    def get_handler_count(self, event_type: Optional[DomainEvent] = None) -> int:
        """Get count of handlers for a specific event type or all"""
        with self._lock:
            if event_type:
                return len(self._handlers.get(event_type, []))
            total = sum(len(handlers) for handlers in self._handlers.values())
            return total + len(self._global_handlers)


def create_interest_charge_event(event_type: DomainEvent, entry) -> EventPayload:
    """
    Create the reversal/restore event for an "Interest Charge" ledger entry

    A restore event also carries ``reversed_amount``, the part of the charge
    that the reversal actually took off the balance.
    """
    data = {
        "customer_id": entry.customer_id,
        "amount": str(entry.amount),
        "ledger_entry_id": entry.id,
        "date": entry.date.isoformat()
    }
    if getattr(entry, "reversed_amount", None) is not None:
        data["reversed_amount"] = str(entry.reversed_amount)
    return EventPayload(
        event_type=event_type,
        entity_type="ledger_entry",
        entity_id=entry.id,
        data=data
    )
