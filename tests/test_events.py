"""
Tests for the synchronous event dispatcher
"""

import logging
import pytest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import Mock

from welfare_ledger.events import (
    EventDispatcher, EventPayload, DomainEvent, create_interest_charge_event
)


def payload(event_type=DomainEvent.LEDGER_ENTRY_CREATED):
    return EventPayload(event_type=event_type, entity_type="ledger_entry", entity_id="E1", data={})


@pytest.fixture
def dispatcher():
    return EventDispatcher()


class TestEventDispatcher:
    """Test subscription and delivery"""

    def test_handlers_called_in_subscription_order(self, dispatcher):
        calls = []
        dispatcher.subscribe(DomainEvent.LEDGER_ENTRY_CREATED, lambda e: calls.append("first"))
        dispatcher.subscribe(DomainEvent.LEDGER_ENTRY_CREATED, lambda e: calls.append("second"))
        dispatcher.subscribe_all(lambda e: calls.append("global"))

        dispatcher.publish(payload())

        assert calls == ["first", "second", "global"]

    def test_other_event_types_not_delivered(self, dispatcher):
        handler = Mock()
        dispatcher.subscribe(DomainEvent.INTEREST_APPLIED, handler)

        dispatcher.publish(payload())

        handler.assert_not_called()

    def test_non_strict_failure_is_logged(self, dispatcher, caplog):
        after = Mock()
        dispatcher.subscribe(DomainEvent.LEDGER_ENTRY_CREATED, Mock(side_effect=RuntimeError("boom")))
        dispatcher.subscribe(DomainEvent.LEDGER_ENTRY_CREATED, after)

        with caplog.at_level(logging.ERROR, logger="welfare_ledger.events"):
            dispatcher.publish(payload())

        after.assert_called_once()
        assert "boom" in caplog.text

    def test_strict_failure_propagates(self, dispatcher):
        after = Mock()
        dispatcher.subscribe(DomainEvent.INTEREST_CHARGE_REVERSED, Mock(side_effect=RuntimeError("boom")))
        dispatcher.subscribe(DomainEvent.INTEREST_CHARGE_REVERSED, after)

        with pytest.raises(RuntimeError):
            dispatcher.publish(payload(DomainEvent.INTEREST_CHARGE_REVERSED), strict=True)

        after.assert_not_called()

    def test_unsubscribe_and_counts(self, dispatcher):
        handler = Mock()
        dispatcher.subscribe(DomainEvent.INTEREST_APPLIED, handler)
        dispatcher.subscribe_all(Mock())
        assert dispatcher.get_handler_count(DomainEvent.INTEREST_APPLIED) == 1
        assert dispatcher.get_handler_count() == 2

        dispatcher.unsubscribe(DomainEvent.INTEREST_APPLIED, handler)
        dispatcher.publish(payload(DomainEvent.INTEREST_APPLIED))

        handler.assert_not_called()
        dispatcher.clear()
        assert dispatcher.get_handler_count() == 0


class TestEventPayload:
    """Test event payload helpers"""

    def test_dict_round_trip(self):
        event = payload(DomainEvent.INTEREST_APPLIED)

        restored = EventPayload.from_dict(event.to_dict())

        assert restored == event

    def test_interest_charge_event(self):
        entry = SimpleNamespace(id="E9", customer_id="CUST001", amount=Decimal('450.00'), date=date(2025, 4, 1))

        event = create_interest_charge_event(DomainEvent.INTEREST_CHARGE_REVERSED, entry)

        assert event.entity_id == "E9"
        assert event.data == {
            "customer_id": "CUST001",
            "amount": "450.00",
            "ledger_entry_id": "E9",
            "date": "2025-04-01",
        }
