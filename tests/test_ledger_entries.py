"""
Test suite for ledger entries (data entries)
"""

import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import Mock

from welfare_ledger.storage import InMemoryStorage
from welfare_ledger.audit import AuditTrail, AuditEventType
from welfare_ledger.events import EventDispatcher, DomainEvent
from welfare_ledger.exceptions import EntityNotFoundError, ValidationError
from welfare_ledger.ledger_entries import (
    LedgerEntryManager, LedgerEntry, LedgerEntryType, INTEREST_CHARGE_SUBTYPE
)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def dispatcher():
    return EventDispatcher()


@pytest.fixture
def manager(storage, dispatcher):
    return LedgerEntryManager(storage, dispatcher, AuditTrail(storage))


class TestLedgerEntry:
    """Test the entry record"""

    def test_negative_amount_rejected(self, manager):
        with pytest.raises(ValidationError):
            manager.build_entry(date(2025, 5, 1), Decimal('-1'), LedgerEntryType.EXPENSE)

    def test_interest_charge_needs_customer(self, manager):
        with pytest.raises(ValidationError):
            manager.build_entry(
                date(2025, 5, 1), Decimal('10'), LedgerEntryType.EXPENSE, subtype=INTEREST_CHARGE_SUBTYPE
            )

    def test_classification(self, manager):
        death_fund = manager.build_entry(
            date(2025, 5, 1), Decimal('10'), LedgerEntryType.EXPENSE, subtype="Death Fund"
        )
        charge = manager.build_entry(
            date(2025, 5, 1), Decimal('10'), LedgerEntryType.EXPENSE,
            customer_id="CUST001", subtype=INTEREST_CHARGE_SUBTYPE
        )
        credit = manager.build_entry(date(2025, 5, 1), Decimal('10'), LedgerEntryType.CREDIT, subtype="Death Fund")

        assert death_fund.is_reported_expense and not death_fund.is_interest_charge
        assert charge.is_interest_charge and not charge.is_reported_expense
        assert not credit.is_reported_expense

    def test_storage_round_trip(self, manager):
        entry = manager.create_entry(
            date(2025, 5, 1), Decimal('250.75'), LedgerEntryType.CREDIT,
            customer_id="CUST001", subtype="Donation", receipt_number="R-17", notes="Festival"
        )

        loaded = manager.get_entry(entry.id)

        assert isinstance(loaded, LedgerEntry)
        assert loaded.amount == Decimal('250.75')
        assert loaded.entry_type == LedgerEntryType.CREDIT
        assert loaded.date == date(2025, 5, 1)
        assert loaded.receipt_number == "R-17"


class TestLedgerEntryManager:
    """Test create, trash and restore"""

    def test_create_publishes_and_audits(self, manager, dispatcher):
        handler = Mock()
        dispatcher.subscribe(DomainEvent.LEDGER_ENTRY_CREATED, handler)

        entry = manager.create_entry(date(2025, 5, 1), Decimal('100'), LedgerEntryType.EXPENSE, subtype="Misc Expense")

        handler.assert_called_once()
        assert handler.call_args[0][0].entity_id == entry.id
        events = manager.audit_trail.get_events_for_entity("ledger_entry", entry.id)
        assert [e.event_type for e in events] == [AuditEventType.LEDGER_ENTRY_CREATED]

    def test_list_sorted_and_filtered(self, manager):
        later = manager.create_entry(date(2025, 6, 1), Decimal('1'), LedgerEntryType.CREDIT, customer_id="A")
        earlier = manager.create_entry(date(2025, 5, 1), Decimal('2'), LedgerEntryType.CREDIT, customer_id="A")
        manager.create_entry(date(2025, 5, 15), Decimal('3'), LedgerEntryType.CREDIT, customer_id="B")

        entries = manager.list_entries(customer_id="A")

        assert [e.id for e in entries] == [earlier.id, later.id]

    def test_soft_delete_moves_to_trash(self, manager):
        entry = manager.create_entry(date(2025, 5, 1), Decimal('100'), LedgerEntryType.EXPENSE, subtype="Misc Expense")

        deleted = manager.soft_delete_entry(entry.id, deleted_by="treasurer")

        assert deleted.is_deleted
        assert deleted.deleted_by == "treasurer"
        assert manager.list_entries() == []
        assert [e.id for e in manager.list_trash()] == [entry.id]

    def test_plain_entry_delete_does_not_reverse_interest(self, manager, dispatcher):
        reversed_handler = Mock()
        dispatcher.subscribe(DomainEvent.INTEREST_CHARGE_REVERSED, reversed_handler)
        entry = manager.create_entry(date(2025, 5, 1), Decimal('100'), LedgerEntryType.EXPENSE, subtype="Death Fund")

        manager.soft_delete_entry(entry.id)

        reversed_handler.assert_not_called()

    def test_interest_charge_delete_publishes_reversal(self, manager, dispatcher):
        reversed_handler = Mock()
        dispatcher.subscribe(DomainEvent.INTEREST_CHARGE_REVERSED, reversed_handler)
        entry = manager.create_entry(
            date(2025, 4, 1), Decimal('450.00'), LedgerEntryType.EXPENSE,
            customer_id="CUST001", subtype=INTEREST_CHARGE_SUBTYPE
        )

        manager.soft_delete_entry(entry.id)

        reversed_handler.assert_called_once()
        event = reversed_handler.call_args[0][0]
        assert event.data == {
            "customer_id": "CUST001",
            "amount": "450.00",
            "ledger_entry_id": entry.id,
            "date": "2025-04-01",
        }

    def test_delete_is_idempotent(self, manager, dispatcher):
        reversed_handler = Mock()
        dispatcher.subscribe(DomainEvent.INTEREST_CHARGE_REVERSED, reversed_handler)
        entry = manager.create_entry(
            date(2025, 4, 1), Decimal('450.00'), LedgerEntryType.EXPENSE,
            customer_id="CUST001", subtype=INTEREST_CHARGE_SUBTYPE
        )

        first = manager.soft_delete_entry(entry.id)
        second = manager.soft_delete_entry(entry.id)

        assert reversed_handler.call_count == 1
        assert second.deleted_at == first.deleted_at

    def test_delete_missing_entry(self, manager):
        with pytest.raises(EntityNotFoundError):
            manager.soft_delete_entry("missing")

    def test_restore(self, manager, dispatcher):
        restored_handler = Mock()
        dispatcher.subscribe(DomainEvent.INTEREST_CHARGE_RESTORED, restored_handler)
        entry = manager.create_entry(
            date(2025, 4, 1), Decimal('450.00'), LedgerEntryType.EXPENSE,
            customer_id="CUST001", subtype=INTEREST_CHARGE_SUBTYPE
        )
        manager.soft_delete_entry(entry.id)

        restored = manager.restore_entry(entry.id)

        assert not restored.is_deleted
        assert restored.deleted_by is None
        restored_handler.assert_called_once()
        assert manager.list_trash() == []

    def test_restore_active_entry_is_noop(self, manager, dispatcher):
        restored_handler = Mock()
        dispatcher.subscribe(DomainEvent.INTEREST_CHARGE_RESTORED, restored_handler)
        entry = manager.create_entry(
            date(2025, 4, 1), Decimal('450.00'), LedgerEntryType.EXPENSE,
            customer_id="CUST001", subtype=INTEREST_CHARGE_SUBTYPE
        )

        manager.restore_entry(entry.id)

        restored_handler.assert_not_called()

    def test_strict_handler_failure_keeps_entry(self, manager, dispatcher):
        dispatcher.subscribe(DomainEvent.INTEREST_CHARGE_REVERSED, Mock(side_effect=ValueError("boom")))
        entry = manager.create_entry(
            date(2025, 4, 1), Decimal('450.00'), LedgerEntryType.EXPENSE,
            customer_id="CUST001", subtype=INTEREST_CHARGE_SUBTYPE
        )

        with pytest.raises(ValueError):
            manager.soft_delete_entry(entry.id)

        assert not manager.get_entry(entry.id).is_deleted
        deleted_events = manager.audit_trail.get_events_by_type(AuditEventType.LEDGER_ENTRY_DELETED)
        assert deleted_events == []
