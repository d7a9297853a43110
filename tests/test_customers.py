"""
Tests for the customer registry and subscriptions
"""

import pytest
from datetime import date
from decimal import Decimal

from welfare_ledger.storage import InMemoryStorage
from welfare_ledger.audit import AuditTrail, AuditEventType
from welfare_ledger.customers import CustomerManager
from welfare_ledger.subscriptions import SubscriptionManager
from welfare_ledger.exceptions import EntityNotFoundError, ValidationError


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def customers(storage):
    return CustomerManager(storage, AuditTrail(storage))


@pytest.fixture
def subscriptions(storage):
    return SubscriptionManager(storage)


class TestCustomerManager:
    """Test member registry operations"""

    def test_create_and_get(self, customers):
        customer = customers.create_customer("Asha Menon", phone="9800000000", customer_id="CUST001")

        stored = customers.get_customer("CUST001")
        assert stored.name == "Asha Menon"
        assert stored.is_active
        assert customers.audit_trail.get_events_for_entity("customer", customer.id)[0].event_type == \
            AuditEventType.CUSTOMER_CREATED

    def test_name_required(self, customers):
        with pytest.raises(ValidationError):
            customers.create_customer("  ")

    def test_soft_delete_hides_customer(self, customers):
        customers.create_customer("Asha Menon", customer_id="CUST001")
        customers.create_customer("Ravi Nair", customer_id="CUST002")

        customers.soft_delete_customer("CUST001", deleted_by="secretary")

        assert customers.list_active_customer_ids() == ["CUST002"]
        assert [c.id for c in customers.list_customers(include_deleted=True)] == ["CUST001", "CUST002"]
        assert customers.get_customer("CUST001").deleted_by == "secretary"

    def test_soft_delete_unknown(self, customers):
        with pytest.raises(EntityNotFoundError):
            customers.soft_delete_customer("missing")


class TestSubscriptionManager:
    """Test subscription recording and totals"""

    def test_total_up_to_cutoff(self, subscriptions):
        subscriptions.record_subscription("CUST001", Decimal('5000'), date(2025, 4, 10))
        subscriptions.record_subscription("CUST001", Decimal('10000'), date(2025, 6, 30), late_fee=Decimal('50'))
        subscriptions.record_subscription("CUST001", Decimal('2000'), date(2025, 7, 1))
        subscriptions.record_subscription("CUST002", Decimal('900'), date(2025, 5, 1))

        assert subscriptions.subscription_total("CUST001", up_to=date(2025, 6, 30)) == (2, Decimal('15000'))
        assert subscriptions.subscription_total("CUST001") == (3, Decimal('17000'))

    def test_negative_adjustment_allowed(self, subscriptions):
        subscriptions.record_subscription("CUST001", Decimal('5000'), date(2025, 4, 10))
        subscriptions.record_subscription("CUST001", Decimal('-1000'), date(2025, 5, 10))

        assert subscriptions.subscription_total("CUST001") == (2, Decimal('4000'))

    def test_deleted_subscription_excluded(self, subscriptions):
        kept = subscriptions.record_subscription("CUST001", Decimal('5000'), date(2025, 4, 10))
        dropped = subscriptions.record_subscription("CUST001", Decimal('3000'), date(2025, 4, 11))

        subscriptions.soft_delete_subscription(dropped.id)

        assert [s.id for s in subscriptions.list_subscriptions(customer_id="CUST001")] == [kept.id]
        assert len(subscriptions.list_subscriptions(include_deleted=True)) == 2

    def test_late_fee_read_back(self, subscriptions):
        recorded = subscriptions.record_subscription(
            "CUST001", Decimal('5000'), date(2025, 4, 10), late_fee=Decimal('25'), receipt_number="R-9"
        )

        stored = subscriptions.get_subscription(recorded.id)
        assert stored.late_fee_amount == Decimal('25')
        assert stored.receipt_number == "R-9"
