"""
API tests using the FastAPI test client
"""

import pytest
from datetime import date
from decimal import Decimal
from fastapi.testclient import TestClient

from welfare_ledger.api import create_app
from welfare_ledger.api.system import LedgerSystem, get_ledger_system
from welfare_ledger.storage import InMemoryStorage


@pytest.fixture
def system():
    return LedgerSystem(storage=InMemoryStorage())


@pytest.fixture
def client(system):
    app = create_app()
    app.dependency_overrides[get_ledger_system] = lambda: system
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def member(system):
    system.customer_manager.create_customer("Asha Menon", customer_id="CUST001")
    system.subscription_manager.record_subscription("CUST001", Decimal('15000'), date(2025, 4, 10))
    return "CUST001"


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestInterestEndpoints:
    """Test quarterly interest endpoints"""

    def test_apply_interest(self, client, member):
        response = client.post(f"/interest/customers/{member}/apply", json={"as_of": "2025-05-01"})

        assert response.status_code == 200
        body = response.json()
        assert body["applied"] is True
        assert body["interest_amount"] == "450.00"
        assert body["period_start"] == "2025-04-01"

    def test_apply_twice_is_skipped(self, client, member):
        client.post(f"/interest/customers/{member}/apply", json={"as_of": "2025-05-01"})

        body = client.post(f"/interest/customers/{member}/apply", json={"as_of": "2025-05-01"}).json()

        assert body["applied"] is False
        assert body["status"] == "skipped"
        assert body["reason"] == "Interest already applied"

    def test_explicit_period_must_be_complete(self, client, member):
        response = client.post(
            f"/interest/customers/{member}/apply", json={"period_start": "2025-04-01"}
        )

        assert response.status_code == 400

    def test_batch(self, client, member, system):
        system.customer_manager.create_customer("No Subs", customer_id="CUST002")

        response = client.post("/interest/batch", json={"as_of": "2025-05-01"})

        body = response.json()
        assert body["success_count"] == 1
        assert body["skipped_count"] == 1
        assert body["error_count"] == 0
        assert body["successful"] is True
        assert body["fiscal_year"] == "2025-26"
        assert [d["customer_id"] for d in body["details"]] == ["CUST001", "CUST002"]

    def test_customer_position(self, client, member):
        client.post(f"/interest/customers/{member}/apply", json={"as_of": "2025-05-01"})

        body = client.get(f"/interest/customers/{member}").json()

        assert body["total_interest_charged"] == "450.00"
        assert len(body["ledger"]) == 1

    def test_unknown_customer_position(self, client):
        assert client.get("/interest/customers/NOPE").status_code == 404


class TestLedgerEntryEndpoints:
    """Test ledger entry endpoints"""

    def test_create_and_get(self, client):
        response = client.post("/ledger-entries", json={
            "date": "2025-09-01", "amount": "1500", "type": "expense", "subtype": "Death Fund"
        })

        assert response.status_code == 201
        entry_id = response.json()["id"]
        assert client.get(f"/ledger-entries/{entry_id}").json()["amount"] == "1500"

    def test_invalid_amount(self, client):
        response = client.post("/ledger-entries", json={
            "date": "2025-09-01", "amount": "-5", "type": "expense"
        })

        assert response.status_code == 400

    @pytest.mark.parametrize("amount", ["1e3", "12abc34"])
    def test_amount_with_stray_characters(self, client, amount):
        response = client.post("/ledger-entries", json={
            "date": "2025-09-01", "amount": amount, "type": "expense", "subtype": "Death Fund"
        })

        assert response.status_code == 400

    def test_formatted_amount_accepted(self, client):
        response = client.post("/ledger-entries", json={
            "date": "2025-09-01", "amount": "₹ 1,500", "type": "expense", "subtype": "Death Fund"
        })

        assert response.status_code == 201
        assert response.json()["amount"] == "1500"

    def test_missing_entry(self, client):
        assert client.get("/ledger-entries/missing").status_code == 404
        assert client.delete("/ledger-entries/missing").status_code == 404

    def test_deleting_interest_charge_reverses_balance(self, client, member):
        applied = client.post(f"/interest/customers/{member}/apply", json={"as_of": "2025-05-01"}).json()

        response = client.delete(
            f"/ledger-entries/{applied['ledger_entry_id']}", params={"deleted_by": "treasurer"}
        )

        assert response.status_code == 200
        assert response.json()["deleted_by"] == "treasurer"
        position = client.get(f"/interest/customers/{member}").json()
        assert Decimal(position["total_interest_charged"]) == 0

        client.post(f"/ledger-entries/{applied['ledger_entry_id']}/restore")

        position = client.get(f"/interest/customers/{member}").json()
        assert position["total_interest_charged"] == "450.00"


class TestSummaryEndpoints:
    """Test summary endpoints"""

    def test_fiscal_year_summary(self, client, member):
        client.post(f"/interest/customers/{member}/apply", json={"as_of": "2025-05-01"})

        body = client.get("/summary", params={"fy": 2025}).json()

        assert body["scope"] == "FY 2025-26"
        assert body["subscriptions_collected"] == "15000"
        assert body["quarterly_interest_charged"] == "450.00"

    def test_fiscal_years(self, client, member):
        years = client.get("/summary/fiscal-years").json()["fiscal_years"]

        assert 2025 in years
        assert years == sorted(years, reverse=True)

    def test_breakdown(self, client, member):
        body = client.get("/summary/breakdown/subscriptions", params={"fy": 2025}).json()

        assert body["total"] == "15000"
        assert body["pagination"]["total_items"] == 1

    def test_unknown_breakdown_metric(self, client):
        assert client.get("/summary/breakdown/bogus").status_code == 404
