"""Integration tests for API endpoints"""

import pytest
from unittest.mock import AsyncMock, patch
from decimal import Decimal
from fastapi.testclient import TestClient

pytestmark = pytest.mark.integration

HOUSE = {
    "apartment_id": "APT-1",
    "floor": 1,
    "name": "A1",
    "rent_payable": "10000",
    "rent_deposit": "10000",
    "water_deposit": "2000",
    "other_deposits": [{"title": "Key", "amount": "500"}],
}

TENANT = {
    "name": "Jane Wanjiru",
    "email": "jane@example.com",
    "phone": "0712000000",
    "national_id": "12345678",
    "apartment_id": "APT-1",
    "floor": 1,
    "house_name": "A1",
    "placement_date": "2024-01-05",
}


def money(value) -> Decimal:
    return Decimal(str(value))


@pytest.fixture
def tenant_id(client: TestClient) -> str:
    assert client.post("/v1/houses", json=HOUSE).status_code == 201
    response = client.post("/v1/tenants", json=TENANT)
    assert response.status_code == 201
    return response.json()["id"]


def _deposit(client: TestClient, tenant_id: str, amount: str, reference: str):
    return client.post(
        f"/v1/tenants/{tenant_id}/deposits",
        json={"amount": amount, "reference_number": reference, "payment_date": "2024-01-10"},
    )


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "X-Request-ID" in response.headers


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "tenancy_allocations_total" in response.text


def test_request_id_is_echoed(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_register_house(client: TestClient):
    """Test POST /v1/houses and duplicate rejection"""
    response = client.post("/v1/houses", json=HOUSE)
    assert response.status_code == 201
    data = response.json()
    assert data["is_occupied"] is False
    assert money(data["rent_payable"]) == Decimal("10000")

    duplicate = client.post("/v1/houses", json=HOUSE)
    assert duplicate.status_code == 400
    assert duplicate.json()["error"] == "ValidationError"


def test_onboarding_responses(client: TestClient, tenant_id: str):
    """Test 201 onboarding, 409 occupied house and 404 unknown house"""
    tenant = client.get(f"/v1/tenants/{tenant_id}").json()
    assert tenant["house_name"] == "A1"
    assert money(tenant["house_terms"]["garbage_fee"]) == Decimal("150")

    occupied = client.post("/v1/tenants", json={**TENANT, "national_id": "99999999"})
    assert occupied.status_code == 409
    assert occupied.json()["error"] == "HouseOccupiedError"

    missing = client.post("/v1/tenants", json={**TENANT, "national_id": "99999999", "house_name": "Z9"})
    assert missing.status_code == 404


def test_deposits_open_first_period(client: TestClient, tenant_id: str):
    first = _deposit(client, tenant_id, "12000", "DEP-1")
    assert first.status_code == 200
    assert first.json()["deposits_cleared"] is False
    assert client.get("/v1/tenants/incomplete-deposits").json()[0]["id"] == tenant_id

    second = _deposit(client, tenant_id, "10650", "DEP-2")

    data = second.json()
    assert data["deposits_cleared"] is True
    assert money(data["forwarded_to_billing"]) == Decimal("10150")
    periods = client.get(f"/v1/tenants/{tenant_id}/payments").json()
    assert [(p["month"], p["year"], p["is_cleared"]) for p in periods] == [("January", 2024, True)]
    assert client.get(f"/v1/tenants/{tenant_id}/payments/2024/january").status_code == 200


def test_monthly_payment_flow(client: TestClient, tenant_id: str):
    _deposit(client, tenant_id, "22650", "DEP-1")

    response = client.post(
        f"/v1/tenants/{tenant_id}/payments/monthly",
        json={"month": 2, "year": 2024, "amount": "10000", "reference_number": "FEB-1", "payment_date": "2024-02-05"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["current_period"] == "February 2024"
    assert money(data["applied"]) == Decimal("10000")
    unpaid = client.get(f"/v1/tenants/{tenant_id}/payments/unpaid").json()
    assert [p["month"] for p in unpaid] == ["February"]
    assert money(unpaid[0]["garbage_fee"]["deficit"]) == Decimal("150")


def test_monthly_payment_without_previous_period(client: TestClient, tenant_id: str):
    response = client.post(
        f"/v1/tenants/{tenant_id}/payments/monthly",
        json={"month": "March", "year": 2024, "amount": "100", "reference_number": "MAR-1"},
    )
    assert response.status_code == 404


def test_negative_amount_rejected(client: TestClient, tenant_id: str):
    response = _deposit(client, tenant_id, "-100", "DEP-1")
    assert response.status_code == 422


def test_unknown_month_rejected(client: TestClient, tenant_id: str):
    _deposit(client, tenant_id, "22500", "DEP-1")
    response = client.post(
        f"/v1/tenants/{tenant_id}/payments/monthly",
        json={"month": "Smarch", "year": 2024, "amount": "100", "reference_number": "X"},
    )
    assert response.status_code == 400


def test_settlement_blocked_by_pending_periods(client: TestClient, tenant_id: str):
    _deposit(client, tenant_id, "22650", "DEP-1")
    client.post(
        f"/v1/tenants/{tenant_id}/payments/monthly",
        json={"month": "February", "year": 2024, "amount": "5000", "reference_number": "FEB-1"},
    )

    response = client.post(
        f"/v1/tenants/{tenant_id}/clearance",
        json={"exit_date": "2024-02-28", "painting_fee": "2500"},
    )

    assert response.status_code == 409
    assert response.json()["pending_periods"] == [{"year": 2024, "month": "February"}]
    assert client.delete(f"/v1/tenants/{tenant_id}").status_code == 409
    assert client.get(f"/v1/tenants/{tenant_id}/clearance").status_code == 404


def test_correction_endpoint(client: TestClient, tenant_id: str):
    _deposit(client, tenant_id, "23000", "DEP-1")

    response = client.post(
        f"/v1/tenants/{tenant_id}/payments/corrections",
        json={"month": "January", "year": 2024, "reference_number": "FIX-1", "accumulated_water_bill": "200"},
    )

    assert response.status_code == 200
    data = response.json()
    assert money(data["from_own_overpay"]) == Decimal("200")
    assert money(data["global_deficit"]) == Decimal("0")


def test_exit_notice_sends_emails_in_background(client: TestClient, tenant_id: str):
    _deposit(client, tenant_id, "22650", "DEP-1")
    settled = client.post(
        f"/v1/tenants/{tenant_id}/clearance",
        json={"exit_date": "2024-01-31", "painting_fee": "2500", "miscellaneous": [{"title": "Cleaning", "amount": "1000"}]},
    )
    assert settled.status_code == 201
    assert money(settled.json()["overpay"]) == Decimal("8500")

    with patch(
        "tenancy_ledger.infrastructure.clients.notifier.NotificationClient.send_exit_notice",
        new_callable=AsyncMock,
    ) as mock_send:
        response = client.post(f"/v1/tenants/{tenant_id}/exit-notice", json={"owner_email": "owner@example.com"})

    assert response.status_code == 202
    data = response.json()
    assert data["recipients"] == ["jane@example.com", "owner@example.com"]
    assert money(data["refund"]) == Decimal("8500")
    mock_send.assert_called_once()
    messages = mock_send.call_args.args[0]
    assert messages[0].subject == "Thank You for Your Stay"
    assert client.get(f"/v1/tenants/{tenant_id}/removal-eligibility").json()["eligible"] is True


def test_remove_tenant_releases_house(client: TestClient, tenant_id: str):
    assert client.delete(f"/v1/tenants/{tenant_id}").status_code == 204
    assert client.get(f"/v1/tenants/{tenant_id}").status_code == 404
    vacant = client.get("/v1/houses", params={"vacant_only": True}).json()
    assert [house["name"] for house in vacant] == ["A1"]
