#!/usr/bin/env python3
"""
HTTP API tests against the FastAPI app with an in-test payment gateway
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4
from fastapi.testclient import TestClient

import main
from main import app, get_payment_gateway, reset_state, DEMO_PROPERTY_ID

from conftest import StubGateway, make_notification

STANDARD_ROOM = "5f0c9a3e-0000-4000-8000-000000000101"
DELUXE_ROOM = "5f0c9a3e-0000-4000-8000-000000000102"
CLOSED_ROOM = "5f0c9a3e-0000-4000-8000-000000000104"


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def stub_gateway():
    return StubGateway()


@pytest.fixture
def client(stub_gateway):
    """FastAPI test client over freshly seeded stores"""
    reset_state()
    app.dependency_overrides[get_payment_gateway] = lambda: stub_gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    reset_state()


def login(client, username, password):
    response = client.post("/token", data={"username": username, "password": password})
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def customer_headers(client):
    return login(client, "customer", "customer123")


@pytest.fixture
def customer2_headers(client):
    return login(client, "customer2", "customer123")


@pytest.fixture
def staff_headers(client):
    return login(client, "receptionist", "receptionist123")


@pytest.fixture
def superadmin_headers(client):
    return login(client, "superadmin", "superadmin123")


def create_booking(client, headers, room_id=STANDARD_ROOM, check_in=None, lease_type="MONTHLY",
                   deposit_option="full"):
    payload = {
        "room_id": room_id,
        "check_in_date": (check_in or date.today() + timedelta(days=7)).isoformat(),
        "lease_type": lease_type,
        "deposit_option": deposit_option,
    }
    return client.post("/api/bookings", json=payload, headers=headers)


def notify(client, payment, transaction_status="settlement"):
    body = make_notification(
        payment["order_id"],
        transaction_status,
        gross_amount=payment["amount"],
        server_key=main.settings.MIDTRANS_SERVER_KEY,
    )
    return client.post("/api/midtrans/notify", json=body)


# ============================================================================
# API TESTS - AUTHENTICATION
# ============================================================================

class TestAuthenticationAPI:
    """Test authentication endpoints"""

    @pytest.mark.integration
    @pytest.mark.api
    def test_login_success(self, client):
        """Test successful login"""
        response = client.post("/token", data={"username": "customer", "password": "customer123"})

        assert response.status_code == 200
        data = response.json()
        assert "access_token" in data
        assert data["token_type"] == "bearer"

    @pytest.mark.integration
    @pytest.mark.api
    @pytest.mark.security
    def test_login_failure_wrong_password(self, client):
        """Test login fails with wrong password"""
        response = client.post("/token", data={"username": "customer", "password": "wrongpassword"})

        assert response.status_code == 401
        assert "Incorrect username or password" in response.json()["detail"]

    @pytest.mark.integration
    @pytest.mark.api
    @pytest.mark.security
    def test_protected_endpoint_without_token(self, client):
        """Test accessing protected endpoint without token"""
        assert client.get("/api/bookings").status_code == 401

    @pytest.mark.integration
    @pytest.mark.api
    @pytest.mark.security
    def test_protected_endpoint_with_invalid_token(self, client):
        headers = {"Authorization": "Bearer invalid_token_12345"}
        assert client.get("/api/bookings", headers=headers).status_code == 401

    @pytest.mark.integration
    @pytest.mark.api
    def test_users_me_reports_role(self, client, staff_headers):
        response = client.get("/users/me", headers=staff_headers)
        assert response.status_code == 200
        assert response.json()["role"] == "RECEPTIONIST"


# ============================================================================
# API TESTS - HEALTH & ENUMS
# ============================================================================

class TestHealthAndEnumsAPI:
    """Test health and enum reference endpoints"""

    @pytest.mark.integration
    @pytest.mark.api
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.integration
    @pytest.mark.api
    def test_enums(self, client):
        assert "DEPOSIT_PAID" in client.get("/api/enums/booking-status").json()["values"]
        assert client.get("/api/enums/lease-type").json()["values"] == [
            "DAILY", "WEEKLY", "MONTHLY", "QUARTERLY", "YEARLY",
        ]
        assert "REFUNDED" in client.get("/api/enums/payment-status").json()["values"]


# ============================================================================
# API TESTS - ROOMS
# ============================================================================

class TestRoomAPI:
    """Test room listing, availability and pricing"""

    @pytest.mark.integration
    @pytest.mark.api
    def test_list_rooms(self, client, customer_headers):
        response = client.get("/api/rooms", headers=customer_headers)
        assert response.status_code == 200
        assert {r["room_number"] for r in response.json()} == {"A-101", "A-102", "B-201", "B-202"}

    @pytest.mark.integration
    @pytest.mark.api
    def test_availability(self, client, customer_headers):
        check_in = date.today() + timedelta(days=3)
        response = client.get(
            f"/api/rooms/{STANDARD_ROOM}/availability",
            params={"check_in_date": check_in.isoformat(),
                    "check_out_date": (check_in + timedelta(days=5)).isoformat()},
            headers=customer_headers,
        )
        assert response.status_code == 200
        assert response.json()["is_available"] is True
        assert response.json()["conflicting_bookings"] == []

    @pytest.mark.integration
    @pytest.mark.api
    @pytest.mark.edge_case
    def test_availability_invalid_range(self, client, customer_headers):
        today = date.today().isoformat()
        response = client.get(
            f"/api/rooms/{STANDARD_ROOM}/availability",
            params={"check_in_date": today, "check_out_date": today},
            headers=customer_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.integration
    @pytest.mark.api
    def test_pricing(self, client, customer_headers):
        response = client.get(
            f"/api/rooms/{DELUXE_ROOM}/pricing",
            params={"lease_type": "WEEKLY", "check_in_date": "2030-01-01", "periods": 2},
            headers=customer_headers,
        )
        data = response.json()
        assert response.status_code == 200
        assert Decimal(data["total_amount"]) == Decimal("800000")
        assert Decimal(data["deposit_amount"]) == Decimal("240000")
        assert data["check_out_date"] == "2030-01-15"
        assert data["price_derived"] is False

    @pytest.mark.integration
    @pytest.mark.api
    def test_pricing_unknown_room(self, client, customer_headers):
        response = client.get(
            f"/api/rooms/{uuid4()}/pricing",
            params={"lease_type": "MONTHLY", "check_in_date": "2030-01-01"},
            headers=customer_headers,
        )
        assert response.status_code == 404


# ============================================================================
# API TESTS - BOOKINGS
# ============================================================================

class TestBookingAPI:
    """Test booking endpoints"""

    @pytest.mark.integration
    @pytest.mark.api
    def test_create_booking(self, client, customer_headers, stub_gateway):
        """Test creating a booking returns the checkout token"""
        response = create_booking(client, customer_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["booking"]["status"] == "UNPAID"
        assert data["booking"]["booking_code"].startswith("BK")
        assert data["payment"]["payment_type"] == "FULL"
        assert Decimal(data["payment"]["amount"]) == Decimal("1000000")
        assert data["payment_token"] == f"snap-{data['payment']['order_id']}"
        assert len(stub_gateway.requests) == 1

    @pytest.mark.integration
    @pytest.mark.api
    def test_create_deposit_booking(self, client, customer_headers):
        response = create_booking(client, customer_headers, room_id=DELUXE_ROOM, deposit_option="deposit")
        data = response.json()
        assert data["payment"]["payment_type"] == "DEPOSIT"
        assert Decimal(data["payment"]["amount"]) == Decimal("450000")

    @pytest.mark.integration
    @pytest.mark.api
    @pytest.mark.security
    def test_staff_cannot_book(self, client, staff_headers):
        response = create_booking(client, staff_headers)
        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "FORBIDDEN"

    @pytest.mark.integration
    @pytest.mark.api
    @pytest.mark.edge_case
    def test_closed_room(self, client, customer_headers):
        assert create_booking(client, customer_headers, room_id=CLOSED_ROOM).status_code == 400

    @pytest.mark.integration
    @pytest.mark.api
    @pytest.mark.edge_case
    def test_invalid_lease_type(self, client, customer_headers):
        assert create_booking(client, customer_headers, lease_type="HOURLY").status_code == 422

    @pytest.mark.integration
    @pytest.mark.api
    @pytest.mark.edge_case
    def test_gateway_down(self, client, customer_headers, stub_gateway):
        stub_gateway.fail = True
        response = create_booking(client, customer_headers)
        assert response.status_code == 500
        assert response.json()["detail"]["code"] == "INTERNAL_ERROR"

    @pytest.mark.integration
    @pytest.mark.api
    def test_get_and_list(self, client, customer_headers, customer2_headers, staff_headers):
        booking = create_booking(client, customer_headers).json()["booking"]

        detail = client.get(f"/api/bookings/{booking['booking_id']}", headers=customer_headers)
        assert detail.status_code == 200
        assert detail.json()["next_payment_type"] == "FULL"
        assert len(detail.json()["payments"]) == 1

        assert client.get(f"/api/bookings/{booking['booking_id']}", headers=customer2_headers).status_code == 403
        assert client.get("/api/bookings", headers=customer2_headers).json() == []
        assert len(client.get("/api/bookings", headers=staff_headers).json()) == 1

    @pytest.mark.integration
    @pytest.mark.api
    def test_get_nonexistent_booking(self, client, customer_headers):
        assert client.get(f"/api/bookings/{uuid4()}", headers=customer_headers).status_code == 404

    @pytest.mark.integration
    @pytest.mark.api
    @pytest.mark.edge_case
    def test_get_booking_invalid_uuid(self, client, customer_headers):
        assert client.get("/api/bookings/invalid-uuid", headers=customer_headers).status_code == 422

    @pytest.mark.integration
    @pytest.mark.api
    def test_cancel(self, client, customer_headers):
        booking = create_booking(client, customer_headers).json()["booking"]
        response = client.post(
            f"/api/bookings/{booking['booking_id']}/cancel", json={"reason": "plans changed"}, headers=customer_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"


# ============================================================================
# API TESTS - PAYMENT FLOW
# ============================================================================

class TestPaymentFlowAPI:
    """Test the webhook and the payment lifecycle over HTTP"""

    @pytest.mark.integration
    @pytest.mark.api
    def test_deposit_then_full_payment(self, client, customer_headers, superadmin_headers):
        """Deposit and remainder settle through the webhook"""
        created = create_booking(client, customer_headers, room_id=DELUXE_ROOM, deposit_option="deposit").json()
        booking_id = created["booking"]["booking_id"]

        response = notify(client, created["payment"])
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "applied": True,
            "order_id": created["payment"]["order_id"],
            "payment_status": "SUCCESS",
            "booking_status": "DEPOSIT_PAID",
        }

        full = client.post(f"/api/bookings/{booking_id}/full-payment", headers=customer_headers)
        assert full.status_code == 201
        assert Decimal(full.json()["payment"]["amount"]) == Decimal("1050000")

        assert notify(client, full.json()["payment"]).json()["booking_status"] == "CONFIRMED"
        detail = client.get(f"/api/bookings/{booking_id}", headers=customer_headers).json()
        assert detail["is_payment_complete"] is True

        ledger = client.get(f"/api/properties/{DEMO_PROPERTY_ID}/ledger", headers=superadmin_headers)
        assert ledger.status_code == 200
        assert len(ledger.json()) == 2

    @pytest.mark.integration
    @pytest.mark.api
    def test_new_payment_after_denied_one(self, client, customer_headers):
        """A denied card can be retried with a fresh order"""
        created = create_booking(client, customer_headers).json()
        booking_id = created["booking"]["booking_id"]
        assert notify(client, created["payment"], "deny").json()["payment_status"] == "FAILED"

        retry = client.post(
            f"/api/bookings/{booking_id}/payments", json={"payment_type": "FULL"}, headers=customer_headers
        )
        assert retry.status_code == 201
        data = retry.json()
        assert data["payment"]["order_id"] != created["payment"]["order_id"]
        assert data["client_key"] == main.settings.MIDTRANS_CLIENT_KEY

        assert notify(client, data["payment"]).json()["booking_status"] == "CONFIRMED"
        again = client.post(
            f"/api/bookings/{booking_id}/payments", json={"payment_type": "FULL"}, headers=customer_headers
        )
        assert again.status_code == 400

    @pytest.mark.integration
    @pytest.mark.api
    def test_new_payment_requires_customer(self, client, customer_headers, staff_headers):
        booking_id = create_booking(client, customer_headers).json()["booking"]["booking_id"]
        response = client.post(f"/api/bookings/{booking_id}/payments", json={}, headers=staff_headers)
        assert response.status_code == 403

    @pytest.mark.integration
    @pytest.mark.api
    def test_duplicate_notification(self, client, customer_headers):
        payment = create_booking(client, customer_headers).json()["payment"]
        notify(client, payment)
        second = notify(client, payment)
        assert second.status_code == 200
        assert second.json()["applied"] is False

    @pytest.mark.integration
    @pytest.mark.api
    @pytest.mark.security
    def test_forged_notification(self, client, customer_headers):
        payment = create_booking(client, customer_headers).json()["payment"]
        body = make_notification(payment["order_id"], server_key="not-the-server-key")

        response = client.post("/api/midtrans/notify", json=body)
        assert response.status_code == 401
        assert response.json()["success"] is False
        assert response.json()["error"]["code"] == "INVALID_SIGNATURE"

    @pytest.mark.integration
    @pytest.mark.api
    @pytest.mark.edge_case
    def test_malformed_notification(self, client):
        assert client.post("/api/midtrans/notify", json={"order_id": "X"}).status_code == 400
        assert client.post("/api/midtrans/notify", json=[1, 2]).status_code == 400
        assert client.post(
            "/api/midtrans/notify", content=b"not json", headers={"Content-Type": "application/json"}
        ).status_code == 400

    @pytest.mark.integration
    @pytest.mark.api
    def test_unknown_order(self, client):
        body = make_notification("FULL-NOPE-1", server_key=main.settings.MIDTRANS_SERVER_KEY)
        response = client.post("/api/midtrans/notify", json=body)
        assert response.status_code == 404

    @pytest.mark.integration
    @pytest.mark.api
    def test_refresh_from_gateway(self, client, customer_headers, staff_headers, stub_gateway):
        payment = create_booking(client, customer_headers).json()["payment"]
        stub_gateway.statuses[payment["order_id"]] = make_notification(
            payment["order_id"], gross_amount=payment["amount"], server_key=main.settings.MIDTRANS_SERVER_KEY
        )

        response = client.post(f"/api/payments/{payment['order_id']}/refresh", headers=staff_headers)
        assert response.status_code == 200
        assert response.json()["booking_status"] == "CONFIRMED"

        assert client.post(
            f"/api/payments/{payment['order_id']}/refresh", headers=customer_headers
        ).status_code == 403

    @pytest.mark.integration
    @pytest.mark.api
    @pytest.mark.security
    def test_ledger_forbidden_for_customers(self, client, customer_headers):
        response = client.get(f"/api/properties/{DEMO_PROPERTY_ID}/ledger", headers=customer_headers)
        assert response.status_code == 403


# ============================================================================
# API TESTS - FRONT DESK, EXTENSION, MAINTENANCE
# ============================================================================

class TestFrontDeskAPI:
    """Test staff-only booking operations"""

    def _confirmed(self, client, headers, check_in=None):
        created = create_booking(client, headers, check_in=check_in or date.today()).json()
        notify(client, created["payment"])
        return created["booking"]["booking_id"]

    @pytest.mark.integration
    @pytest.mark.api
    def test_check_in_and_out(self, client, customer_headers, staff_headers):
        booking_id = self._confirmed(client, customer_headers)

        checked_in = client.post(f"/api/bookings/{booking_id}/check-in", headers=staff_headers)
        assert checked_in.status_code == 200
        assert checked_in.json()["status"] == "CHECKED_IN"
        assert checked_in.json()["checked_in_by"] == "123e4567-e89b-12d3-a456-426614174002"

        checked_out = client.post(f"/api/bookings/{booking_id}/check-out", headers=staff_headers)
        assert checked_out.json()["status"] == "COMPLETED"

    @pytest.mark.integration
    @pytest.mark.api
    @pytest.mark.security
    def test_customer_cannot_check_in(self, client, customer_headers):
        booking_id = self._confirmed(client, customer_headers)
        response = client.post(f"/api/bookings/{booking_id}/check-in", headers=customer_headers)
        assert response.status_code == 403

    @pytest.mark.integration
    @pytest.mark.api
    @pytest.mark.edge_case
    def test_invalid_status_change(self, client, customer_headers, staff_headers):
        booking = create_booking(client, customer_headers).json()["booking"]
        response = client.patch(
            f"/api/bookings/{booking['booking_id']}/status", json={"status": "COMPLETED"}, headers=staff_headers
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_TRANSITION"

    @pytest.mark.integration
    @pytest.mark.api
    def test_override_dates(self, client, customer_headers, staff_headers):
        booking_id = self._confirmed(client, customer_headers)
        new_check_out = (date.today() + timedelta(days=45)).isoformat()
        response = client.patch(
            f"/api/bookings/{booking_id}/dates", json={"check_out_date": new_check_out}, headers=staff_headers
        )
        assert response.status_code == 200
        assert response.json()["check_out_date"] == new_check_out

    @pytest.mark.integration
    @pytest.mark.api
    def test_extension(self, client, customer_headers):
        booking_id = self._confirmed(client, customer_headers)

        info = client.get(f"/api/bookings/{booking_id}/extend", headers=customer_headers)
        assert info.status_code == 200
        assert info.json()["new_check_out_date"] == (date.today() + timedelta(days=60)).isoformat()

        extended = client.post(f"/api/bookings/{booking_id}/extend", json={"periods": 1}, headers=customer_headers)
        assert extended.status_code == 201
        assert extended.json()["booking"]["parent_booking_id"] == booking_id

    @pytest.mark.integration
    @pytest.mark.api
    @pytest.mark.edge_case
    def test_extension_period_limit(self, client, customer_headers):
        booking_id = self._confirmed(client, customer_headers)
        response = client.post(f"/api/bookings/{booking_id}/extend", json={"periods": 0}, headers=customer_headers)
        assert response.status_code == 422

    @pytest.mark.integration
    @pytest.mark.api
    def test_expiry_sweep(self, client, customer_headers, superadmin_headers, staff_headers):
        create_booking(client, customer_headers)

        response = client.post("/api/maintenance/expire-payments", headers=superadmin_headers)
        assert response.status_code == 200
        assert response.json()["expired_payment_ids"] == []

        assert client.post("/api/maintenance/expire-payments", headers=staff_headers).status_code == 403
