"""Shared fixtures"""
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List
from uuid import UUID, uuid4

import pytest

from application.services import (
    AvailabilityService, BookingService, LedgerService, PaymentExpiryService, ReconciliationService,
)
from domain.auth import User
from domain.entities import Room
from domain.enums import DepositType, UserRole
from domain.gateway import GatewayError, PaymentGateway, TransactionRequest, TransactionResponse
from domain.value_objects import DepositConfig, RoomPricing
from infrastructure.config import Settings
from infrastructure.repositories.in_memory_repositories import (
    InMemoryBookingRepository, InMemoryLedgerRepository, InMemoryPaymentRepository,
    InMemoryRoomRepository, InMemoryUnitOfWork,
)
from infrastructure.security import compute_notification_signature

SERVER_KEY = "SB-Mid-server-test-key"


class StubGateway(PaymentGateway):
    """In-test payment gateway recording every request"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.requests: List[TransactionRequest] = []
        self.statuses: Dict[str, Dict[str, Any]] = {}

    async def create_transaction(self, request: TransactionRequest) -> TransactionResponse:
        if self.fail:
            raise GatewayError("gateway unavailable")
        self.requests.append(request)
        order_id = request.transaction_details.order_id
        return TransactionResponse(
            token=f"snap-{order_id}",
            redirect_url=f"https://app.sandbox.midtrans.com/snap/v2/vtweb/snap-{order_id}",
        )

    async def get_transaction_status(self, order_id: str) -> Dict[str, Any]:
        if order_id not in self.statuses:
            raise GatewayError(f"unknown order {order_id}")
        return self.statuses[order_id]


def make_notification(
    order_id: str,
    transaction_status: str = "settlement",
    gross_amount: str = "1000000.00",
    status_code: str = "200",
    server_key: str = SERVER_KEY,
    **extra,
) -> Dict[str, Any]:
    """Gateway notification body signed with ``server_key``"""
    body = {
        "order_id": order_id,
        "status_code": status_code,
        "gross_amount": gross_amount,
        "payment_type": "bank_transfer",
        "transaction_time": "2024-01-01 10:00:00",
        "transaction_status": transaction_status,
        "transaction_id": f"tx-{order_id}",
        "signature_key": compute_notification_signature(order_id, status_code, gross_amount, server_key),
    }
    body.update(extra)
    return body


@pytest.fixture
def settings():
    return Settings(MIDTRANS_SERVER_KEY=SERVER_KEY, BOOKING_CODE_MAX_ATTEMPTS=3)


@pytest.fixture
def gateway():
    return StubGateway()


@pytest.fixture
def room_repository():
    return InMemoryRoomRepository()


@pytest.fixture
def booking_repository():
    return InMemoryBookingRepository()


@pytest.fixture
def payment_repository():
    return InMemoryPaymentRepository()


@pytest.fixture
def ledger_repository():
    return InMemoryLedgerRepository()


@pytest.fixture
def unit_of_work(room_repository, booking_repository, payment_repository, ledger_repository):
    return InMemoryUnitOfWork(room_repository, booking_repository, payment_repository, ledger_repository)


@pytest.fixture
def availability_service(booking_repository, room_repository):
    return AvailabilityService(booking_repository, room_repository)


@pytest.fixture
def booking_service(booking_repository, payment_repository, room_repository, unit_of_work, gateway, settings):
    return BookingService(booking_repository, payment_repository, room_repository, unit_of_work, gateway, settings)


@pytest.fixture
def ledger_service(ledger_repository):
    return LedgerService(ledger_repository)


@pytest.fixture
def reconciliation_service(booking_repository, payment_repository, unit_of_work, ledger_service, gateway, settings):
    return ReconciliationService(booking_repository, payment_repository, unit_of_work, ledger_service, gateway, settings)


@pytest.fixture
def expiry_service(booking_repository, payment_repository, unit_of_work):
    return PaymentExpiryService(booking_repository, payment_repository, unit_of_work)


@pytest.fixture
def customer():
    return User(username="budi", full_name="Budi Santoso", email="budi@example.com", role=UserRole.CUSTOMER)


@pytest.fixture
def other_customer():
    return User(username="siti", full_name="Siti Rahayu", role=UserRole.CUSTOMER)


@pytest.fixture
def receptionist():
    return User(username="frontdesk", role=UserRole.RECEPTIONIST)


@pytest.fixture
def superadmin():
    return User(username="root", role=UserRole.SUPERADMIN)


@pytest.fixture
def property_id() -> UUID:
    return uuid4()


@pytest.fixture
async def room(room_repository, property_id):
    """Monthly 1,000,000 room without deposit"""
    return await room_repository.save(Room(
        property_id=property_id,
        room_number="A-101",
        room_type="Standard",
        pricing=RoomPricing(monthly_price=Decimal("1000000")),
    ))


@pytest.fixture
async def deposit_room(room_repository, property_id):
    """Monthly 1,500,000 room taking a 30% deposit"""
    return await room_repository.save(Room(
        property_id=property_id,
        room_number="A-102",
        room_type="Deluxe",
        pricing=RoomPricing(monthly_price=Decimal("1500000")),
        deposit=DepositConfig(deposit_type=DepositType.PERCENTAGE, deposit_value=Decimal("30")),
    ))


@pytest.fixture
def next_week() -> date:
    return date.today() + timedelta(days=7)
