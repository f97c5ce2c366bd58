from contextlib import asynccontextmanager
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import FastAPI, HTTPException, Depends, Query, Request
from fastapi.security import OAuth2PasswordRequestForm

from api.schemas import (
    # Bookings
    CreateBookingRequest, UpdateBookingStatusRequest, CancelBookingRequest,
    OverrideCheckOutRequest, ExtendBookingRequest, CreatePaymentRequest,
    BookingResponse, PaymentResponse, CheckoutResponse, BookingDetailResponse, ExtensionInfoResponse,
    # Rooms
    RoomResponse, RoomAvailabilityResponse, RoomPricingResponse,
    # Payments / maintenance
    ReconciliationResponse, ExpirySweepResponse,
    # Auth
    Token, UserResponse
)

from api.dependencies import (
    get_current_active_user, fake_users_db, get_user, require_roles, unwrap, result_response,
)
from infrastructure.config import get_settings
from infrastructure.logging_config import setup_logging
from infrastructure.security import verify_password, create_access_token
from domain.auth import User
from domain.entities import Room
from domain.enums import BookingStatus, LeaseType, PaymentStatus, DepositType, UserRole
from domain.gateway import PaymentGateway
from domain.messages import set_default_locale, translate
from domain.results import fail
from domain.errors import ValidationError
from domain.value_objects import DepositConfig, RoomPricing

from application.services import (
    AvailabilityService, BookingService, LedgerService, PaymentExpiryService, ReconciliationService,
)
from infrastructure.gateway.midtrans import MidtransSnapGateway
from infrastructure.repositories.in_memory_repositories import (
    InMemoryBookingRepository, InMemoryLedgerRepository, InMemoryPaymentRepository,
    InMemoryRoomRepository, InMemoryUnitOfWork,
)

settings = get_settings()
setup_logging(settings.LOG_LEVEL)
set_default_locale(settings.DEFAULT_LOCALE)

# Initialize repositories
room_repo = InMemoryRoomRepository()
booking_repo = InMemoryBookingRepository()
payment_repo = InMemoryPaymentRepository()
ledger_repo = InMemoryLedgerRepository()
unit_of_work = InMemoryUnitOfWork(room_repo, booking_repo, payment_repo, ledger_repo)

DEMO_PROPERTY_ID = UUID("5f0c9a3e-0000-4000-8000-000000000001")
DEMO_ROOMS = [
    Room(
        room_id=UUID("5f0c9a3e-0000-4000-8000-000000000101"),
        property_id=DEMO_PROPERTY_ID,
        room_number="A-101",
        room_type="Standard",
        pricing=RoomPricing(monthly_price=Decimal("1000000")),
    ),
    Room(
        room_id=UUID("5f0c9a3e-0000-4000-8000-000000000102"),
        property_id=DEMO_PROPERTY_ID,
        room_number="A-102",
        room_type="Deluxe",
        pricing=RoomPricing(
            monthly_price=Decimal("1500000"),
            daily_price=Decimal("75000"),
            weekly_price=Decimal("400000"),
        ),
        deposit=DepositConfig(deposit_type=DepositType.PERCENTAGE, deposit_value=Decimal("30")),
    ),
    Room(
        room_id=UUID("5f0c9a3e-0000-4000-8000-000000000103"),
        property_id=DEMO_PROPERTY_ID,
        room_number="B-201",
        room_type="Suite",
        pricing=RoomPricing(monthly_price=Decimal("2500000"), yearly_price=Decimal("27000000")),
        deposit=DepositConfig(deposit_type=DepositType.FIXED, deposit_value=Decimal("500000")),
    ),
    Room(
        room_id=UUID("5f0c9a3e-0000-4000-8000-000000000104"),
        property_id=DEMO_PROPERTY_ID,
        room_number="B-202",
        room_type="Suite",
        pricing=RoomPricing(monthly_price=Decimal("2500000")),
        is_available=False,
    ),
]


async def seed_demo_rooms() -> None:
    for room in DEMO_ROOMS:
        await room_repo.save(room)


def reset_state() -> None:
    """Empty every in-memory store"""
    for store in (room_repo, booking_repo, payment_repo, ledger_repo):
        store.restore({})


@asynccontextmanager
async def lifespan(app: FastAPI):
    await seed_demo_rooms()
    yield


app = FastAPI(
    title="Kos Booking API",
    description="API untuk booking kamar kos dan rekonsiliasi pembayaran Midtrans",
    version="1.0.0",
    lifespan=lifespan,
)

# Dependency injection
def get_payment_gateway() -> PaymentGateway:
    return MidtransSnapGateway(settings)

def get_availability_service() -> AvailabilityService:
    return AvailabilityService(booking_repo, room_repo)

def get_booking_service(gateway: PaymentGateway = Depends(get_payment_gateway)) -> BookingService:
    return BookingService(booking_repo, payment_repo, room_repo, unit_of_work, gateway, settings)

def get_ledger_service() -> LedgerService:
    return LedgerService(ledger_repo)

def get_reconciliation_service(gateway: PaymentGateway = Depends(get_payment_gateway)) -> ReconciliationService:
    return ReconciliationService(
        booking_repo, payment_repo, unit_of_work, LedgerService(ledger_repo), gateway, settings
    )

def get_expiry_service() -> PaymentExpiryService:
    return PaymentExpiryService(booking_repo, payment_repo, unit_of_work)

# ============================================================================
# HEALTH & ENUM REFERENCE ENDPOINTS
# ============================================================================

@app.get("/api/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "API is running"}

@app.get("/api/enums/booking-status", tags=["Enum Reference"])
async def get_booking_statuses():
    """Get all BookingStatus enum values"""
    return {
        "values": [item.name for item in BookingStatus],
        "description": "Booking status values: UNPAID, DEPOSIT_PAID, CONFIRMED, CHECKED_IN, COMPLETED, CANCELLED, EXPIRED"
    }

@app.get("/api/enums/lease-type", tags=["Enum Reference"])
async def get_lease_types():
    """Get all LeaseType enum values"""
    return {
        "values": [item.name for item in LeaseType],
        "description": "Lease type values: DAILY=1 day, WEEKLY=7, MONTHLY=30, QUARTERLY=90, YEARLY=365"
    }

@app.get("/api/enums/payment-status", tags=["Enum Reference"])
async def get_payment_statuses():
    """Get all PaymentStatus enum values"""
    return {
        "values": [item.name for item in PaymentStatus],
        "description": "Payment status values: PENDING, SUCCESS, FAILED, EXPIRED, REFUNDED"
    }

# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

@app.post("/token", response_model=Token, tags=["Auth"])
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()):
    user = get_user(fake_users_db, form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=401,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token_expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(
        data={"sub": user.username, "role": user.role.value}, expires_delta=access_token_expires
    )
    return {"access_token": access_token, "token_type": "bearer"}

@app.get("/users/me", response_model=UserResponse, tags=["Auth"])
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    return current_user

# ============================================================================
# ROOM ENDPOINTS
# ============================================================================

@app.get("/api/rooms", response_model=List[RoomResponse], tags=["Rooms"])
async def list_rooms(current_user: User = Depends(get_current_active_user)):
    """List rooms"""
    rooms = await room_repo.find_all()
    return [
        RoomResponse(
            room_id=r.room_id,
            property_id=r.property_id,
            room_number=r.room_number,
            room_type=r.room_type,
            monthly_price=r.pricing.monthly_price,
            is_available=r.is_available,
        )
        for r in rooms
    ]

@app.get("/api/rooms/{room_id}/availability", response_model=RoomAvailabilityResponse, tags=["Rooms"])
async def check_room_availability(
    room_id: UUID,
    check_in_date: date,
    check_out_date: date,
    exclude_booking_id: Optional[UUID] = None,
    service: AvailabilityService = Depends(get_availability_service),
    current_user: User = Depends(get_current_active_user)
):
    """Check if a room is free for [check_in_date, check_out_date)"""
    result = await service.check_room_availability(room_id, check_in_date, check_out_date, exclude_booking_id)
    return RoomAvailabilityResponse.model_validate(unwrap(result))

@app.get("/api/rooms/{room_id}/pricing", response_model=RoomPricingResponse, tags=["Rooms"])
async def get_room_pricing(
    room_id: UUID,
    lease_type: LeaseType,
    check_in_date: date,
    periods: int = Query(default=1, ge=1, le=24),
    service: AvailabilityService = Depends(get_availability_service),
    current_user: User = Depends(get_current_active_user)
):
    """Price quote for a lease starting on check_in_date"""
    result = await service.get_room_pricing(room_id, lease_type, check_in_date, periods)
    return RoomPricingResponse.model_validate(unwrap(result))

# ============================================================================
# BOOKING ENDPOINTS
# ============================================================================

@app.post("/api/bookings", response_model=CheckoutResponse, status_code=201, tags=["Bookings"])
async def create_booking(
    request: CreateBookingRequest,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user)
):
    """Create a booking and its first payment"""
    result = await service.create_booking(
        actor=current_user,
        room_id=request.room_id,
        check_in_date=request.check_in_date,
        lease_type=request.lease_type,
        deposit_option=request.deposit_option,
    )
    return _checkout_to_response(unwrap(result))

@app.get("/api/bookings", response_model=List[BookingResponse], tags=["Bookings"])
async def list_bookings(
    status: Optional[BookingStatus] = None,
    room_id: Optional[UUID] = None,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user)
):
    """List bookings visible to the caller"""
    result = await service.list_bookings(current_user, status=status, room_id=room_id)
    return [_booking_to_response(b) for b in unwrap(result)]

@app.get("/api/bookings/{booking_id}", response_model=BookingDetailResponse, tags=["Bookings"])
async def get_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get booking by ID with its payments"""
    detail = unwrap(await service.get_booking(current_user, booking_id))
    return BookingDetailResponse(
        booking=_booking_to_response(detail["booking"]),
        payments=[_payment_to_response(p) for p in detail["payments"]],
        next_payment_type=detail["next_payment_type"],
        next_payment_amount=detail["next_payment_amount"],
        is_payment_complete=detail["is_payment_complete"],
    )

@app.patch("/api/bookings/{booking_id}/status", response_model=BookingResponse, tags=["Bookings"])
async def update_booking_status(
    booking_id: UUID,
    request: UpdateBookingStatusRequest,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(require_roles(UserRole.SUPERADMIN, UserRole.ADMINKOS, UserRole.RECEPTIONIST))
):
    """Change booking status (staff only)"""
    result = await service.update_booking_status(current_user, booking_id, request.status, request.reason)
    return _booking_to_response(unwrap(result))

@app.post("/api/bookings/{booking_id}/check-in", response_model=BookingResponse, tags=["Bookings"])
async def check_in_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(require_roles(UserRole.SUPERADMIN, UserRole.ADMINKOS, UserRole.RECEPTIONIST))
):
    """Check in renter"""
    return _booking_to_response(unwrap(await service.check_in(current_user, booking_id)))

@app.post("/api/bookings/{booking_id}/check-out", response_model=BookingResponse, tags=["Bookings"])
async def check_out_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(require_roles(UserRole.SUPERADMIN, UserRole.ADMINKOS, UserRole.RECEPTIONIST))
):
    """Check out renter"""
    return _booking_to_response(unwrap(await service.check_out(current_user, booking_id)))

@app.post("/api/bookings/{booking_id}/cancel", response_model=BookingResponse, tags=["Bookings"])
async def cancel_booking(
    booking_id: UUID,
    request: CancelBookingRequest,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user)
):
    """Cancel booking"""
    result = await service.cancel_booking(current_user, booking_id, request.reason)
    return _booking_to_response(unwrap(result))

@app.patch("/api/bookings/{booking_id}/dates", response_model=BookingResponse, tags=["Bookings"])
async def override_check_out_date(
    booking_id: UUID,
    request: OverrideCheckOutRequest,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(require_roles(UserRole.SUPERADMIN, UserRole.ADMINKOS, UserRole.RECEPTIONIST))
):
    """Override the check-out date (staff only)"""
    result = await service.override_check_out_date(current_user, booking_id, request.check_out_date)
    return _booking_to_response(unwrap(result))

@app.post("/api/bookings/{booking_id}/full-payment", response_model=CheckoutResponse, status_code=201, tags=["Payments"])
async def create_full_payment(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(require_roles(UserRole.CUSTOMER))
):
    """Pay the remaining amount after the deposit"""
    return _checkout_to_response(unwrap(await service.create_full_payment(current_user, booking_id)))

@app.post("/api/bookings/{booking_id}/payments", response_model=CheckoutResponse, status_code=201, tags=["Payments"])
async def create_payment(
    booking_id: UUID,
    request: CreatePaymentRequest,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(require_roles(UserRole.CUSTOMER))
):
    """Start a new payment, e.g. after the previous one failed"""
    result = await service.create_payment(current_user, booking_id, request.payment_type)
    return _checkout_to_response(unwrap(result))

@app.get("/api/bookings/{booking_id}/extend", response_model=ExtensionInfoResponse, tags=["Bookings"])
async def get_extension_info(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(get_current_active_user)
):
    """Quote for extending a booking by one period"""
    return ExtensionInfoResponse(**unwrap(await service.get_extension_info(current_user, booking_id)))

@app.post("/api/bookings/{booking_id}/extend", response_model=CheckoutResponse, status_code=201, tags=["Bookings"])
async def extend_booking(
    booking_id: UUID,
    request: ExtendBookingRequest,
    service: BookingService = Depends(get_booking_service),
    current_user: User = Depends(require_roles(UserRole.CUSTOMER))
):
    """Extend a booking with a linked follow-up booking"""
    result = await service.extend_booking(
        current_user, booking_id,
        periods=request.periods,
        lease_type=request.lease_type,
        deposit_option=request.deposit_option,
    )
    return _checkout_to_response(unwrap(result))

# ============================================================================
# PAYMENT ENDPOINTS
# ============================================================================

@app.post("/api/midtrans/notify", response_model=ReconciliationResponse, tags=["Payments"])
async def midtrans_notification(
    request: Request,
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    """Payment gateway webhook; authenticated by its signature only"""
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        return result_response(fail(
            ValidationError.code, translate("webhook.invalid_payload", fields="body"), ValidationError.status_code
        ))

    result = await service.handle_notification(payload)
    if not result.success:
        return result_response(result)
    return _reconciliation_to_response(result.data)

@app.post("/api/payments/{order_id}/refresh", response_model=ReconciliationResponse, tags=["Payments"])
async def refresh_payment_status(
    order_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
    current_user: User = Depends(require_roles(UserRole.SUPERADMIN, UserRole.ADMINKOS, UserRole.RECEPTIONIST))
):
    """Re-read an order's status from the gateway and reconcile it"""
    return _reconciliation_to_response(unwrap(await service.refresh_from_gateway(current_user, order_id)))

@app.get("/api/properties/{property_id}/ledger", tags=["Payments"])
async def list_ledger_entries(
    property_id: UUID,
    service: LedgerService = Depends(get_ledger_service),
    current_user: User = Depends(require_roles(UserRole.SUPERADMIN, UserRole.ADMINKOS))
):
    """Income entries booked from settled payments"""
    return unwrap(await service.list_entries(current_user, property_id))

@app.post("/api/maintenance/expire-payments", response_model=ExpirySweepResponse, tags=["Maintenance"])
async def expire_overdue_payments(
    service: PaymentExpiryService = Depends(get_expiry_service),
    current_user: User = Depends(require_roles(UserRole.SUPERADMIN))
):
    """Expire overdue PENDING payments and their UNPAID bookings"""
    return ExpirySweepResponse(**unwrap(await service.expire_overdue_payments(current_user)))

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _booking_to_response(booking) -> BookingResponse:
    """Convert Booking entity to BookingResponse"""
    return BookingResponse.model_validate(booking)

def _payment_to_response(payment) -> PaymentResponse:
    """Convert Payment entity to PaymentResponse"""
    return PaymentResponse.model_validate(payment)

def _checkout_to_response(data: dict) -> CheckoutResponse:
    return CheckoutResponse(
        booking=_booking_to_response(data["booking"]),
        payment=_payment_to_response(data["payment"]),
        payment_token=data["payment_token"],
        redirect_url=data["redirect_url"],
        client_key=data.get("client_key"),
    )

def _reconciliation_to_response(data: dict) -> ReconciliationResponse:
    return ReconciliationResponse(
        applied=data["applied"],
        order_id=data["payment"].order_id,
        payment_status=data["payment"].status,
        booking_status=data["booking"].status,
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
