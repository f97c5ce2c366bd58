"""API Schemas - Request and Response DTOs"""
from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID
from typing import Any, Dict, List, Optional

from domain.enums import BookingStatus, DepositOption, LeaseType, PaymentStatus, PaymentType, UserRole


# ============================================================================
# BOOKING SCHEMAS
# ============================================================================

class CreateBookingRequest(BaseModel):
    """Create booking request DTO"""
    room_id: UUID
    check_in_date: date
    lease_type: LeaseType
    deposit_option: DepositOption = Field(default=DepositOption.FULL, description="'deposit' or 'full'")


class UpdateBookingStatusRequest(BaseModel):
    """Update booking status request DTO"""
    status: BookingStatus
    reason: Optional[str] = None


class CancelBookingRequest(BaseModel):
    """Cancel booking request DTO"""
    reason: Optional[str] = None


class OverrideCheckOutRequest(BaseModel):
    """Override check-out date request DTO"""
    check_out_date: date


class CreatePaymentRequest(BaseModel):
    """Create payment request DTO"""
    payment_type: PaymentType = PaymentType.FULL


class ExtendBookingRequest(BaseModel):
    """Extend booking request DTO"""
    periods: int = Field(default=1, ge=1, le=24)
    lease_type: Optional[LeaseType] = None
    deposit_option: DepositOption = DepositOption.FULL


class BookingResponse(BaseModel):
    """Booking response DTO"""
    booking_id: UUID
    booking_code: str
    user_id: UUID
    property_id: UUID
    room_id: UUID
    parent_booking_id: Optional[UUID] = None
    check_in_date: date
    check_out_date: Optional[date] = None
    lease_type: LeaseType
    total_amount: Decimal
    deposit_amount: Optional[Decimal] = None
    payment_status: PaymentStatus
    status: BookingStatus
    checked_in_by: Optional[UUID] = None
    actual_check_in_at: Optional[datetime] = None
    checked_out_by: Optional[UUID] = None
    actual_check_out_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    version: int

    class Config:
        from_attributes = True


class PaymentResponse(BaseModel):
    """Payment response DTO"""
    payment_id: UUID
    booking_id: UUID
    order_id: str
    payment_type: PaymentType
    amount: Decimal
    status: PaymentStatus
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    transaction_time: Optional[datetime] = None
    expiry_time: Optional[datetime] = None
    redirect_url: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CheckoutResponse(BaseModel):
    """Booking plus the payment the renter has to complete"""
    booking: BookingResponse
    payment: PaymentResponse
    payment_token: Optional[str] = None
    redirect_url: Optional[str] = None
    client_key: Optional[str] = Field(default=None, description="Public key for loading the hosted checkout script")


class BookingDetailResponse(BaseModel):
    """Booking detail response DTO"""
    booking: BookingResponse
    payments: List[PaymentResponse]
    next_payment_type: Optional[PaymentType] = None
    next_payment_amount: Optional[Decimal] = None
    is_payment_complete: bool


class ExtensionInfoResponse(BaseModel):
    """Extension quote response DTO"""
    booking_id: UUID
    lease_type: LeaseType
    current_check_out_date: date
    new_check_out_date: date
    price_per_unit: Decimal
    total_amount: Decimal
    is_available: bool
    conflicting_booking_ids: List[UUID] = []


# ============================================================================
# ROOM SCHEMAS
# ============================================================================

class ConflictingBookingResponse(BaseModel):
    """Conflicting booking DTO"""
    booking_id: UUID
    booking_code: str
    check_in_date: date
    check_out_date: Optional[date] = None
    status: BookingStatus

    class Config:
        from_attributes = True


class RoomAvailabilityResponse(BaseModel):
    """Room availability response DTO"""
    room_id: UUID
    check_in_date: date
    check_out_date: date
    is_available: bool
    conflicting_bookings: List[ConflictingBookingResponse] = []

    class Config:
        from_attributes = True


class RoomPricingResponse(BaseModel):
    """Room pricing response DTO"""
    lease_type: LeaseType
    check_in_date: date
    check_out_date: date
    duration: int
    price_per_unit: Decimal
    base_amount: Decimal
    total_amount: Decimal
    deposit_amount: Optional[Decimal] = None
    price_derived: bool

    class Config:
        from_attributes = True


class RoomResponse(BaseModel):
    """Room response DTO"""
    room_id: UUID
    property_id: UUID
    room_number: str
    room_type: str
    monthly_price: Decimal
    is_available: bool


# ============================================================================
# PAYMENT / MAINTENANCE SCHEMAS
# ============================================================================

class ReconciliationResponse(BaseModel):
    """Webhook processing response DTO"""
    success: bool = True
    applied: bool
    order_id: str
    payment_status: PaymentStatus
    booking_status: BookingStatus


class ExpirySweepResponse(BaseModel):
    """Expiry sweep report DTO"""
    executed_at: datetime
    expired_payment_ids: List[UUID]
    expired_booking_ids: List[UUID]


class ErrorResponse(BaseModel):
    """Error body DTO"""
    success: bool = False
    error: Dict[str, Any]


# ============================================================================
# AUTH SCHEMAS
# ============================================================================

class Token(BaseModel):
    """Token response DTO"""
    access_token: str
    token_type: str

class TokenData(BaseModel):
    """Token payload DTO"""
    username: Optional[str] = None
    role: Optional[UserRole] = None

class UserResponse(BaseModel):
    """User response DTO"""
    user_id: UUID
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    role: UserRole
    disabled: bool
