"""Domain Entities - Aggregates"""
from pydantic import BaseModel, Field
from uuid import UUID, uuid4
from datetime import datetime, date, timezone
from typing import Optional
from decimal import Decimal
import secrets
import string
import time

from domain.enums import (
    BookingStatus, LeaseType, LedgerEntryType, PaymentStatus, PaymentType,
)
from domain.errors import InvalidTransitionError, ValidationError
from domain.messages import translate
from domain import state_machine
from domain.value_objects import DepositConfig, PricingResult, RoomPricing

_BASE36 = string.digits + string.ascii_uppercase


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def random_base36(length: int) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


class Room(BaseModel):
    """Room Entity (only the parts the booking flow reads)"""

    room_id: UUID = Field(default_factory=uuid4)
    property_id: UUID
    room_number: str
    room_type: str
    pricing: RoomPricing
    deposit: DepositConfig = DepositConfig()
    is_available: bool = True

    class Config:
        from_attributes = True


class Booking(BaseModel):
    """Booking Aggregate Root Entity"""

    # Identity
    booking_id: UUID = Field(default_factory=uuid4)
    booking_code: str

    # References to other contexts
    user_id: UUID
    property_id: UUID
    room_id: UUID
    parent_booking_id: Optional[UUID] = None

    # Stay
    check_in_date: date
    check_out_date: Optional[date] = None
    lease_type: LeaseType

    # Amounts
    total_amount: Decimal
    deposit_amount: Optional[Decimal] = None

    # Status
    payment_status: PaymentStatus = PaymentStatus.PENDING
    status: BookingStatus = BookingStatus.UNPAID

    # Front desk
    checked_in_by: Optional[UUID] = None
    actual_check_in_at: Optional[datetime] = None
    checked_out_by: Optional[UUID] = None
    actual_check_out_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None

    # Metadata
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 1

    class Config:
        from_attributes = True

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def create(
        user_id: UUID,
        room: Room,
        calculation: PricingResult,
        parent_booking_id: Optional[UUID] = None,
    ) -> "Booking":
        """Create a new UNPAID booking from a pricing calculation"""
        return Booking(
            booking_code=Booking.generate_booking_code(),
            user_id=user_id,
            property_id=room.property_id,
            room_id=room.room_id,
            parent_booking_id=parent_booking_id,
            check_in_date=calculation.check_in_date,
            check_out_date=calculation.check_out_date,
            lease_type=calculation.lease_type,
            total_amount=calculation.total_amount,
            deposit_amount=calculation.deposit_amount,
            payment_status=PaymentStatus.PENDING,
            status=BookingStatus.UNPAID,
        )

    @staticmethod
    def generate_booking_code() -> str:
        """BK + base36 millisecond timestamp + 6 random base36 chars"""
        return f"BK{to_base36(int(time.time() * 1000))}{random_base36(6)}"

    # ==================== STATE TRANSITION METHODS ====================
    def transition_to(self, target: BookingStatus) -> None:
        """Move to ``target`` if the state machine allows it"""
        target = BookingStatus(target)
        if not state_machine.validate_transition(self.status, target):
            raise InvalidTransitionError(
                translate("booking.invalid_transition", current=self.status.value, target=target.value),
                {"current": self.status.value, "target": target.value},
            )
        self.status = target
        self._touch()

    def check_in(self, actor_id: UUID, today: Optional[date] = None) -> None:
        """Front-desk check-in of a CONFIRMED booking"""
        today = today or date.today()
        if self.status == BookingStatus.CONFIRMED and self.check_in_date > today:
            raise ValidationError(translate("booking.check_in_too_early", date=self.check_in_date.isoformat()))
        self.transition_to(BookingStatus.CHECKED_IN)
        self.checked_in_by = actor_id
        self.actual_check_in_at = utcnow()

    def check_out(self, actor_id: UUID) -> None:
        """Front-desk check-out; completes the booking"""
        self.transition_to(BookingStatus.COMPLETED)
        self.checked_out_by = actor_id
        self.actual_check_out_at = utcnow()

    def cancel(self, reason: Optional[str] = None) -> None:
        self.transition_to(BookingStatus.CANCELLED)
        self.cancel_reason = reason

    def override_check_out_date(self, new_check_out: date) -> None:
        """Explicit check-out override by an authorized actor"""
        if state_machine.is_terminal(self.status):
            raise InvalidTransitionError(translate("booking.immutable", status=self.status.value))
        if new_check_out <= self.check_in_date:
            raise ValidationError(translate("booking.check_out_before_check_in"))
        self.check_out_date = new_check_out
        self._touch()

    def record_payment_status(self, status: PaymentStatus) -> None:
        """Mirror the status of the most recently reconciled payment"""
        self.payment_status = PaymentStatus(status)
        self._touch()

    # ==================== QUERY METHODS ====================
    @property
    def is_blocking(self) -> bool:
        return state_machine.is_blocking(self.status)

    @property
    def is_terminal(self) -> bool:
        return state_machine.is_terminal(self.status)

    def _touch(self) -> None:
        self.updated_at = utcnow()
        self.version += 1


class Payment(BaseModel):
    """Payment Entity - one gateway order for a booking"""

    payment_id: UUID = Field(default_factory=uuid4)
    booking_id: UUID
    user_id: UUID
    order_id: str
    payment_type: PaymentType
    amount: Decimal
    status: PaymentStatus = PaymentStatus.PENDING

    # Gateway data
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    transaction_time: Optional[datetime] = None
    expiry_time: Optional[datetime] = None
    payment_token: Optional[str] = None
    redirect_url: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        from_attributes = True

    @staticmethod
    def create(
        booking: Booking,
        payment_type: PaymentType,
        amount: Decimal,
        expiry_time: Optional[datetime] = None,
    ) -> "Payment":
        if amount <= 0:
            raise ValidationError(translate("payment.invalid_amount"), {"amount": str(amount)})
        return Payment(
            booking_id=booking.booking_id,
            user_id=booking.user_id,
            order_id=Payment.generate_order_id(booking.booking_id, payment_type),
            payment_type=payment_type,
            amount=amount,
            status=PaymentStatus.PENDING,
            expiry_time=expiry_time,
        )

    @staticmethod
    def generate_order_id(booking_id: UUID, payment_type: PaymentType) -> str:
        prefix = "DEP" if payment_type == PaymentType.DEPOSIT else "FULL"
        stamp = to_base36(int(time.time() * 1000))
        return f"{prefix}-{booking_id.hex[:8]}-{stamp}{random_base36(4)}".upper()

    @property
    def is_pending(self) -> bool:
        return self.status == PaymentStatus.PENDING

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expiry_time is None:
            return False
        return (now or utcnow()) > self.expiry_time

    def attach_token(self, token: str, redirect_url: Optional[str] = None) -> None:
        self.payment_token = token
        self.redirect_url = redirect_url
        self.updated_at = utcnow()

    def apply_gateway_status(
        self,
        status: PaymentStatus,
        payment_method: Optional[str] = None,
        transaction_id: Optional[str] = None,
        transaction_time: Optional[datetime] = None,
        expiry_time: Optional[datetime] = None,
    ) -> None:
        self.status = status
        self.payment_method = payment_method or self.payment_method
        self.transaction_id = transaction_id or self.transaction_id
        self.transaction_time = transaction_time or self.transaction_time
        self.expiry_time = expiry_time or self.expiry_time
        self.updated_at = utcnow()


class LedgerEntry(BaseModel):
    """Income record produced when a payment settles"""

    entry_id: UUID = Field(default_factory=uuid4)
    payment_id: UUID
    booking_id: UUID
    property_id: UUID
    entry_type: LedgerEntryType = LedgerEntryType.INCOME
    amount: Decimal
    description: str
    transaction_time: datetime
    created_at: datetime = Field(default_factory=utcnow)

    class Config:
        from_attributes = True
