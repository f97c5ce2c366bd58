"""Room availability overlap check (pure)"""
from datetime import date
from typing import Iterable, List, Optional
from uuid import UUID

from pydantic import BaseModel

from domain.entities import Booking
from domain.enums import BookingStatus
from domain.errors import ValidationError
from domain.messages import translate
from domain.state_machine import BLOCKING_STATUSES
from domain.value_objects import DateRange


class ConflictingBooking(BaseModel):
    booking_id: UUID
    booking_code: str
    check_in_date: date
    check_out_date: Optional[date] = None
    status: BookingStatus


class AvailabilityResult(BaseModel):
    room_id: UUID
    check_in_date: date
    check_out_date: date
    is_available: bool
    conflicting_bookings: List[ConflictingBooking] = []


def find_conflicts(
    bookings: Iterable[Booking],
    check_in: date,
    check_out: date,
    exclude_booking_id: Optional[UUID] = None,
    statuses: Optional[Iterable[BookingStatus]] = None,
) -> List[Booking]:
    """Bookings whose stay overlaps the half-open range [check_in, check_out)"""
    if check_out <= check_in:
        raise ValidationError(translate("booking.check_out_before_check_in"))

    candidate = DateRange(check_in=check_in, check_out=check_out)
    considered = frozenset(BookingStatus(s) for s in statuses) if statuses is not None else BLOCKING_STATUSES

    return [
        booking for booking in bookings
        if booking.booking_id != exclude_booking_id
        and booking.status in considered
        and candidate.overlaps(booking.check_in_date, booking.check_out_date)
    ]


def build_result(room_id: UUID, check_in: date, check_out: date, conflicts: List[Booking]) -> AvailabilityResult:
    return AvailabilityResult(
        room_id=room_id,
        check_in_date=check_in,
        check_out_date=check_out,
        is_available=not conflicts,
        conflicting_bookings=[
            ConflictingBooking(
                booking_id=b.booking_id,
                booking_code=b.booking_code,
                check_in_date=b.check_in_date,
                check_out_date=b.check_out_date,
                status=b.status,
            )
            for b in conflicts
        ],
    )
