"""Booking State Machine"""
from typing import Dict, FrozenSet

from domain.enums import BookingStatus

VALID_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.UNPAID: frozenset({
        BookingStatus.DEPOSIT_PAID,
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
        BookingStatus.EXPIRED,
    }),
    BookingStatus.DEPOSIT_PAID: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CHECKED_IN, BookingStatus.CANCELLED}),
    BookingStatus.CHECKED_IN: frozenset({BookingStatus.COMPLETED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.EXPIRED: frozenset(),
}

# Statuses that do not reserve the room against other bookings
NON_BLOCKING_STATUSES: FrozenSet[BookingStatus] = frozenset({
    BookingStatus.UNPAID,
    BookingStatus.CANCELLED,
    BookingStatus.EXPIRED,
})

BLOCKING_STATUSES: FrozenSet[BookingStatus] = frozenset(BookingStatus) - NON_BLOCKING_STATUSES

TERMINAL_STATUSES: FrozenSet[BookingStatus] = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)

EXTENDABLE_STATUSES: FrozenSet[BookingStatus] = frozenset({
    BookingStatus.DEPOSIT_PAID,
    BookingStatus.CONFIRMED,
    BookingStatus.CHECKED_IN,
})


def validate_transition(current: BookingStatus, target: BookingStatus) -> bool:
    """True only for explicitly whitelisted (current, target) pairs"""
    return BookingStatus(target) in VALID_TRANSITIONS.get(BookingStatus(current), frozenset())


def is_blocking(status: BookingStatus) -> bool:
    return BookingStatus(status) in BLOCKING_STATUSES


def is_terminal(status: BookingStatus) -> bool:
    return BookingStatus(status) in TERMINAL_STATUSES
