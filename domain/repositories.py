"""Domain Repository Interfaces"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import AsyncContextManager, Iterable, Optional, List
from uuid import UUID

from domain.entities import Booking, LedgerEntry, Payment, Room
from domain.enums import BookingStatus


class RoomRepository(ABC):
    """Repository interface for Room"""

    @abstractmethod
    async def save(self, room: Room) -> Room:
        """Save room"""
        pass

    @abstractmethod
    async def find_by_id(self, room_id: UUID) -> Optional[Room]:
        """Find room by ID"""
        pass

    @abstractmethod
    async def find_all(self) -> List[Room]:
        """Find all rooms"""
        pass

    @abstractmethod
    async def update(self, room: Room) -> Room:
        """Update room"""
        pass


class BookingRepository(ABC):
    """Repository interface for Booking Aggregate"""

    @abstractmethod
    async def save(self, booking: Booking) -> Booking:
        """Insert booking; raises DuplicateKeyError if the booking code is taken"""
        pass

    @abstractmethod
    async def find_by_id(self, booking_id: UUID) -> Optional[Booking]:
        """Find booking by ID"""
        pass

    @abstractmethod
    async def find_by_code(self, booking_code: str) -> Optional[Booking]:
        """Find booking by its human-readable code"""
        pass

    @abstractmethod
    async def find_by_user(self, user_id: UUID) -> List[Booking]:
        """Find bookings made by a renter"""
        pass

    @abstractmethod
    async def find_by_room(self, room_id: UUID, statuses: Optional[Iterable[BookingStatus]] = None) -> List[Booking]:
        """Find bookings for a room, optionally restricted to some statuses"""
        pass

    @abstractmethod
    async def find_all(self) -> List[Booking]:
        """Find all bookings"""
        pass

    @abstractmethod
    async def update(self, booking: Booking) -> Booking:
        """Update booking"""
        pass


class PaymentRepository(ABC):
    """Repository interface for Payment"""

    @abstractmethod
    async def save(self, payment: Payment) -> Payment:
        """Insert payment; raises DuplicateKeyError if the order id is taken"""
        pass

    @abstractmethod
    async def find_by_id(self, payment_id: UUID) -> Optional[Payment]:
        """Find payment by ID"""
        pass

    @abstractmethod
    async def find_by_order_id(self, order_id: str) -> Optional[Payment]:
        """Find payment by gateway order id"""
        pass

    @abstractmethod
    async def find_by_booking(self, booking_id: UUID) -> List[Payment]:
        """Find all payments of a booking, oldest first"""
        pass

    @abstractmethod
    async def find_pending_expired(self, now: datetime) -> List[Payment]:
        """Find PENDING payments whose expiry time has passed"""
        pass

    @abstractmethod
    async def update(self, payment: Payment) -> Payment:
        """Update payment"""
        pass


class LedgerRepository(ABC):
    """Repository interface for LedgerEntry"""

    @abstractmethod
    async def save(self, entry: LedgerEntry) -> LedgerEntry:
        """Insert entry; raises DuplicateKeyError if the payment is already booked"""
        pass

    @abstractmethod
    async def find_by_payment_id(self, payment_id: UUID) -> Optional[LedgerEntry]:
        """Find the ledger entry created for a payment"""
        pass

    @abstractmethod
    async def find_by_property(self, property_id: UUID) -> List[LedgerEntry]:
        """Find ledger entries of a property"""
        pass


class UnitOfWork(ABC):
    """Groups repository writes into one all-or-nothing transaction"""

    @abstractmethod
    def transaction(self) -> AsyncContextManager[None]:
        """Async context manager; any exception rolls every write back"""
        pass
