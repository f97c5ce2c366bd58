"""In-Memory Repository Implementations"""
import asyncio
import copy
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from domain.entities import Booking, LedgerEntry, Payment, Room
from domain.enums import BookingStatus, PaymentStatus
from domain.errors import DuplicateKeyError, NotFoundError
from domain.repositories import (
    BookingRepository, LedgerRepository, PaymentRepository, RoomRepository, UnitOfWork,
)

logger = logging.getLogger(__name__)


class _InMemoryStore:
    """Dict-backed storage handing out deep copies"""

    def __init__(self):
        self._storage: Dict[UUID, object] = {}

    def _get(self, key: UUID):
        item = self._storage.get(key)
        return copy.deepcopy(item) if item is not None else None

    def _values(self) -> list:
        return [copy.deepcopy(item) for item in self._storage.values()]

    def _put(self, key: UUID, item):
        self._storage[key] = copy.deepcopy(item)
        return copy.deepcopy(item)

    def snapshot(self) -> Dict[UUID, object]:
        return copy.deepcopy(self._storage)

    def restore(self, snapshot: Dict[UUID, object]) -> None:
        self._storage = snapshot


class InMemoryRoomRepository(_InMemoryStore, RoomRepository):
    """In-memory implementation of RoomRepository"""

    async def save(self, room: Room) -> Room:
        """Save room to memory"""
        return self._put(room.room_id, room)

    async def find_by_id(self, room_id: UUID) -> Optional[Room]:
        """Find room by ID"""
        return self._get(room_id)

    async def find_all(self) -> List[Room]:
        """Find all rooms"""
        return self._values()

    async def update(self, room: Room) -> Room:
        """Update room"""
        if room.room_id in self._storage:
            return self._put(room.room_id, room)
        raise NotFoundError("Room not found", {"room_id": str(room.room_id)})


class InMemoryBookingRepository(_InMemoryStore, BookingRepository):
    """In-memory implementation of BookingRepository"""

    async def save(self, booking: Booking) -> Booking:
        """Save booking to memory; booking codes are unique"""
        for existing in self._storage.values():
            if existing.booking_code == booking.booking_code and existing.booking_id != booking.booking_id:
                raise DuplicateKeyError("booking_code", booking.booking_code)
        return self._put(booking.booking_id, booking)

    async def find_by_id(self, booking_id: UUID) -> Optional[Booking]:
        """Find booking by ID"""
        return self._get(booking_id)

    async def find_by_code(self, booking_code: str) -> Optional[Booking]:
        """Find booking by booking code"""
        for booking in self._storage.values():
            if booking.booking_code == booking_code:
                return copy.deepcopy(booking)
        return None

    async def find_by_user(self, user_id: UUID) -> List[Booking]:
        """Find bookings by renter ID"""
        return [copy.deepcopy(b) for b in self._storage.values() if b.user_id == user_id]

    async def find_by_room(self, room_id: UUID, statuses: Optional[Iterable[BookingStatus]] = None) -> List[Booking]:
        """Find bookings for a room"""
        wanted = {BookingStatus(s) for s in statuses} if statuses is not None else None
        return [
            copy.deepcopy(b) for b in self._storage.values()
            if b.room_id == room_id and (wanted is None or b.status in wanted)
        ]

    async def find_all(self) -> List[Booking]:
        """Find all bookings"""
        return self._values()

    async def update(self, booking: Booking) -> Booking:
        """Update booking"""
        if booking.booking_id in self._storage:
            return self._put(booking.booking_id, booking)
        raise NotFoundError("Booking not found", {"booking_id": str(booking.booking_id)})


class InMemoryPaymentRepository(_InMemoryStore, PaymentRepository):
    """In-memory implementation of PaymentRepository"""

    async def save(self, payment: Payment) -> Payment:
        """Save payment to memory; gateway order ids are unique"""
        for existing in self._storage.values():
            if existing.order_id == payment.order_id and existing.payment_id != payment.payment_id:
                raise DuplicateKeyError("order_id", payment.order_id)
        return self._put(payment.payment_id, payment)

    async def find_by_id(self, payment_id: UUID) -> Optional[Payment]:
        """Find payment by ID"""
        return self._get(payment_id)

    async def find_by_order_id(self, order_id: str) -> Optional[Payment]:
        """Find payment by gateway order id"""
        for payment in self._storage.values():
            if payment.order_id == order_id:
                return copy.deepcopy(payment)
        return None

    async def find_by_booking(self, booking_id: UUID) -> List[Payment]:
        """Find payments of a booking, oldest first"""
        payments = [copy.deepcopy(p) for p in self._storage.values() if p.booking_id == booking_id]
        return sorted(payments, key=lambda p: p.created_at)

    async def find_pending_expired(self, now: datetime) -> List[Payment]:
        """Find PENDING payments past their expiry time"""
        return [
            copy.deepcopy(p) for p in self._storage.values()
            if p.status == PaymentStatus.PENDING and p.is_expired(now)
        ]

    async def update(self, payment: Payment) -> Payment:
        """Update payment"""
        if payment.payment_id in self._storage:
            return self._put(payment.payment_id, payment)
        raise NotFoundError("Payment not found", {"payment_id": str(payment.payment_id)})


class InMemoryLedgerRepository(_InMemoryStore, LedgerRepository):
    """In-memory implementation of LedgerRepository, keyed by payment id"""

    async def save(self, entry: LedgerEntry) -> LedgerEntry:
        """Save ledger entry; one entry per payment"""
        if entry.payment_id in self._storage:
            raise DuplicateKeyError("payment_id", str(entry.payment_id))
        return self._put(entry.payment_id, entry)

    async def find_by_payment_id(self, payment_id: UUID) -> Optional[LedgerEntry]:
        """Find ledger entry of a payment"""
        return self._get(payment_id)

    async def find_by_property(self, property_id: UUID) -> List[LedgerEntry]:
        """Find ledger entries of a property"""
        return [copy.deepcopy(e) for e in self._storage.values() if e.property_id == property_id]


class InMemoryUnitOfWork(UnitOfWork):
    """Serializes writers and restores every store when the block raises"""

    def __init__(self, *stores: _InMemoryStore):
        self._stores = stores
        self._lock = asyncio.Lock()
        self._owner: Optional[asyncio.Task] = None

    @asynccontextmanager
    async def transaction(self):
        current = asyncio.current_task()
        if self._owner is not None and self._owner is current:
            # nested block joins the outer transaction
            yield
            return

        async with self._lock:
            self._owner = current
            snapshots = [store.snapshot() for store in self._stores]
            try:
                yield
            except BaseException:
                for store, snapshot in zip(self._stores, snapshots):
                    store.restore(snapshot)
                logger.warning("Transaction rolled back")
                raise
            finally:
                self._owner = None
