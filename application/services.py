"""Application Services - Business use cases"""
import functools
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
from uuid import UUID

from domain.auth import Action, Resource, User, authorize, is_staff
from domain.availability import build_result, find_conflicts
from domain.entities import Booking, LedgerEntry, Payment, Room, utcnow
from domain.enums import BookingStatus, DepositOption, LeaseType, PaymentStatus, PaymentType, UserRole
from domain.errors import (
    ConflictError, DomainError, DuplicateKeyError, ForbiddenError, InternalError,
    InvalidSignatureError, InvalidTransitionError, NotFoundError, ValidationError,
)
from domain.gateway import GatewayError, GatewayNotification, PaymentGateway
from domain.messages import translate
from domain.pricing import calculate_booking_amount, quantize_amount
from domain.reconciliation import REQUIRED_NOTIFICATION_FIELDS, derive_booking_status, map_transaction_status
from domain.repositories import (
    BookingRepository, LedgerRepository, PaymentRepository, RoomRepository, UnitOfWork,
)
from domain.results import Result, from_error, internal_error, ok
from domain import state_machine
from infrastructure.config import Settings, get_settings
from infrastructure.gateway.midtrans import build_snap_request
from infrastructure.security import verify_notification_signature

logger = logging.getLogger(__name__)


def returns_result(func: Callable) -> Callable:
    """Run an async use case and wrap its outcome in a ``Result``"""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> Result:
        try:
            value = await func(*args, **kwargs)
        except DomainError as exc:
            logger.info(f"{func.__qualname__} rejected: {exc.code} {exc.message}")
            return from_error(exc)
        except Exception:
            logger.exception(f"Unexpected error in {func.__qualname__}")
            return internal_error()
        if isinstance(value, Result):
            return value
        return ok(value)

    return wrapper


# ==================== PAYMENT HELPERS ====================

def _successful(payments: Iterable[Payment], payment_type: Optional[PaymentType] = None) -> List[Payment]:
    return [
        p for p in payments
        if p.status == PaymentStatus.SUCCESS and (payment_type is None or p.payment_type == payment_type)
    ]


def calculate_payment_amount(booking: Booking, payment_type: PaymentType, payments: Iterable[Payment] = ()) -> Decimal:
    """Amount owed for the next payment of ``payment_type``"""
    if payment_type == PaymentType.DEPOSIT:
        return booking.deposit_amount if booking.deposit_amount is not None else booking.total_amount
    paid_deposit = sum((p.amount for p in _successful(payments, PaymentType.DEPOSIT)), Decimal("0"))
    return quantize_amount(booking.total_amount - paid_deposit)


def is_booking_payment_complete(booking: Booking, payments: Iterable[Payment]) -> bool:
    payments = list(payments)
    if _successful(payments, PaymentType.FULL):
        return True
    paid = sum((p.amount for p in _successful(payments)), Decimal("0"))
    return paid >= booking.total_amount


def next_required_payment_type(booking: Booking, payments: Iterable[Payment]) -> Optional[PaymentType]:
    """DEPOSIT, FULL, or None once the booking is paid off"""
    payments = list(payments)
    if is_booking_payment_complete(booking, payments):
        return None
    if booking.deposit_amount is not None and not _successful(payments, PaymentType.DEPOSIT):
        return PaymentType.DEPOSIT
    return PaymentType.FULL


GATEWAY_TIMEZONE = timezone(timedelta(hours=7))


def _parse_gateway_time(value: Optional[str]) -> Optional[datetime]:
    """Gateway timestamps without an offset are Western Indonesia Time"""
    if not value:
        return None
    for fmt in ("%Y-%m-%d %H:%M:%S %z", "%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%d %H:%M:%S"):
        try:
            parsed = datetime.strptime(value, fmt)
        except ValueError:
            continue
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=GATEWAY_TIMEZONE)
    logger.warning(f"Unparseable gateway time {value!r}")
    return None


class AvailabilityService:
    """Service for room availability and pricing queries"""

    def __init__(self, booking_repo: BookingRepository, room_repo: RoomRepository):
        self.booking_repo = booking_repo
        self.room_repo = room_repo

    async def get_room(self, room_id: UUID) -> Room:
        room = await self.room_repo.find_by_id(room_id)
        if not room:
            raise NotFoundError(translate("room.not_found"), {"room_id": str(room_id)})
        return room

    async def find_conflicts(
        self,
        room_id: UUID,
        check_in: date,
        check_out: date,
        exclude_booking_id: Optional[UUID] = None,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> List[Booking]:
        """Bookings of ``room_id`` overlapping [check_in, check_out)"""
        bookings = await self.booking_repo.find_by_room(room_id)
        return find_conflicts(bookings, check_in, check_out, exclude_booking_id, statuses)

    @returns_result
    async def check_room_availability(
        self,
        room_id: UUID,
        check_in: date,
        check_out: date,
        exclude_booking_id: Optional[UUID] = None,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ):
        """Check if a room is free for a date range"""
        await self.get_room(room_id)
        conflicts = await self.find_conflicts(room_id, check_in, check_out, exclude_booking_id, statuses)
        return build_result(room_id, check_in, check_out, conflicts)

    @returns_result
    async def get_room_pricing(self, room_id: UUID, lease_type: LeaseType, check_in_date: date, periods: int = 1):
        """Price quote for one or more lease periods"""
        room = await self.get_room(room_id)
        return calculate_booking_amount(room.pricing, room.deposit, lease_type, check_in_date, periods)


class BookingService:
    """Service for Booking business use cases"""

    def __init__(
        self,
        booking_repo: BookingRepository,
        payment_repo: PaymentRepository,
        room_repo: RoomRepository,
        unit_of_work: UnitOfWork,
        gateway: PaymentGateway,
        settings: Optional[Settings] = None,
    ):
        self.booking_repo = booking_repo
        self.payment_repo = payment_repo
        self.room_repo = room_repo
        self.uow = unit_of_work
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.availability = AvailabilityService(booking_repo, room_repo)

    # ==================== INTERNAL HELPERS ====================
    async def _get_booking(self, booking_id: UUID) -> Booking:
        booking = await self.booking_repo.find_by_id(booking_id)
        if not booking:
            raise NotFoundError(translate("booking.not_found"), {"booking_id": str(booking_id)})
        return booking

    def _ensure_can_view(self, actor: User, booking: Booking) -> None:
        if not authorize(actor.role, Resource.BOOKING, Action.READ):
            raise ForbiddenError(translate("auth.forbidden"))
        if actor.role == UserRole.CUSTOMER and booking.user_id != actor.user_id:
            raise ForbiddenError(translate("auth.forbidden"))

    def _ensure_owner(self, actor: User, booking: Booking, resource: Resource, action: Action) -> None:
        if not authorize(actor.role, resource, action) or booking.user_id != actor.user_id:
            raise ForbiddenError(translate("auth.forbidden"))

    def _ensure_staff(self, actor: User) -> None:
        if not authorize(actor.role, Resource.BOOKING_STATUS, Action.UPDATE):
            raise ForbiddenError(translate("auth.forbidden"))

    def _expiry_for(self, payment_type: PaymentType) -> datetime:
        hours = (
            self.settings.DEPOSIT_PAYMENT_EXPIRY_HOURS
            if payment_type == PaymentType.DEPOSIT
            else self.settings.FULL_PAYMENT_EXPIRY_HOURS
        )
        return utcnow() + timedelta(hours=hours)

    async def _insert_booking(self, build: Callable[[], Booking]) -> Booking:
        """Insert a fresh booking, regenerating its code on collision"""
        for attempt in range(1, self.settings.BOOKING_CODE_MAX_ATTEMPTS + 1):
            booking = build()
            try:
                return await self.booking_repo.save(booking)
            except DuplicateKeyError:
                logger.warning(f"Booking code collision on attempt {attempt}: {booking.booking_code}")
        raise ConflictError(translate("booking.code_exhausted"))

    async def _insert_payment(self, booking: Booking, payment_type: PaymentType, amount: Decimal) -> Payment:
        """Insert a PENDING payment, regenerating its order id on collision"""
        expiry = self._expiry_for(payment_type)
        for attempt in range(1, self.settings.BOOKING_CODE_MAX_ATTEMPTS + 1):
            payment = Payment.create(booking, payment_type, amount, expiry_time=expiry)
            try:
                return await self.payment_repo.save(payment)
            except DuplicateKeyError:
                logger.warning(f"Order id collision on attempt {attempt}: {payment.order_id}")
        raise ConflictError(translate("booking.code_exhausted"))

    async def _issue_token(
        self,
        booking: Booking,
        payment: Payment,
        actor: User,
        room: Optional[Room],
        cancel_booking_on_failure: bool,
    ) -> Payment:
        """Ask the gateway for a checkout token and store it on the payment"""
        request = build_snap_request(booking, payment, actor, room, self.settings)
        try:
            response = await self.gateway.create_transaction(request)
        except GatewayError as exc:
            logger.error(f"Payment token failed for order {payment.order_id}: {exc}")
            async with self.uow.transaction():
                failed = await self.payment_repo.find_by_id(payment.payment_id)
                failed.apply_gateway_status(PaymentStatus.FAILED)
                await self.payment_repo.update(failed)
                if cancel_booking_on_failure:
                    stale = await self.booking_repo.find_by_id(booking.booking_id)
                    stale.cancel(translate("payment.gateway_failed"))
                    await self.booking_repo.update(stale)
            raise InternalError(translate("payment.gateway_failed"), {"order_id": payment.order_id})

        async with self.uow.transaction():
            current = await self.payment_repo.find_by_id(payment.payment_id)
            current.attach_token(response.token, response.redirect_url)
            saved = await self.payment_repo.update(current)
        logger.info(f"Payment token issued for order {payment.order_id}")
        return saved

    def _checkout_payload(self, booking: Booking, payment: Payment) -> Dict[str, Any]:
        return {
            "booking": booking,
            "payment": payment,
            "payment_token": payment.payment_token,
            "redirect_url": payment.redirect_url,
            "client_key": self.settings.MIDTRANS_CLIENT_KEY,
        }

    # ==================== CREATION ====================
    @returns_result
    async def create_booking(
        self,
        actor: User,
        room_id: UUID,
        check_in_date: date,
        lease_type: LeaseType,
        deposit_option: DepositOption = DepositOption.FULL,
    ):
        """Create an UNPAID booking plus its first PENDING payment and checkout token"""
        if not authorize(actor.role, Resource.BOOKING, Action.CREATE):
            raise ForbiddenError(translate("auth.customer_only"))

        room = await self.availability.get_room(room_id)
        if not room.is_available:
            raise ValidationError(translate("room.not_available"), {"room_id": str(room_id)})
        if check_in_date < date.today():
            raise ValidationError(translate("booking.check_in_past"), {"check_in_date": check_in_date.isoformat()})

        calculation = calculate_booking_amount(room.pricing, room.deposit, lease_type, check_in_date)
        if DepositOption(deposit_option) == DepositOption.DEPOSIT and calculation.deposit_amount is not None:
            payment_type, amount = PaymentType.DEPOSIT, calculation.deposit_amount
        else:
            calculation = calculation.model_copy(update={"deposit_amount": None})
            payment_type, amount = PaymentType.FULL, calculation.total_amount

        async with self.uow.transaction():
            conflicts = await self.availability.find_conflicts(
                room.room_id, calculation.check_in_date, calculation.check_out_date
            )
            if conflicts:
                raise ConflictError(
                    translate("room.already_booked"),
                    {"conflicting_booking_ids": [str(b.booking_id) for b in conflicts]},
                )
            booking = await self._insert_booking(lambda: Booking.create(actor.user_id, room, calculation))
            payment = await self._insert_payment(booking, payment_type, amount)

        logger.info(
            f"Booking {booking.booking_code} created for room {room.room_id} "
            f"({booking.lease_type.value}, {payment_type.value} {amount})"
        )
        payment = await self._issue_token(booking, payment, actor, room, cancel_booking_on_failure=True)
        return ok(self._checkout_payload(booking, payment), status_code=201)

    # ==================== QUERIES ====================
    @returns_result
    async def get_booking(self, actor: User, booking_id: UUID):
        """Booking with its payments and what is still owed"""
        booking = await self._get_booking(booking_id)
        self._ensure_can_view(actor, booking)
        payments = await self.payment_repo.find_by_booking(booking_id)
        next_type = next_required_payment_type(booking, payments)
        return {
            "booking": booking,
            "payments": payments,
            "next_payment_type": next_type,
            "next_payment_amount": calculate_payment_amount(booking, next_type, payments) if next_type else None,
            "is_payment_complete": next_type is None,
        }

    @returns_result
    async def list_bookings(
        self,
        actor: User,
        status: Optional[BookingStatus] = None,
        room_id: Optional[UUID] = None,
    ):
        """Customers see their own bookings; staff see all"""
        if not authorize(actor.role, Resource.BOOKING, Action.READ):
            raise ForbiddenError(translate("auth.forbidden"))
        if is_staff(actor.role):
            bookings = await self.booking_repo.find_all()
        else:
            bookings = await self.booking_repo.find_by_user(actor.user_id)

        if status is not None:
            bookings = [b for b in bookings if b.status == status]
        if room_id is not None:
            bookings = [b for b in bookings if b.room_id == room_id]
        return sorted(bookings, key=lambda b: b.created_at, reverse=True)

    # ==================== FRONT DESK ====================
    @returns_result
    async def update_booking_status(
        self,
        actor: User,
        booking_id: UUID,
        target: BookingStatus,
        reason: Optional[str] = None,
        today: Optional[date] = None,
    ):
        """Generic staff status change through the state machine"""
        self._ensure_staff(actor)
        target = BookingStatus(target)

        async with self.uow.transaction():
            booking = await self._get_booking(booking_id)
            previous = booking.status
            if target == BookingStatus.CHECKED_IN:
                booking.check_in(actor.user_id, today)
            elif target == BookingStatus.COMPLETED:
                booking.check_out(actor.user_id)
            elif target == BookingStatus.CANCELLED:
                booking.cancel(reason)
            else:
                booking.transition_to(target)
            booking = await self.booking_repo.update(booking)

        logger.info(f"Booking {booking.booking_code}: {previous.value} -> {target.value} by {actor.username}")
        return booking

    async def check_in(self, actor: User, booking_id: UUID, today: Optional[date] = None) -> Result:
        return await self.update_booking_status(actor, booking_id, BookingStatus.CHECKED_IN, today=today)

    async def check_out(self, actor: User, booking_id: UUID) -> Result:
        return await self.update_booking_status(actor, booking_id, BookingStatus.COMPLETED)

    @returns_result
    async def cancel_booking(self, actor: User, booking_id: UUID, reason: Optional[str] = None):
        """Staff may cancel any booking; renters only their own"""
        async with self.uow.transaction():
            booking = await self._get_booking(booking_id)
            if not is_staff(actor.role):
                self._ensure_owner(actor, booking, Resource.BOOKING, Action.UPDATE)
            if not state_machine.validate_transition(booking.status, BookingStatus.CANCELLED):
                raise InvalidTransitionError(
                    translate("booking.not_cancellable", status=booking.status.value),
                    {"current": booking.status.value},
                )
            previous = booking.status
            booking.cancel(reason)
            booking = await self.booking_repo.update(booking)

        logger.info(f"Booking {booking.booking_code}: {previous.value} -> CANCELLED by {actor.username}")
        return booking

    @returns_result
    async def override_check_out_date(self, actor: User, booking_id: UUID, new_check_out: date):
        """Staff-only explicit check-out date override"""
        self._ensure_staff(actor)

        async with self.uow.transaction():
            booking = await self._get_booking(booking_id)
            if not booking.is_terminal and new_check_out > booking.check_in_date:
                conflicts = await self.availability.find_conflicts(
                    booking.room_id, booking.check_in_date, new_check_out, exclude_booking_id=booking.booking_id
                )
                if conflicts:
                    raise ConflictError(
                        translate("room.already_booked"),
                        {"conflicting_booking_ids": [str(b.booking_id) for b in conflicts]},
                    )
            booking.override_check_out_date(new_check_out)
            booking = await self.booking_repo.update(booking)

        logger.info(f"Booking {booking.booking_code}: check-out overridden to {new_check_out} by {actor.username}")
        return booking

    # ==================== PAYMENTS ====================
    async def _start_payment(self, actor: User, booking_id: UUID, payment_type: PaymentType) -> Dict[str, Any]:
        """Insert the next PENDING payment of ``payment_type`` and fetch its checkout token"""
        async with self.uow.transaction():
            booking = await self._get_booking(booking_id)
            self._ensure_owner(actor, booking, Resource.PAYMENT, Action.CREATE)
            if booking.status not in (BookingStatus.UNPAID, BookingStatus.DEPOSIT_PAID):
                raise ValidationError(
                    translate("payment.not_payable", status=booking.status.value), {"status": booking.status.value}
                )
            payments = await self.payment_repo.find_by_booking(booking_id)
            if any(p.is_pending for p in payments):
                raise ConflictError(translate("payment.in_flight"))
            if _successful(payments, payment_type):
                raise ConflictError(
                    translate("payment.already_paid", payment_type=payment_type.value),
                    {"payment_type": payment_type.value},
                )
            if payment_type == PaymentType.DEPOSIT and booking.deposit_amount is None:
                raise ValidationError(translate("payment.deposit_not_offered"))
            amount = calculate_payment_amount(booking, payment_type, payments)
            if amount <= 0:
                raise ValidationError(translate("payment.nothing_remaining"))
            payment = await self._insert_payment(booking, payment_type, amount)

        logger.info(f"Booking {booking.booking_code}: new {payment_type.value} payment {payment.order_id}")
        room = await self.room_repo.find_by_id(booking.room_id)
        payment = await self._issue_token(booking, payment, actor, room, cancel_booking_on_failure=False)
        return self._checkout_payload(booking, payment)

    @returns_result
    async def create_payment(self, actor: User, booking_id: UUID, payment_type: PaymentType = PaymentType.FULL):
        """Open a new payment for an UNPAID or DEPOSIT_PAID booking, e.g. after a failed one"""
        payload = await self._start_payment(actor, booking_id, PaymentType(payment_type))
        return ok(payload, status_code=201)

    @returns_result
    async def create_full_payment(self, actor: User, booking_id: UUID):
        """Pay the remainder of a DEPOSIT_PAID booking"""
        booking = await self._get_booking(booking_id)
        self._ensure_owner(actor, booking, Resource.PAYMENT, Action.CREATE)
        if booking.status != BookingStatus.DEPOSIT_PAID:
            raise ValidationError(translate("payment.deposit_required_first"), {"status": booking.status.value})
        payload = await self._start_payment(actor, booking_id, PaymentType.FULL)
        return ok(payload, status_code=201)

    # ==================== EXTENSION ====================
    def _ensure_extendable(self, booking: Booking) -> None:
        if booking.status not in state_machine.EXTENDABLE_STATUSES or booking.check_out_date is None:
            raise ValidationError(translate("booking.not_extendable"), {"status": booking.status.value})

    @returns_result
    async def get_extension_info(self, actor: User, booking_id: UUID):
        """Quote for extending a booking by one more period"""
        booking = await self._get_booking(booking_id)
        self._ensure_can_view(actor, booking)
        self._ensure_extendable(booking)

        room = await self.availability.get_room(booking.room_id)
        calculation = calculate_booking_amount(room.pricing, room.deposit, booking.lease_type, booking.check_out_date)
        conflicts = await self.availability.find_conflicts(
            booking.room_id, calculation.check_in_date, calculation.check_out_date,
            exclude_booking_id=booking.booking_id,
        )
        return {
            "booking_id": booking.booking_id,
            "lease_type": booking.lease_type,
            "current_check_out_date": booking.check_out_date,
            "new_check_out_date": calculation.check_out_date,
            "price_per_unit": calculation.price_per_unit,
            "total_amount": calculation.total_amount,
            "is_available": not conflicts,
            "conflicting_booking_ids": [b.booking_id for b in conflicts],
        }

    @returns_result
    async def extend_booking(
        self,
        actor: User,
        booking_id: UUID,
        periods: int = 1,
        lease_type: Optional[LeaseType] = None,
        deposit_option: DepositOption = DepositOption.FULL,
    ):
        """Create a linked UNPAID booking that starts where this one ends"""
        parent = await self._get_booking(booking_id)
        self._ensure_owner(actor, parent, Resource.BOOKING, Action.CREATE)
        self._ensure_extendable(parent)

        room = await self.availability.get_room(parent.room_id)
        calculation = calculate_booking_amount(
            room.pricing, room.deposit, lease_type or parent.lease_type, parent.check_out_date, periods
        )
        if DepositOption(deposit_option) == DepositOption.DEPOSIT:
            deposit = quantize_amount(
                calculation.total_amount * Decimal(self.settings.EXTENSION_DEPOSIT_PERCENTAGE) / 100
            )
            calculation = calculation.model_copy(update={"deposit_amount": deposit})
            payment_type, amount = PaymentType.DEPOSIT, deposit
        else:
            calculation = calculation.model_copy(update={"deposit_amount": None})
            payment_type, amount = PaymentType.FULL, calculation.total_amount

        async with self.uow.transaction():
            conflicts = await self.availability.find_conflicts(
                parent.room_id, calculation.check_in_date, calculation.check_out_date,
                exclude_booking_id=parent.booking_id,
            )
            if conflicts:
                raise ConflictError(
                    translate("room.already_booked"),
                    {"conflicting_booking_ids": [str(b.booking_id) for b in conflicts]},
                )
            booking = await self._insert_booking(
                lambda: Booking.create(actor.user_id, room, calculation, parent_booking_id=parent.booking_id)
            )
            payment = await self._insert_payment(booking, payment_type, amount)

        logger.info(f"Booking {parent.booking_code} extended by {booking.booking_code} until {booking.check_out_date}")
        payment = await self._issue_token(booking, payment, actor, room, cancel_booking_on_failure=True)
        return ok(self._checkout_payload(booking, payment), status_code=201)


class LedgerService:
    """Books settled payments as property income"""

    def __init__(self, ledger_repo: LedgerRepository):
        self.ledger_repo = ledger_repo

    async def sync_payment(self, payment: Payment, booking: Booking) -> Optional[LedgerEntry]:
        """Create the income entry for a SUCCESS payment; repeated calls return the same entry"""
        if payment.status != PaymentStatus.SUCCESS:
            return None

        existing = await self.ledger_repo.find_by_payment_id(payment.payment_id)
        if existing:
            return existing

        entry = LedgerEntry(
            payment_id=payment.payment_id,
            booking_id=booking.booking_id,
            property_id=booking.property_id,
            amount=payment.amount,
            description=f"{payment.payment_type.value} payment for booking {booking.booking_code}",
            transaction_time=payment.transaction_time or utcnow(),
        )
        try:
            return await self.ledger_repo.save(entry)
        except DuplicateKeyError:
            return await self.ledger_repo.find_by_payment_id(payment.payment_id)

    @returns_result
    async def list_entries(self, actor: User, property_id: UUID):
        if not authorize(actor.role, Resource.ROOM, Action.MANAGE):
            raise ForbiddenError(translate("auth.forbidden"))
        return await self.ledger_repo.find_by_property(property_id)


class ReconciliationService:
    """Applies payment gateway notifications to Payment and Booking"""

    def __init__(
        self,
        booking_repo: BookingRepository,
        payment_repo: PaymentRepository,
        unit_of_work: UnitOfWork,
        ledger_service: LedgerService,
        gateway: Optional[PaymentGateway] = None,
        settings: Optional[Settings] = None,
    ):
        self.booking_repo = booking_repo
        self.payment_repo = payment_repo
        self.uow = unit_of_work
        self.ledger = ledger_service
        self.gateway = gateway
        self.settings = settings or get_settings()

    def _validate(self, notification: GatewayNotification) -> None:
        missing = [name for name in REQUIRED_NOTIFICATION_FIELDS if not getattr(notification, name)]
        if missing:
            logger.warning(f"Notification rejected, missing fields: {missing}")
            raise ValidationError(
                translate("webhook.invalid_payload", fields=", ".join(missing)), {"missing_fields": missing}
            )
        if not verify_notification_signature(
            notification.order_id,
            notification.status_code,
            notification.gross_amount,
            notification.signature_key,
            self.settings.MIDTRANS_SERVER_KEY,
        ):
            logger.warning(f"Notification rejected, bad signature for order {notification.order_id}")
            raise InvalidSignatureError(translate("webhook.invalid_signature"))

    @returns_result
    async def handle_notification(self, payload: Union[GatewayNotification, Dict[str, Any]]):
        """Verify, then apply a notification exactly once per order status change"""
        try:
            notification = (
                payload if isinstance(payload, GatewayNotification) else GatewayNotification(**payload)
            )
        except (TypeError, ValueError) as exc:
            raise ValidationError(translate("webhook.invalid_payload", fields=str(exc)))

        self._validate(notification)
        logger.info(
            f"Notification received for order {notification.order_id}: {notification.transaction_status}"
        )

        if not await self.payment_repo.find_by_order_id(notification.order_id):
            raise NotFoundError(translate("payment.not_found"), {"order_id": notification.order_id})

        async with self.uow.transaction():
            payment = await self.payment_repo.find_by_order_id(notification.order_id)
            booking = await self.booking_repo.find_by_id(payment.booking_id)
            if not booking:
                raise NotFoundError(translate("booking.not_found"), {"booking_id": str(payment.booking_id)})

            if not payment.is_pending:
                logger.info(f"Order {payment.order_id} already {payment.status.value}, nothing to apply")
                return {"payment": payment, "booking": booking, "applied": False}

            new_status = map_transaction_status(notification.transaction_status, notification.fraud_status)
            payment.apply_gateway_status(
                new_status,
                payment_method=notification.payment_type,
                transaction_id=notification.transaction_id,
                transaction_time=_parse_gateway_time(notification.settlement_time or notification.transaction_time),
                expiry_time=_parse_gateway_time(notification.expiry_time),
            )

            if new_status != PaymentStatus.PENDING:
                target = derive_booking_status(booking.status, payment.payment_type, new_status)
                if target is not None and target != booking.status:
                    if state_machine.validate_transition(booking.status, target):
                        logger.info(f"Booking {booking.booking_code}: {booking.status.value} -> {target.value}")
                        booking.transition_to(target)
                    else:
                        logger.warning(
                            f"Booking {booking.booking_code} stays {booking.status.value}; "
                            f"{payment.order_id} {new_status.value} cannot move it to {target.value}"
                        )
                booking.record_payment_status(new_status)

            payment = await self.payment_repo.update(payment)
            booking = await self.booking_repo.update(booking)

        logger.info(f"Order {payment.order_id} reconciled as {payment.status.value}")

        if payment.status == PaymentStatus.SUCCESS:
            try:
                await self.ledger.sync_payment(payment, booking)
            except Exception:
                logger.exception(f"Ledger sync failed for payment {payment.payment_id}")

        return {"payment": payment, "booking": booking, "applied": new_status != PaymentStatus.PENDING}

    @returns_result
    async def refresh_from_gateway(self, actor: User, order_id: str):
        """Pull the gateway's current status for an order and reconcile it"""
        if not is_staff(actor.role):
            raise ForbiddenError(translate("auth.forbidden"))
        if self.gateway is None:
            raise InternalError(translate("payment.gateway_failed"))
        try:
            status = await self.gateway.get_transaction_status(order_id)
        except GatewayError as exc:
            raise InternalError(translate("payment.gateway_failed"), {"order_id": order_id}) from exc
        return await self.handle_notification(status)


class PaymentExpiryService:
    """Sweeps PENDING payments whose expiry time has passed"""

    def __init__(self, booking_repo: BookingRepository, payment_repo: PaymentRepository, unit_of_work: UnitOfWork):
        self.booking_repo = booking_repo
        self.payment_repo = payment_repo
        self.uow = unit_of_work

    @returns_result
    async def expire_overdue_payments(self, actor: Optional[User] = None, now: Optional[datetime] = None):
        """Expire overdue payments and the UNPAID bookings they belong to"""
        if actor is not None and not authorize(actor.role, Resource.MAINTENANCE, Action.MANAGE):
            raise ForbiddenError(translate("auth.forbidden"))
        now = now or utcnow()
        expired_payment_ids: List[UUID] = []
        expired_booking_ids: List[UUID] = []

        async with self.uow.transaction():
            for payment in await self.payment_repo.find_pending_expired(now):
                payment.apply_gateway_status(PaymentStatus.EXPIRED)
                await self.payment_repo.update(payment)
                expired_payment_ids.append(payment.payment_id)

                booking = await self.booking_repo.find_by_id(payment.booking_id)
                if booking and booking.status == BookingStatus.UNPAID:
                    booking.transition_to(BookingStatus.EXPIRED)
                    booking.record_payment_status(PaymentStatus.EXPIRED)
                    await self.booking_repo.update(booking)
                    expired_booking_ids.append(booking.booking_id)

        logger.info(
            f"Expiry sweep at {now.isoformat()}: {len(expired_payment_ids)} payments, "
            f"{len(expired_booking_ids)} bookings expired"
        )
        return {
            "executed_at": now,
            "expired_payment_ids": expired_payment_ids,
            "expired_booking_ids": expired_booking_ids,
        }
