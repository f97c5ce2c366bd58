"""Gateway status mapping and booking-status derivation for payment notifications"""
from typing import Optional

from domain.enums import BookingStatus, PaymentStatus, PaymentType

REQUIRED_NOTIFICATION_FIELDS = ("order_id", "status_code", "gross_amount", "transaction_status", "signature_key")

_STATUS_MAP = {
    "settlement": PaymentStatus.SUCCESS,
    "pending": PaymentStatus.PENDING,
    "deny": PaymentStatus.FAILED,
    "cancel": PaymentStatus.FAILED,
    "expire": PaymentStatus.EXPIRED,
    "refund": PaymentStatus.REFUNDED,
    "partial_refund": PaymentStatus.REFUNDED,
}


def map_transaction_status(transaction_status: str, fraud_status: Optional[str] = None) -> PaymentStatus:
    """Gateway transaction/fraud status to PaymentStatus; unknown values stay PENDING"""
    status = (transaction_status or "").lower()
    if status == "capture":
        return PaymentStatus.SUCCESS if (fraud_status or "").lower() == "accept" else PaymentStatus.PENDING
    return _STATUS_MAP.get(status, PaymentStatus.PENDING)


def derive_booking_status(
    current: BookingStatus,
    payment_type: PaymentType,
    payment_status: PaymentStatus,
) -> Optional[BookingStatus]:
    """Booking status a payment outcome asks for, or None to leave the booking alone"""
    if payment_status == PaymentStatus.SUCCESS:
        return BookingStatus.DEPOSIT_PAID if payment_type == PaymentType.DEPOSIT else BookingStatus.CONFIRMED
    if payment_status == PaymentStatus.EXPIRED and current == BookingStatus.UNPAID:
        return BookingStatus.EXPIRED
    # FAILED keeps an UNPAID booking UNPAID; REFUNDED and PENDING never touch it
    return None
