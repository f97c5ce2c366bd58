"""User-facing message catalog (Indonesian first, English fallback)"""
from typing import Optional

DEFAULT_LOCALE = "id"
FALLBACK_LOCALE = "en"

MESSAGES = {
    "auth.customer_only": {
        "id": "Hanya customer yang dapat membuat booking",
        "en": "Only customers can create bookings",
    },
    "auth.forbidden": {
        "id": "Akses ditolak",
        "en": "Access denied",
    },
    "room.not_found": {
        "id": "Kamar tidak ditemukan",
        "en": "Room not found",
    },
    "room.not_available": {
        "id": "Kamar tidak tersedia untuk dipesan",
        "en": "Room is not available for booking",
    },
    "room.already_booked": {
        "id": "Kamar sudah dipesan untuk periode tersebut",
        "en": "Room is already booked for the selected dates",
    },
    "booking.not_found": {
        "id": "Booking tidak ditemukan",
        "en": "Booking not found",
    },
    "booking.invalid_transition": {
        "id": "Perubahan status tidak valid dari {current} ke {target}",
        "en": "Invalid status transition from {current} to {target}",
    },
    "booking.immutable": {
        "id": "Booking dengan status {status} sudah final dan tidak dapat diubah",
        "en": "Booking with status {status} is final and cannot be changed",
    },
    "booking.not_extendable": {
        "id": "Booking tidak dapat diperpanjang. Status harus CONFIRMED, CHECKED_IN, atau DEPOSIT_PAID",
        "en": "Booking cannot be extended. Status must be CONFIRMED, CHECKED_IN or DEPOSIT_PAID",
    },
    "booking.not_cancellable": {
        "id": "Booking dengan status {status} tidak dapat dibatalkan",
        "en": "Booking with status {status} cannot be cancelled",
    },
    "booking.check_in_too_early": {
        "id": "Check-in belum dapat dilakukan sebelum tanggal {date}",
        "en": "Cannot check in before {date}",
    },
    "booking.check_out_before_check_in": {
        "id": "Tanggal check-out harus setelah tanggal check-in",
        "en": "Check-out date must be after check-in date",
    },
    "booking.check_in_past": {
        "id": "Tanggal check-in tidak boleh di masa lalu",
        "en": "Check-in date cannot be in the past",
    },
    "booking.code_exhausted": {
        "id": "Gagal membuat kode booking unik",
        "en": "Could not generate a unique booking code",
    },
    "payment.not_found": {
        "id": "Pembayaran tidak ditemukan",
        "en": "Payment not found",
    },
    "payment.deposit_required_first": {
        "id": "Deposit harus dibayar sebelum pelunasan",
        "en": "Booking must have deposit paid to create full payment",
    },
    "payment.nothing_remaining": {
        "id": "Tidak ada sisa tagihan yang harus dibayar",
        "en": "No remaining amount to pay",
    },
    "payment.not_payable": {
        "id": "Booking dengan status {status} tidak dapat dibayar",
        "en": "Booking in status {status} cannot be paid",
    },
    "payment.already_paid": {
        "id": "Pembayaran {payment_type} untuk booking ini sudah berhasil",
        "en": "A {payment_type} payment for this booking already succeeded",
    },
    "payment.deposit_not_offered": {
        "id": "Booking ini tidak menggunakan deposit",
        "en": "This booking has no deposit to pay",
    },
    "payment.in_flight": {
        "id": "Masih ada pembayaran yang menunggu penyelesaian untuk booking ini",
        "en": "Another payment for this booking is still pending",
    },
    "payment.invalid_amount": {
        "id": "Jumlah pembayaran tidak valid",
        "en": "Calculated payment amount is invalid",
    },
    "payment.gateway_failed": {
        "id": "Gagal membuat token pembayaran",
        "en": "Failed to create payment token",
    },
    "webhook.invalid_payload": {
        "id": "Notifikasi tidak valid: {fields}",
        "en": "Invalid notification: {fields}",
    },
    "webhook.invalid_signature": {
        "id": "Signature tidak valid",
        "en": "Invalid signature",
    },
    "system.internal_error": {
        "id": "Terjadi kesalahan pada server",
        "en": "Internal server error",
    },
}


_active_locale = DEFAULT_LOCALE


def set_default_locale(locale: str) -> None:
    global _active_locale
    _active_locale = locale


def translate(key: str, locale: Optional[str] = None, **params) -> str:
    """Look up a message, falling back to English and then to the key itself"""
    entry = MESSAGES.get(key)
    if entry is None:
        return key
    template = entry.get(locale or _active_locale) or entry.get(FALLBACK_LOCALE) or key
    return template.format(**params) if params else template
