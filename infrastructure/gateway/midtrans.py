"""Midtrans Snap adapter over httpx"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from domain.auth import User
from domain.entities import Booking, Payment, Room
from domain.enums import PaymentType
from domain.gateway import (
    CustomerDetails, ExpirySpec, GatewayError, ItemDetail, PaymentGateway,
    TransactionDetails, TransactionRequest, TransactionResponse,
)
from infrastructure.config import Settings, get_settings

logger = logging.getLogger(__name__)


def format_expiry_start_time(moment: datetime) -> str:
    """``YYYY-MM-DD HH:MM:SS +ZZZZ`` as Snap expects"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M:%S %z")


def build_snap_request(
    booking: Booking,
    payment: Payment,
    user: User,
    room: Optional[Room] = None,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> TransactionRequest:
    """Turn a payment into a Snap transaction request"""
    settings = settings or get_settings()
    gross_amount = int(round(payment.amount))

    label = "Deposit" if payment.payment_type == PaymentType.DEPOSIT else "Full Payment"
    room_label = f"{room.room_type} {room.room_number}" if room else booking.booking_code
    hours = (
        settings.DEPOSIT_PAYMENT_EXPIRY_HOURS
        if payment.payment_type == PaymentType.DEPOSIT
        else settings.FULL_PAYMENT_EXPIRY_HOURS
    )

    return TransactionRequest(
        transaction_details=TransactionDetails(order_id=payment.order_id, gross_amount=gross_amount),
        customer_details=CustomerDetails(
            first_name=user.full_name or user.username or "Customer",
            email=user.email or "",
            phone=user.phone_number,
        ),
        item_details=[
            ItemDetail(
                id=str(booking.room_id),
                price=gross_amount,
                quantity=1,
                name=f"{label} - {room_label}"[:50],
            )
        ],
        expiry=ExpirySpec(
            start_time=format_expiry_start_time(now or datetime.now(timezone.utc)),
            unit="hour",
            duration=hours,
        ),
    )


class MidtransSnapGateway(PaymentGateway):
    """Hosted checkout through Midtrans Snap"""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            auth=(self.settings.MIDTRANS_SERVER_KEY, ""),
            headers={"Accept": "application/json", "Content-Type": "application/json"},
            timeout=self.settings.MIDTRANS_TIMEOUT_SECONDS,
            transport=self._transport,
        )

    async def create_transaction(self, request: TransactionRequest) -> TransactionResponse:
        order_id = request.transaction_details.order_id
        try:
            async with self._client() as client:
                response = await client.post(
                    self.settings.midtrans_snap_url,
                    json=request.model_dump(exclude_none=True),
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            logger.error(f"Snap transaction failed for order {order_id}: {exc}")
            raise GatewayError(str(exc)) from exc

        if "token" not in data:
            raise GatewayError(f"Snap response without token for order {order_id}")

        logger.info(f"Snap token issued for order {order_id}")
        return TransactionResponse(token=data["token"], redirect_url=data.get("redirect_url", ""))

    async def get_transaction_status(self, order_id: str) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.get(f"{self.settings.midtrans_api_url}/{order_id}/status")
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as exc:
            logger.error(f"Status lookup failed for order {order_id}: {exc}")
            raise GatewayError(str(exc)) from exc
