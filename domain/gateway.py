"""Payment gateway port and wire models"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, validator


class TransactionDetails(BaseModel):
    order_id: str
    gross_amount: int


class CustomerDetails(BaseModel):
    first_name: str = "Customer"
    email: str = ""
    phone: Optional[str] = None


class ItemDetail(BaseModel):
    id: str
    price: int
    quantity: int = 1
    name: str


class ExpirySpec(BaseModel):
    start_time: str
    unit: str = "hour"
    duration: int


class TransactionRequest(BaseModel):
    """Hosted checkout request (Snap payload shape)"""
    transaction_details: TransactionDetails
    customer_details: CustomerDetails
    item_details: List[ItemDetail]
    expiry: Optional[ExpirySpec] = None


class TransactionResponse(BaseModel):
    token: str
    redirect_url: str


class GatewayNotification(BaseModel):
    """Webhook body sent by the gateway; everything optional so we can report what is missing"""
    order_id: Optional[str] = None
    status_code: Optional[str] = None
    gross_amount: Optional[str] = None
    payment_type: Optional[str] = None
    transaction_time: Optional[str] = None
    transaction_status: Optional[str] = None
    transaction_id: Optional[str] = None
    signature_key: Optional[str] = None
    settlement_time: Optional[str] = None
    fraud_status: Optional[str] = None
    expiry_time: Optional[str] = None

    class Config:
        extra = "allow"

    @validator("status_code", pre=True)
    def stringify_status_code(cls, v):
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @validator("gross_amount", pre=True)
    def require_amount_text(cls, v):
        # signed over the exact text sent, e.g. "10000.00"; a parsed number cannot be turned back into it
        if v is not None and not isinstance(v, str):
            raise ValueError("gross_amount must be a string")
        return v


class GatewayError(Exception):
    """Raised by adapters when the provider call fails"""


class PaymentGateway(ABC):
    """Hosted-payment-page provider"""

    @abstractmethod
    async def create_transaction(self, request: TransactionRequest) -> TransactionResponse:
        """Create a checkout session and return its token and redirect URL"""
        pass

    @abstractmethod
    async def get_transaction_status(self, order_id: str) -> Dict[str, Any]:
        """Fetch the provider's current view of an order"""
        pass
