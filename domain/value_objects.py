"""Domain Value Objects"""
from pydantic import BaseModel, Field, validator
from datetime import date
from decimal import Decimal
from typing import Optional

from domain.enums import DepositType, LeaseType


class DateRange(BaseModel):
    """Half-open stay interval [check_in, check_out)"""
    check_in: date
    check_out: date

    @validator('check_out')
    def check_out_after_check_in(cls, v, values):
        if 'check_in' in values and v <= values['check_in']:
            raise ValueError('Check-out must be after check-in')
        return v

    def nights(self) -> int:
        """Calculate number of nights"""
        return (self.check_out - self.check_in).days

    def overlaps(self, check_in: date, check_out: Optional[date]) -> bool:
        """Overlap test against another stay; ``check_out=None`` means open-ended"""
        if check_out is None:
            # open-ended: never conflicts with a range that ends on/before its check-in
            return check_in < self.check_out
        return check_in < self.check_out and check_out > self.check_in

    class Config:
        frozen = True


class RoomPricing(BaseModel):
    """Per-period price table; only the monthly base price is mandatory"""
    monthly_price: Decimal = Field(gt=0)
    daily_price: Optional[Decimal] = Field(default=None, gt=0)
    weekly_price: Optional[Decimal] = Field(default=None, gt=0)
    quarterly_price: Optional[Decimal] = Field(default=None, gt=0)
    yearly_price: Optional[Decimal] = Field(default=None, gt=0)

    class Config:
        frozen = True

    def explicit_price(self, lease_type: LeaseType) -> Optional[Decimal]:
        return {
            LeaseType.DAILY: self.daily_price,
            LeaseType.WEEKLY: self.weekly_price,
            LeaseType.MONTHLY: self.monthly_price,
            LeaseType.QUARTERLY: self.quarterly_price,
            LeaseType.YEARLY: self.yearly_price,
        }[lease_type]


class DepositConfig(BaseModel):
    """How much a renter pays up front when choosing the deposit option"""
    deposit_type: DepositType = DepositType.NONE
    deposit_value: Optional[Decimal] = Field(default=None, ge=0)

    class Config:
        frozen = True

    @property
    def required(self) -> bool:
        return self.deposit_type != DepositType.NONE


class PricingResult(BaseModel):
    """Output of the pricing calculator"""
    lease_type: LeaseType
    check_in_date: date
    check_out_date: date
    duration: int
    price_per_unit: Decimal
    base_amount: Decimal
    total_amount: Decimal
    deposit_amount: Optional[Decimal] = None
    price_derived: bool = False

    class Config:
        frozen = True
