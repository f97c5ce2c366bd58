"""Pricing Calculator

Pure functions turning a room's price table and deposit configuration into the
amounts a renter owes for one lease.

Durations use a simplified calendar (a month is 30 days, a year 365) rather
than real month lengths. When a room has no explicit price for a lease type,
the price is derived from the monthly base price:

    DAILY     = monthly / 30
    WEEKLY    = monthly / 30 * 7
    QUARTERLY = monthly * 3
    YEARLY    = monthly * 12

``PricingResult.price_derived`` tells callers when that fallback was used.
"""
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

from domain.enums import DepositType, LeaseType
from domain.errors import InvalidPricingError
from domain.value_objects import DepositConfig, PricingResult, RoomPricing

LEASE_DURATION_DAYS = {
    LeaseType.DAILY: 1,
    LeaseType.WEEKLY: 7,
    LeaseType.MONTHLY: 30,
    LeaseType.QUARTERLY: 90,
    LeaseType.YEARLY: 365,
}

CENT = Decimal("0.01")


def quantize_amount(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_lease_duration(lease_type: LeaseType) -> int:
    """Number of days covered by one period of ``lease_type``"""
    return LEASE_DURATION_DAYS[LeaseType(lease_type)]


def calculate_check_out_date(check_in_date: date, lease_type: LeaseType, periods: int = 1) -> date:
    """Check-out is always check-in plus the fixed lease duration"""
    return check_in_date + timedelta(days=calculate_lease_duration(lease_type) * periods)


def _derived_price(pricing: RoomPricing, lease_type: LeaseType) -> Decimal:
    monthly = pricing.monthly_price
    if lease_type == LeaseType.DAILY:
        return monthly / 30
    if lease_type == LeaseType.WEEKLY:
        return monthly / 30 * 7
    if lease_type == LeaseType.QUARTERLY:
        return monthly * 3
    if lease_type == LeaseType.YEARLY:
        return monthly * 12
    return monthly


def get_price_per_unit(pricing: RoomPricing, lease_type: LeaseType) -> Tuple[Decimal, bool]:
    """Return ``(price, derived)`` where ``derived`` marks the monthly fallback"""
    explicit = pricing.explicit_price(lease_type)
    if explicit is not None:
        price, derived = Decimal(explicit), False
    else:
        price, derived = _derived_price(pricing, lease_type), True

    if not price.is_finite() or price <= 0:
        raise InvalidPricingError(
            f"Room does not have valid pricing for {lease_type.value} lease type",
            {"lease_type": lease_type.value},
        )
    return quantize_amount(price), derived


def calculate_deposit_amount(deposit: DepositConfig, total_amount: Decimal) -> Optional[Decimal]:
    """Deposit owed up front, or ``None`` when the room takes no deposit"""
    if not deposit.required:
        return None

    if deposit.deposit_value is None or deposit.deposit_value <= 0:
        raise InvalidPricingError(
            "Deposit is required but no deposit value is configured",
            {"deposit_type": deposit.deposit_type.value},
        )

    if deposit.deposit_type == DepositType.FIXED:
        amount = Decimal(deposit.deposit_value)
    else:
        if deposit.deposit_value > 100:
            raise InvalidPricingError(
                "Deposit percentage cannot exceed 100",
                {"deposit_value": str(deposit.deposit_value)},
            )
        amount = total_amount * Decimal(deposit.deposit_value) / 100

    return quantize_amount(min(amount, total_amount))


def calculate_booking_amount(
    pricing: RoomPricing,
    deposit: DepositConfig,
    lease_type: LeaseType,
    check_in_date: date,
    periods: int = 1,
) -> PricingResult:
    """Compute base/total/deposit amounts for ``periods`` consecutive leases"""
    if periods < 1:
        raise InvalidPricingError("Number of periods must be at least 1", {"periods": periods})

    lease_type = LeaseType(lease_type)
    price_per_unit, derived = get_price_per_unit(pricing, lease_type)
    base_amount = quantize_amount(price_per_unit * periods)
    total_amount = base_amount

    return PricingResult(
        lease_type=lease_type,
        check_in_date=check_in_date,
        check_out_date=calculate_check_out_date(check_in_date, lease_type, periods),
        duration=calculate_lease_duration(lease_type) * periods,
        price_per_unit=price_per_unit,
        base_amount=base_amount,
        total_amount=total_amount,
        deposit_amount=calculate_deposit_amount(deposit, total_amount),
        price_derived=derived,
    )
