"""Domain Enums"""
from enum import Enum


class UserRole(str, Enum):
    SUPERADMIN = "SUPERADMIN"
    ADMINKOS = "ADMINKOS"
    RECEPTIONIST = "RECEPTIONIST"
    CUSTOMER = "CUSTOMER"


class LeaseType(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"


class BookingStatus(str, Enum):
    UNPAID = "UNPAID"
    DEPOSIT_PAID = "DEPOSIT_PAID"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"
    REFUNDED = "REFUNDED"


class PaymentType(str, Enum):
    DEPOSIT = "DEPOSIT"
    FULL = "FULL"


class DepositType(str, Enum):
    NONE = "NONE"
    FIXED = "FIXED"
    PERCENTAGE = "PERCENTAGE"


class DepositOption(str, Enum):
    DEPOSIT = "deposit"
    FULL = "full"


class LedgerEntryType(str, Enum):
    INCOME = "INCOME"
