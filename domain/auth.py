"""Domain Entities - Auth"""
from enum import Enum
from pydantic import BaseModel, Field
from uuid import UUID, uuid4
from typing import Dict, FrozenSet, Optional, Tuple

from domain.enums import UserRole


class User(BaseModel):
    """User Entity"""
    user_id: UUID = Field(default_factory=uuid4)
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    role: UserRole = UserRole.CUSTOMER
    disabled: bool = False

    class Config:
        from_attributes = True


class UserInDB(User):
    """User with hashed password for DB storage"""
    hashed_password: str


class Resource(str, Enum):
    BOOKING = "booking"
    BOOKING_STATUS = "booking_status"
    PAYMENT = "payment"
    ROOM = "room"
    MAINTENANCE = "maintenance"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    MANAGE = "manage"


_STAFF = (UserRole.SUPERADMIN, UserRole.ADMINKOS, UserRole.RECEPTIONIST)

# Single source of truth for who may do what
PERMISSIONS: Dict[Tuple[Resource, Action], FrozenSet[UserRole]] = {
    (Resource.BOOKING, Action.CREATE): frozenset({UserRole.CUSTOMER}),
    (Resource.BOOKING, Action.READ): frozenset(UserRole),
    (Resource.BOOKING, Action.UPDATE): frozenset({UserRole.CUSTOMER, *_STAFF}),
    (Resource.BOOKING_STATUS, Action.UPDATE): frozenset(_STAFF),
    (Resource.PAYMENT, Action.CREATE): frozenset({UserRole.CUSTOMER}),
    (Resource.PAYMENT, Action.READ): frozenset(UserRole),
    (Resource.ROOM, Action.READ): frozenset(UserRole),
    (Resource.ROOM, Action.MANAGE): frozenset({UserRole.SUPERADMIN, UserRole.ADMINKOS}),
    (Resource.MAINTENANCE, Action.MANAGE): frozenset({UserRole.SUPERADMIN}),
}


def authorize(role: UserRole, resource: Resource, action: Action) -> bool:
    """Return True when ``role`` may perform ``action`` on ``resource``"""
    allowed = PERMISSIONS.get((Resource(resource), Action(action)))
    if allowed is None:
        return False
    return UserRole(role) in allowed


def is_staff(role: UserRole) -> bool:
    return UserRole(role) in _STAFF
