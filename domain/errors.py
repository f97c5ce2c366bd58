"""Domain Errors

Every expected failure of a booking or payment operation is raised as a
``DomainError`` subclass. The application boundary turns them into ``Result``
values, so the HTTP status lives next to the error type.
"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base class for all expected booking/payment failures"""

    code: str = "DOMAIN_ERROR"
    status_code: int = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(DomainError):
    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidPricingError(DomainError):
    code = "INVALID_PRICING"
    status_code = 400


class InvalidTransitionError(DomainError):
    code = "INVALID_TRANSITION"
    status_code = 400


class UnauthorizedError(DomainError):
    code = "UNAUTHORIZED"
    status_code = 401


class InvalidSignatureError(DomainError):
    code = "INVALID_SIGNATURE"
    status_code = 401


class ForbiddenError(DomainError):
    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(DomainError):
    code = "RESOURCE_NOT_FOUND"
    status_code = 404


class ConflictError(DomainError):
    code = "CONFLICT"
    status_code = 409


class InternalError(DomainError):
    code = "INTERNAL_ERROR"
    status_code = 500


class DuplicateKeyError(ConflictError):
    """Raised by repositories when a unique key is already taken"""

    code = "DUPLICATE_KEY"

    def __init__(self, field: str, value: str):
        super().__init__(f"Duplicate value for {field}: {value}", {"field": field, "value": value})
        self.field = field
        self.value = value
