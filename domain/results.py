"""Uniform operation result returned across the application boundary"""
from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel

from domain.errors import DomainError, InternalError
from domain.messages import translate

T = TypeVar("T")


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: Dict[str, Any] = {}


class Result(BaseModel, Generic[T]):
    """Success flag, data-or-error and an HTTP-style status code"""
    success: bool
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None
    status_code: int = 200

    class Config:
        arbitrary_types_allowed = True


def ok(data: Any = None, status_code: int = 200) -> Result:
    return Result(success=True, data=data, status_code=status_code)


def fail(code: str, message: str, status_code: int = 400, details: Optional[Dict[str, Any]] = None) -> Result:
    return Result(
        success=False,
        error=ErrorDetail(code=code, message=message, details=details or {}),
        status_code=status_code,
    )


def from_error(error: DomainError) -> Result:
    return fail(error.code, error.message, error.status_code, error.details)


def internal_error(message: Optional[str] = None) -> Result:
    return fail(InternalError.code, message or translate("system.internal_error"), InternalError.status_code)
