"""
Typed results for the checkout/payment services.

Business-rule failures are returned as an Outcome carrying an ErrorCode,
never raised across the service boundary. Routes translate failed outcomes
into DomainError subclasses (see domain/errors.py).
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorCode(str, Enum):
    # validation
    EMPTY_CART = "EMPTY_CART"
    CART_EMPTY = "CART_EMPTY"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    INVALID_PRICE = "INVALID_PRICE"
    PRICING_ERROR = "PRICING_ERROR"
    UNSUPPORTED_CURRENCY = "UNSUPPORTED_CURRENCY"
    ARTWORK_UNAVAILABLE = "ARTWORK_UNAVAILABLE"
    # concurrency
    STALE_TRANSITION = "STALE_TRANSITION"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    ARTWORK_ALREADY_SOLD = "ARTWORK_ALREADY_SOLD"
    ORDER_NOT_PAID = "ORDER_NOT_PAID"
    # external dependency
    GATEWAY_TIMEOUT = "GATEWAY_TIMEOUT"
    GATEWAY_ERROR = "GATEWAY_ERROR"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    # not found
    NOT_FOUND = "NOT_FOUND"
    # throttling
    RATE_LIMITED = "RATE_LIMITED"


VALIDATION_CODES = frozenset({
    ErrorCode.EMPTY_CART,
    ErrorCode.CART_EMPTY,
    ErrorCode.INVALID_QUANTITY,
    ErrorCode.INVALID_PRICE,
    ErrorCode.PRICING_ERROR,
    ErrorCode.UNSUPPORTED_CURRENCY,
    ErrorCode.ARTWORK_UNAVAILABLE,
})

CONCURRENCY_CODES = frozenset({
    ErrorCode.STALE_TRANSITION,
    ErrorCode.INVALID_TRANSITION,
    ErrorCode.ARTWORK_ALREADY_SOLD,
    ErrorCode.ORDER_NOT_PAID,
})


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value or an error code with a message and context."""
    value: T | None = None
    error: ErrorCode | None = None
    message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorCode, message: str, **details: Any) -> "Outcome[T]":
        return cls(error=error, message=message, details=details)
