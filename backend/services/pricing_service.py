"""
Pricing calculator - subtotal, shipping fee and total for a cart snapshot.

Pure functions: no DB, no I/O. Every amount is an integer in minor currency
units, so the threshold comparison and the fee never see a float.
"""
from dataclasses import dataclass

from config import settings
from domain.cart import CartSnapshot
from domain.results import ErrorCode


class PricingError(ValueError):
    """Raised when a snapshot cannot be priced."""

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(frozen=True)
class ShippingRule:
    """Flat fee, waived once the subtotal reaches the threshold."""
    flat_fee_minor: int
    free_threshold_minor: int

    def fee_for(self, subtotal_minor: int) -> int:
        if subtotal_minor >= self.free_threshold_minor:
            return 0
        return self.flat_fee_minor


@dataclass(frozen=True)
class PricingResult:
    subtotal_minor: int
    shipping_fee_minor: int
    total_minor: int


def default_shipping_rule() -> ShippingRule:
    return ShippingRule(
        flat_fee_minor=settings.shipping_flat_fee_minor,
        free_threshold_minor=settings.free_shipping_threshold_minor,
    )


def calculate_totals(snapshot: CartSnapshot, rule: ShippingRule) -> PricingResult:
    """
    Price a snapshot.

    Raises:
        PricingError(EMPTY_CART) for a snapshot without lines
        PricingError(INVALID_QUANTITY) for a quantity below 1
        PricingError(INVALID_PRICE) for a negative unit price
    """
    if snapshot.is_empty:
        raise PricingError(ErrorCode.EMPTY_CART, "Cart is empty")

    subtotal = 0
    for line in snapshot.lines:
        if not isinstance(line.quantity, int) or line.quantity < 1:
            raise PricingError(
                ErrorCode.INVALID_QUANTITY,
                f"Quantity must be at least 1 (artwork {line.artwork_id})",
            )
        if line.unit_price_minor < 0:
            raise PricingError(
                ErrorCode.INVALID_PRICE,
                f"Unit price must not be negative (artwork {line.artwork_id})",
            )
        subtotal += line.line_total_minor

    shipping_fee = rule.fee_for(subtotal)
    return PricingResult(
        subtotal_minor=subtotal,
        shipping_fee_minor=shipping_fee,
        total_minor=subtotal + shipping_fee,
    )
