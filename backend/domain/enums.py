"""
Domain enums for the order-and-payment workflow.
"""

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    AWAITING_VERIFICATION = "AWAITING_VERIFICATION"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, Enum):
    CARD = "CARD"
    PAYPAL = "PAYPAL"
    BANK_TRANSFER = "BANK_TRANSFER"


class AttemptStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    SUPERSEDED = "SUPERSEDED"


class IntentStatus(str, Enum):
    """Processor-side state of a payment intent, normalised across gateways."""
    REQUIRES_ACTION = "REQUIRES_ACTION"
    PROCESSING = "PROCESSING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class IssueCode(str, Enum):
    ARTWORK_ALREADY_SOLD = "ARTWORK_ALREADY_SOLD"
    UNEXPECTED_PAYMENT = "UNEXPECTED_PAYMENT"


# Allowed status edges. PAID and CANCELLED are terminal.
ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.PAID,
        OrderStatus.PAYMENT_FAILED,
        OrderStatus.AWAITING_VERIFICATION,
    }),
    OrderStatus.PAYMENT_FAILED: frozenset({
        OrderStatus.PAID,
        OrderStatus.AWAITING_VERIFICATION,
    }),
    OrderStatus.AWAITING_VERIFICATION: frozenset({
        OrderStatus.PAID,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.PAID: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# Statuses from which the customer may (re)try an online (card or PayPal) payment.
CARD_PAYABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PAYMENT_FAILED})
