"""
Bank transfer declarations.

The customer says "I have sent the money"; nothing is verified here. The
order moves to AWAITING_VERIFICATION and stays there until an administrator
matches the transfer on the bank statement (reconciliation_service).
Artworks are NOT reserved by a declaration.
"""
import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Order
from domain.enums import AttemptStatus, OrderStatus, PaymentMethod
from domain.results import ErrorCode, Outcome
from services import order_ledger
from services.payment_service import close_active_attempts

logger = logging.getLogger(__name__)

_DECLARABLE = (OrderStatus.PENDING, OrderStatus.PAYMENT_FAILED)


@dataclass(frozen=True)
class BankDetails:
    bank_name: str
    account_holder: str
    iban: str
    bic: str


@dataclass(frozen=True)
class BankTransferDeclaration:
    order: Order
    bank_details: BankDetails
    payment_reference: str  # what the customer writes on the transfer
    amount_minor: int
    currency: str
    duplicate: bool = False


def bank_details() -> BankDetails:
    return BankDetails(
        bank_name=settings.bank_name,
        account_holder=settings.bank_account_holder,
        iban=settings.bank_iban,
        bic=settings.bank_bic,
    )


def _declaration(order: Order, duplicate: bool) -> BankTransferDeclaration:
    return BankTransferDeclaration(
        order=order,
        bank_details=bank_details(),
        payment_reference=order.order_number,
        amount_minor=order.total_minor,
        currency=order.currency,
        duplicate=duplicate,
    )


async def declare_transfer_sent(db: AsyncSession, order_id: str) -> Outcome[BankTransferDeclaration]:
    """
    PENDING / PAYMENT_FAILED → AWAITING_VERIFICATION.

    Repeating the declaration is a no-op (duplicate=True). Any active online
    attempt is superseded so a late processor webhook is flagged, not applied.
    """
    found = await order_ledger.get_order(db, order_id)
    if not found.ok:
        return found
    order = found.value

    for _ in range(2):
        status = OrderStatus(order.status)
        if status == OrderStatus.AWAITING_VERIFICATION:
            return Outcome.success(_declaration(order, duplicate=True))
        if status not in _DECLARABLE:
            return Outcome.failure(
                ErrorCode.STALE_TRANSITION,
                f"Order is {status.value}; a bank transfer can no longer be declared",
                order_id=order.id,
                actual=status.value,
            )

        moved = await order_ledger.transition_status(
            db,
            order.id,
            status,
            OrderStatus.AWAITING_VERIFICATION,
            payment_method=PaymentMethod.BANK_TRANSFER,
        )
        if moved.ok:
            superseded = await close_active_attempts(db, order.id, AttemptStatus.SUPERSEDED)
            if superseded:
                logger.info(f"Order {order.order_number}: {superseded} online payment attempt(s) superseded")
            logger.info(f"Order {order.order_number}: bank transfer declared, awaiting verification")
            return Outcome.success(_declaration(moved.value, duplicate=False))
        if moved.error != ErrorCode.STALE_TRANSITION:
            return moved
        order = (await order_ledger.get_order(db, order.id)).value

    return Outcome.failure(
        ErrorCode.STALE_TRANSITION,
        "Order status changed concurrently",
        order_id=order.id,
        actual=order.status,
    )
