"""
Manual reconciliation - administrator actions on bank-transfer orders.

mark_transfer_received: AWAITING_VERIFICATION → PAID once the money is on the
    bank statement, then sales rows and availability reservation, exactly as
    for a card payment.
cancel_order: AWAITING_VERIFICATION → CANCELLED when the transfer never came.
"""
import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Order
from domain.constants import BANK_REFERENCE_PREFIX
from domain.enums import OrderStatus
from domain.results import Outcome
from services import order_ledger, reservation_service, sales_service
from services.reservation_service import ReservationResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManualPayment:
    order: Order
    reservation: ReservationResult | None


async def mark_transfer_received(
    db: AsyncSession,
    order_id: str,
    bank_reference: str | None = None,
) -> Outcome[ManualPayment]:
    """The manual PAID transition for a declared bank transfer."""
    found = await order_ledger.get_order(db, order_id)
    if not found.ok:
        return found
    order = found.value

    reference = f"{BANK_REFERENCE_PREFIX}{bank_reference or order.order_number}"
    moved = await order_ledger.transition_status(
        db,
        order.id,
        OrderStatus.AWAITING_VERIFICATION,
        OrderStatus.PAID,
        payment_reference=reference,
    )
    if not moved.ok:
        return moved
    order = moved.value

    await sales_service.record_sales(db, order)
    reserved = await reservation_service.reserve(db, order.id)
    logger.info(f"Order {order.order_number}: bank transfer received ({reference})")
    return Outcome.success(ManualPayment(order=order, reservation=reserved.value))


async def cancel_order(db: AsyncSession, order_id: str, reason: str | None = None) -> Outcome[Order]:
    """Cancel an order whose declared transfer never arrived."""
    found = await order_ledger.get_order(db, order_id)
    if not found.ok:
        return found

    moved = await order_ledger.transition_status(
        db,
        order_id,
        OrderStatus.AWAITING_VERIFICATION,
        OrderStatus.CANCELLED,
        failure_reason=reason,
    )
    if moved.ok:
        logger.info(f"Order {moved.value.order_number} cancelled" + (f": {reason}" if reason else ""))
    return moved
