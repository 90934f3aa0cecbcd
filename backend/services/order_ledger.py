"""
Order ledger - order records, order numbers and status transitions.

The ledger is the single source of truth for "has this checkout already
produced an order" (idempotency key) and for the order state machine.
transition_status() is the only write path for Order.status: a
compare-and-swap on the current status, so two concurrent triggers for the
same payment can never both move the order.

State machine (domain.enums.ORDER_TRANSITIONS):
    PENDING               → PAID | PAYMENT_FAILED | AWAITING_VERIFICATION
    PAYMENT_FAILED        → PAID | AWAITING_VERIFICATION   (retry on same order)
    AWAITING_VERIFICATION → PAID | CANCELLED
    PAID, CANCELLED       → terminal
"""
import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Order, OrderItem
from domain.cart import CartSnapshot, CustomerContact, ShippingAddress
from domain.constants import ORDER_NUMBER_ALPHABET
from domain.enums import ORDER_TRANSITIONS, OrderStatus, PaymentMethod
from domain.results import ErrorCode, Outcome
from services.pricing_service import PricingError, ShippingRule, calculate_totals, default_shipping_rule
from utils.validators import normalize_order_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderCreation:
    order: Order
    created: bool  # False when an earlier request with the same token produced it


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_order_number(prefix: str | None = None, group_length: int | None = None) -> str:
    """ALT-XXXX-XXXX from a cryptographically random, unambiguous alphabet."""
    prefix = prefix or settings.order_number_prefix
    n = group_length or settings.order_number_group_length
    groups = ["".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(n)) for _ in range(2)]
    return f"{prefix}-{groups[0]}-{groups[1]}"


def hash_idempotency_token(token: str) -> str:
    """Store a digest of the client request token, never the token itself."""
    return hashlib.sha256(token.strip().encode("utf-8")).hexdigest()


async def _load(db: AsyncSession, order_id: str) -> Order | None:
    res = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def _find_by_idempotency_key(db: AsyncSession, key_hash: str) -> Order | None:
    res = await db.execute(select(Order).where(Order.idempotency_key == key_hash))
    return res.scalar_one_or_none()


# ════════════════════════════════════════════════════════════════════
# Create
# ════════════════════════════════════════════════════════════════════


async def create_order(
    db: AsyncSession,
    *,
    snapshot: CartSnapshot,
    shipping_address: ShippingAddress,
    contact: CustomerContact,
    currency: str,
    idempotency_key: str | None = None,
    shipping_rule: ShippingRule | None = None,
) -> Outcome[OrderCreation]:
    """
    Persist a new PENDING order for the snapshot.

    Safe to retry: the same idempotency_key (client request token) returns
    the order created by the first call, including when both calls race.
    """
    currency = currency.upper()
    key_hash = hash_idempotency_token(idempotency_key) if idempotency_key else None

    if key_hash:
        existing = await _find_by_idempotency_key(db, key_hash)
        if existing:
            logger.info(f"Idempotent replay of order {existing.order_number}")
            return Outcome.success(OrderCreation(order=existing, created=False))

    if snapshot.is_empty:
        return Outcome.failure(ErrorCode.CART_EMPTY, "Order must contain at least one item")

    if currency not in settings.supported_currencies_list or currency != snapshot.currency:
        return Outcome.failure(
            ErrorCode.UNSUPPORTED_CURRENCY,
            f"Currency {currency} is not supported for this cart",
            currency=currency,
        )

    try:
        pricing = calculate_totals(snapshot, shipping_rule or default_shipping_rule())
    except PricingError as e:
        return Outcome.failure(ErrorCode.PRICING_ERROR, e.message, cause=e.code.value)

    for _ in range(settings.order_number_max_attempts):
        order = Order(
            order_number=generate_order_number(),
            idempotency_key=key_hash,
            subtotal_minor=pricing.subtotal_minor,
            shipping_fee_minor=pricing.shipping_fee_minor,
            total_minor=pricing.total_minor,
            currency=currency,
            status=OrderStatus.PENDING.value,
            contact_email=contact.email,
            contact_name=contact.name,
            contact_phone=contact.phone,
            ship_first_name=shipping_address.first_name,
            ship_last_name=shipping_address.last_name,
            ship_address=shipping_address.address,
            ship_city=shipping_address.city,
            ship_postal_code=shipping_address.postal_code,
            ship_country=shipping_address.country,
            ship_phone=shipping_address.phone,
        )
        order.items = [
            OrderItem(
                artwork_id=line.artwork_id,
                title=line.title,
                quantity=line.quantity,
                unit_price_minor=line.unit_price_minor,
            )
            for line in snapshot.lines
        ]

        try:
            async with db.begin_nested():
                db.add(order)
                await db.flush()
        except IntegrityError:
            # Either a concurrent request stored the same key first, or the
            # order number collided. The savepoint keeps the outer transaction usable.
            if key_hash:
                existing = await _find_by_idempotency_key(db, key_hash)
                if existing:
                    logger.info(f"Idempotency race resolved to order {existing.order_number}")
                    return Outcome.success(OrderCreation(order=existing, created=False))
            logger.warning("Order number collision, regenerating")
            continue

        logger.info(
            f"Order {order.order_number} created: {len(snapshot.lines)} line(s), "
            f"total={order.total_minor} {order.currency}"
        )
        return Outcome.success(OrderCreation(order=order, created=True))

    raise RuntimeError("Could not allocate a unique order number")


# ════════════════════════════════════════════════════════════════════
# Status transitions
# ════════════════════════════════════════════════════════════════════


async def transition_status(
    db: AsyncSession,
    order_id: str,
    from_status: OrderStatus | str,
    to_status: OrderStatus | str,
    payment_reference: str | None = None,
    *,
    payment_method: PaymentMethod | None = None,
    failure_reason: str | None = None,
) -> Outcome[Order]:
    """
    Compare-and-swap the order status.

    Succeeds only if the stored status equals from_status; otherwise
    STALE_TRANSITION with the observed status in details["actual"].
    """
    from_status = OrderStatus(from_status)
    to_status = OrderStatus(to_status)

    if to_status not in ORDER_TRANSITIONS[from_status]:
        return Outcome.failure(
            ErrorCode.INVALID_TRANSITION,
            f"Order cannot move from {from_status.value} to {to_status.value}",
            order_id=order_id,
            expected=from_status.value,
            target=to_status.value,
        )

    now = _utcnow()
    values: dict = {"status": to_status.value, "updated_at": now}
    if payment_reference is not None:
        values["payment_reference"] = payment_reference
    if payment_method is not None:
        values["payment_method"] = payment_method.value
    if failure_reason is not None:
        values["failure_reason"] = failure_reason
    if to_status == OrderStatus.PAID:
        values["paid_at"] = now
    elif to_status == OrderStatus.AWAITING_VERIFICATION:
        values["transfer_declared_at"] = now
    elif to_status == OrderStatus.CANCELLED:
        values["cancelled_at"] = now

    result = await db.execute(
        update(Order)
        .where(Order.id == order_id, Order.status == from_status.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        current = await _load(db, order_id)
        if current is None:
            return Outcome.failure(ErrorCode.NOT_FOUND, "Order not found", id=order_id)
        logger.info(
            f"Stale transition on order {current.order_number}: expected {from_status.value}, "
            f"found {current.status} (target {to_status.value})"
        )
        return Outcome.failure(
            ErrorCode.STALE_TRANSITION,
            "Order status changed concurrently",
            order_id=order_id,
            expected=from_status.value,
            actual=current.status,
            target=to_status.value,
        )

    order = await _load(db, order_id)
    logger.info(f"Order {order.order_number}: {from_status.value} → {to_status.value}")
    return Outcome.success(order)


# ════════════════════════════════════════════════════════════════════
# Lookups
# ════════════════════════════════════════════════════════════════════


async def get_order(db: AsyncSession, order_id: str) -> Outcome[Order]:
    order = await _load(db, order_id)
    if order is None:
        return Outcome.failure(ErrorCode.NOT_FOUND, "Order not found", id=order_id)
    return Outcome.success(order)


async def get_order_by_number(db: AsyncSession, order_number: str) -> Outcome[Order]:
    normalized = normalize_order_number(order_number)
    if normalized is None:
        return Outcome.failure(ErrorCode.NOT_FOUND, "Order not found", id=order_number)
    res = await db.execute(
        select(Order)
        .where(Order.order_number == normalized)
        .execution_options(populate_existing=True)
    )
    order = res.scalar_one_or_none()
    if order is None:
        return Outcome.failure(ErrorCode.NOT_FOUND, "Order not found", id=order_number)
    return Outcome.success(order)


async def find_by_idempotency_token(db: AsyncSession, token: str) -> Order | None:
    """The order an earlier checkout with this client token produced, if any."""
    return await _find_by_idempotency_key(db, hash_idempotency_token(token))


async def list_orders(
    db: AsyncSession,
    *,
    status: OrderStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Order], int]:
    """Newest first, optionally filtered by status. Returns (page, total)."""
    base = select(Order)
    if status is not None:
        base = base.where(Order.status == status.value)
    total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar_one()
    res = await db.execute(base.order_by(Order.created_at.desc()).offset(offset).limit(limit))
    return list(res.scalars().all()), total
