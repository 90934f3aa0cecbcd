"""
Payment workflow - card and PayPal payments from intent to PAID order.

Flow:
    1. initiate_payment()      → processor intent for the order total (attempt ACTIVE)
    2. customer pays in the browser (card form) or on PayPal (approval page),
       then confirm_from_client() reads back or captures the payment
    3. confirm_payment()       ← webhook or client callback, after the amount check
         → order_ledger CAS to PAID → sales rows → availability reservation
       record_payment_failure() ← decline: PENDING → PAYMENT_FAILED, retry allowed

Every trigger may arrive twice or concurrently (browser callback + webhook +
webhook retry). The ledger compare-and-swap decides the single winner; the
others observe PAID with the same reference and return duplicate=True.

All business-rule failures come back as Outcome; processor exceptions are
converted to GATEWAY_TIMEOUT / GATEWAY_ERROR here and never leave the module.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Order, PaymentAttempt
from domain.constants import DEFAULT_DECLINE_REASON, REDIRECT_PROVIDERS
from domain.enums import (
    CARD_PAYABLE_STATUSES,
    AttemptStatus,
    IntentStatus,
    IssueCode,
    OrderStatus,
    PaymentMethod,
)
from domain.results import ErrorCode, Outcome
from services import issue_service, order_ledger, reservation_service, sales_service
from services.payment_gateway import (
    GatewayEvent,
    GatewayEventType,
    GatewayRejected,
    GatewayUnavailable,
    PaymentGateway,
)
from services.reservation_service import ReservationConflict, ReservationResult

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════
# Result types
# ════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class PaymentIntentHandle:
    order_id: str
    order_number: str
    external_payment_id: str
    client_secret: str | None
    redirect_url: str | None
    amount_minor: int
    currency: str
    provider: str
    reused: bool = False


@dataclass(frozen=True)
class PaymentConfirmation:
    order: Order
    duplicate: bool = False
    reservation: ReservationResult | None = None

    @property
    def conflicts(self) -> tuple[ReservationConflict, ...]:
        return self.reservation.conflicts if self.reservation else ()


@dataclass(frozen=True)
class FailureRecord:
    order: Order
    recorded: bool  # False for late, superseded or unknown attempts


@dataclass(frozen=True)
class ClientConfirmation:
    order: Order
    payment_status: IntentStatus
    duplicate: bool = False
    conflicts: tuple[ReservationConflict, ...] = ()


@dataclass(frozen=True)
class WebhookResult:
    event_id: str
    action: str  # confirmed | duplicate | failure_recorded | ignored | rejected
    order_id: str | None = None
    error: ErrorCode | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def processor_idempotency_key(order_id: str, attempt_seq: int) -> str:
    """
    Deterministic per (order, attempt number): two concurrent initiations of
    the same attempt get the same processor intent back.
    """
    return f"order-{order_id}-attempt-{attempt_seq}"


async def _attempt_by_external_id(db: AsyncSession, external_payment_id: str) -> PaymentAttempt | None:
    res = await db.execute(
        select(PaymentAttempt)
        .where(PaymentAttempt.external_payment_id == external_payment_id)
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def _active_attempt(db: AsyncSession, order_id: str) -> PaymentAttempt | None:
    res = await db.execute(
        select(PaymentAttempt)
        .where(
            PaymentAttempt.order_id == order_id,
            PaymentAttempt.status == AttemptStatus.ACTIVE.value,
        )
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def close_active_attempts(
    db: AsyncSession,
    order_id: str,
    status: AttemptStatus,
    *,
    except_external_id: str | None = None,
) -> int:
    """Close every ACTIVE attempt of an order (e.g. when the customer switches to bank transfer)."""
    stmt = (
        update(PaymentAttempt)
        .where(
            PaymentAttempt.order_id == order_id,
            PaymentAttempt.status == AttemptStatus.ACTIVE.value,
        )
        .values(status=status.value, closed_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    if except_external_id:
        stmt = stmt.where(PaymentAttempt.external_payment_id != except_external_id)
    result = await db.execute(stmt)
    return result.rowcount


def _handle_for(order: Order, attempt: PaymentAttempt, reused: bool) -> PaymentIntentHandle:
    return PaymentIntentHandle(
        order_id=order.id,
        order_number=order.order_number,
        external_payment_id=attempt.external_payment_id,
        client_secret=attempt.client_secret,
        redirect_url=attempt.redirect_url,
        amount_minor=attempt.amount_minor,
        currency=attempt.currency,
        provider=attempt.provider,
        reused=reused,
    )


def _payment_method_for(attempt: PaymentAttempt | None) -> PaymentMethod:
    if attempt is not None and attempt.provider in REDIRECT_PROVIDERS:
        return PaymentMethod.PAYPAL
    return PaymentMethod.CARD


def _reusable(attempt: PaymentAttempt, order: Order, gateway: PaymentGateway) -> bool:
    return (
        attempt.amount_minor == order.total_minor
        and attempt.currency == order.currency
        and attempt.provider == gateway.provider
    )


async def _payable_order(db: AsyncSession, order_id: str) -> Outcome[Order]:
    found = await order_ledger.get_order(db, order_id)
    if not found.ok:
        return found
    status = OrderStatus(found.value.status)
    if status not in CARD_PAYABLE_STATUSES:
        return Outcome.failure(
            ErrorCode.STALE_TRANSITION,
            f"Order is {status.value} and cannot be paid online",
            order_id=order_id,
            actual=status.value,
        )
    return found


# ════════════════════════════════════════════════════════════════════
# Initiate
# ════════════════════════════════════════════════════════════════════


async def initiate_payment(
    db: AsyncSession,
    gateway: PaymentGateway,
    order_id: str,
) -> Outcome[PaymentIntentHandle]:
    """
    Request (or reuse) a processor intent for the order total.

    Does not move money and does not change the order status. A processor
    timeout or error leaves the order exactly as it was.

    The processor call runs between two transactions: the reads are
    committed before it and the attempt is stored in a fresh one after it,
    so no database lock is held while the processor is being waited on.
    The order is checked again after the call.
    """
    payable = await _payable_order(db, order_id)
    if not payable.ok:
        return payable
    order = payable.value

    active = await _active_attempt(db, order.id)
    if active is not None and _reusable(active, order, gateway):
        logger.info(f"Reusing intent {active.external_payment_id} for order {order.order_number}")
        return Outcome.success(_handle_for(order, active, reused=True))

    attempt_count = (
        await db.execute(select(func.count(PaymentAttempt.id)).where(PaymentAttempt.order_id == order.id))
    ).scalar_one()
    order_number, total_minor, currency = order.order_number, order.total_minor, order.currency
    await db.commit()

    try:
        intent = await gateway.create_intent(
            order_id=order_id,
            order_number=order_number,
            amount_minor=total_minor,
            currency=currency,
            idempotency_key=processor_idempotency_key(order_id, attempt_count + 1),
        )
    except GatewayUnavailable as e:
        logger.warning(f"Intent creation timed out for order {order_number}: {e}")
        return Outcome.failure(ErrorCode.GATEWAY_TIMEOUT, str(e), order_id=order_id)
    except GatewayRejected as e:
        logger.error(f"Intent creation failed for order {order_number}: {e}")
        return Outcome.failure(ErrorCode.GATEWAY_ERROR, str(e), order_id=order_id)

    payable = await _payable_order(db, order_id)
    if not payable.ok:
        logger.warning(
            f"Order {order_number} moved to {payable.details.get('actual')} while "
            f"intent {intent.external_payment_id} was being created; intent left unused"
        )
        return payable
    order = payable.value

    active = await _active_attempt(db, order.id)
    if active is not None:
        if active.external_payment_id == intent.external_payment_id or _reusable(active, order, gateway):
            # A concurrent initiation stored its attempt during the call
            return Outcome.success(_handle_for(order, active, reused=True))
        await close_active_attempts(db, order.id, AttemptStatus.SUPERSEDED)

    attempt = PaymentAttempt(
        order_id=order.id,
        provider=intent.provider,
        external_payment_id=intent.external_payment_id,
        client_secret=intent.client_secret,
        redirect_url=intent.redirect_url,
        amount_minor=intent.amount_minor,
        currency=intent.currency,
        status=AttemptStatus.ACTIVE.value,
    )
    try:
        async with db.begin_nested():
            db.add(attempt)
            await db.flush()
    except IntegrityError:
        # A concurrent initiation stored the attempt first
        active = await _active_attempt(db, order.id)
        if active is None:
            raise
        return Outcome.success(_handle_for(order, active, reused=True))

    logger.info(
        f"Payment attempt #{attempt.id} opened for order {order.order_number}: "
        f"{attempt.amount_minor} {attempt.currency} via {attempt.provider}"
    )
    return Outcome.success(_handle_for(order, attempt, reused=False))


# ════════════════════════════════════════════════════════════════════
# Confirm
# ════════════════════════════════════════════════════════════════════


async def _flag_unexpected_payment(
    db: AsyncSession,
    order: Order,
    external_payment_id: str,
    amount_minor: int,
    currency: str,
) -> Outcome[PaymentConfirmation]:
    issue = await issue_service.open_issue(
        db,
        order_id=order.id,
        code=IssueCode.UNEXPECTED_PAYMENT,
        external_payment_id=external_payment_id,
        detail=(
            f"Payment {external_payment_id} of {amount_minor} {currency} "
            f"received while order is {order.status}"
        ),
    )
    logger.warning(
        f"Payment {external_payment_id} arrived for order {order.order_number} "
        f"in status {order.status}; flagged for manual refund"
    )
    return Outcome.failure(
        ErrorCode.STALE_TRANSITION,
        f"Order is {order.status}; payment flagged for manual resolution",
        order_id=order.id,
        actual=order.status,
        issue_id=issue.id,
    )


async def confirm_payment(
    db: AsyncSession,
    order_id: str,
    external_payment_id: str,
    amount_minor: int,
    currency: str,
) -> Outcome[PaymentConfirmation]:
    """
    Mark the order PAID for a processor-confirmed card or PayPal payment.

    - already PAID with this reference → success, duplicate=True
    - amount/currency differ from the order total → AMOUNT_MISMATCH, order untouched
    - order off the online-payment path → STALE_TRANSITION + UNEXPECTED_PAYMENT issue
    """
    currency = currency.upper()
    found = await order_ledger.get_order(db, order_id)
    if not found.ok:
        return found
    order = found.value
    method = _payment_method_for(await _attempt_by_external_id(db, external_payment_id))

    # Bounded: each retry means another trigger moved the order in between
    for _ in range(3):
        status = OrderStatus(order.status)

        if status == OrderStatus.PAID and order.payment_reference == external_payment_id:
            logger.info(f"Duplicate confirmation of {external_payment_id} for order {order.order_number}")
            return Outcome.success(PaymentConfirmation(order=order, duplicate=True))

        if status not in CARD_PAYABLE_STATUSES:
            return await _flag_unexpected_payment(db, order, external_payment_id, amount_minor, currency)

        if amount_minor != order.total_minor or currency != order.currency:
            logger.warning(
                f"Amount mismatch on order {order.order_number}: expected "
                f"{order.total_minor} {order.currency}, got {amount_minor} {currency}"
            )
            return Outcome.failure(
                ErrorCode.AMOUNT_MISMATCH,
                "Confirmed amount does not match the order total",
                order_id=order.id,
                expected_amount=order.total_minor,
                expected_currency=order.currency,
                received_amount=amount_minor,
                received_currency=currency,
            )

        moved = await order_ledger.transition_status(
            db,
            order.id,
            status,
            OrderStatus.PAID,
            payment_reference=external_payment_id,
            payment_method=method,
        )
        if moved.ok:
            order = moved.value
            break
        if moved.error != ErrorCode.STALE_TRANSITION:
            return moved
        order = (await order_ledger.get_order(db, order.id)).value
    else:
        return Outcome.failure(
            ErrorCode.STALE_TRANSITION,
            "Order status kept changing; giving up",
            order_id=order.id,
            actual=order.status,
        )

    attempt = await _attempt_by_external_id(db, external_payment_id)
    if attempt is not None and attempt.order_id == order.id:
        attempt.status = AttemptStatus.SUCCEEDED.value
        attempt.closed_at = _utcnow()
        attempt.failure_reason = None
    await close_active_attempts(db, order.id, AttemptStatus.SUPERSEDED, except_external_id=external_payment_id)

    await sales_service.record_sales(db, order)
    reserved = await reservation_service.reserve(db, order.id)
    return Outcome.success(
        PaymentConfirmation(order=order, duplicate=False, reservation=reserved.value)
    )


# ════════════════════════════════════════════════════════════════════
# Decline
# ════════════════════════════════════════════════════════════════════


async def record_payment_failure(
    db: AsyncSession,
    order_id: str,
    external_payment_id: str,
    reason: str | None,
) -> Outcome[FailureRecord]:
    """
    Record a decline on the order's active attempt.

    PENDING → PAYMENT_FAILED with a user-facing reason. Late failures
    (attempt already closed, order moved on) are acknowledged and ignored.
    """
    found = await order_ledger.get_order(db, order_id)
    if not found.ok:
        return found
    order = found.value
    reason = reason or DEFAULT_DECLINE_REASON

    attempt = await _attempt_by_external_id(db, external_payment_id)
    if attempt is None or attempt.order_id != order.id or attempt.status != AttemptStatus.ACTIVE.value:
        logger.info(f"Ignoring late failure of {external_payment_id} for order {order.order_number}")
        return Outcome.success(FailureRecord(order=order, recorded=False))

    attempt.status = AttemptStatus.FAILED.value
    attempt.failure_reason = reason
    attempt.closed_at = _utcnow()
    await db.flush()

    status = OrderStatus(order.status)
    if status == OrderStatus.PENDING:
        moved = await order_ledger.transition_status(
            db, order.id, OrderStatus.PENDING, OrderStatus.PAYMENT_FAILED, failure_reason=reason
        )
        if moved.ok:
            logger.info(f"Order {order.order_number} payment declined: {reason}")
            return Outcome.success(FailureRecord(order=moved.value, recorded=True))
        order = (await order_ledger.get_order(db, order.id)).value
        return Outcome.success(FailureRecord(order=order, recorded=False))

    if status == OrderStatus.PAYMENT_FAILED:
        # Second decline in a row: only the reason changes
        await db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == OrderStatus.PAYMENT_FAILED.value)
            .values(failure_reason=reason, updated_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        order = (await order_ledger.get_order(db, order.id)).value
        return Outcome.success(FailureRecord(order=order, recorded=True))

    return Outcome.success(FailureRecord(order=order, recorded=False))


# ════════════════════════════════════════════════════════════════════
# Triggers: client callback and webhook
# ════════════════════════════════════════════════════════════════════


async def confirm_from_client(
    db: AsyncSession,
    gateway: PaymentGateway,
    order_id: str,
    external_payment_id: str,
) -> Outcome[ClientConfirmation]:
    """
    Client-side confirmation callback.

    The browser only says "I think I paid"; amount and outcome are read back
    from the processor (for PayPal the approved order is captured first).
    Duplicates and mismatches are resolved internally and the current order
    is returned. Like initiate_payment, no transaction is held open across
    the processor call.
    """
    found = await order_ledger.get_order(db, order_id)
    if not found.ok:
        return found

    attempt = await _attempt_by_external_id(db, external_payment_id)
    if attempt is None or attempt.order_id != order_id or attempt.provider != gateway.provider:
        return Outcome.failure(ErrorCode.NOT_FOUND, "Payment not found for this order", id=external_payment_id)
    await db.commit()

    try:
        intent = await gateway.capture_intent(external_payment_id)
    except GatewayUnavailable as e:
        return Outcome.failure(ErrorCode.GATEWAY_TIMEOUT, str(e), order_id=order_id)
    except GatewayRejected as e:
        return Outcome.failure(ErrorCode.GATEWAY_ERROR, str(e), order_id=order_id)

    duplicate = False
    conflicts: tuple[ReservationConflict, ...] = ()

    if intent.status == IntentStatus.SUCCEEDED:
        confirmed = await confirm_payment(
            db, order_id, external_payment_id, intent.amount_minor, intent.currency
        )
        if confirmed.ok:
            duplicate = confirmed.value.duplicate
            conflicts = confirmed.value.conflicts
        elif confirmed.error not in (ErrorCode.STALE_TRANSITION, ErrorCode.AMOUNT_MISMATCH):
            return confirmed
    elif intent.status == IntentStatus.FAILED:
        await record_payment_failure(db, order_id, external_payment_id, intent.failure_reason)

    order = (await order_ledger.get_order(db, order_id)).value
    return Outcome.success(
        ClientConfirmation(
            order=order,
            payment_status=intent.status,
            duplicate=duplicate,
            conflicts=conflicts,
        )
    )


async def handle_webhook_event(db: AsyncSession, event: GatewayEvent) -> Outcome[WebhookResult]:
    """
    Apply an authenticated processor event.

    Business outcomes (duplicate, mismatch, unknown order) are reported in
    WebhookResult so the processor gets a 2xx and stops retrying.
    """
    intent = event.intent
    if event.type == GatewayEventType.IGNORED or intent is None:
        return Outcome.success(WebhookResult(event_id=event.event_id, action="ignored"))

    order_id = intent.order_id
    if not order_id:
        attempt = await _attempt_by_external_id(db, intent.external_payment_id)
        order_id = attempt.order_id if attempt else None
    if not order_id:
        logger.warning(f"Webhook {event.event_id} for unknown payment {intent.external_payment_id}")
        return Outcome.success(
            WebhookResult(event_id=event.event_id, action="ignored", error=ErrorCode.NOT_FOUND)
        )

    if event.type == GatewayEventType.PAYMENT_SUCCEEDED:
        confirmed = await confirm_payment(
            db, order_id, intent.external_payment_id, intent.amount_minor, intent.currency
        )
        if confirmed.ok:
            action = "duplicate" if confirmed.value.duplicate else "confirmed"
            return Outcome.success(WebhookResult(event_id=event.event_id, action=action, order_id=order_id))
        return Outcome.success(
            WebhookResult(event_id=event.event_id, action="rejected", order_id=order_id, error=confirmed.error)
        )

    failed = await record_payment_failure(db, order_id, intent.external_payment_id, intent.failure_reason)
    if not failed.ok:
        return Outcome.success(
            WebhookResult(event_id=event.event_id, action="rejected", order_id=order_id, error=failed.error)
        )
    action = "failure_recorded" if failed.value.recorded else "ignored"
    return Outcome.success(WebhookResult(event_id=event.event_id, action=action, order_id=order_id))
